from __future__ import annotations

from pydantic import ValidationError


class LedgerValidationError(ValueError):
    """Invalid user input; the operation was aborted before any state change."""


class NotAuthenticatedError(RuntimeError):
    pass


class StorageError(RuntimeError):
    pass


class DeserializationError(StorageError):
    pass


def validation_message(exc: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one human-readable line."""
    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = str(err.get("msg", "invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid input"
