from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from simple_ledger.domain.errors import DeserializationError, StorageError

logger = logging.getLogger(__name__)

TRANSACTIONS_KEY = "simple-ledger-transactions"
ACCOUNTS_NAMESPACE = "accounts"
USERS_KEY = "ledger_users"
CURRENT_USER_KEY = "ledger_current_user"
REMOTE_CONFIG_KEY = "ledger_supabase_config"

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9._@-]")


def storage_key(namespace: str, key: str | None = None) -> str:
    if key is None or key == "":
        return namespace
    return f"{namespace}_{key}"


class KeyValueStore(ABC):
    """
    Stateless read/write façade over JSON-serialized values.

    Writes always replace the whole value; patch semantics belong to the
    callers.
    """

    @abstractmethod
    def _load_raw(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def _save_raw(self, key: str, payload: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def _delete_raw(self, key: str) -> None:
        raise NotImplementedError

    def read(self, namespace: str, key: str | None = None) -> Any | None:
        full_key = storage_key(namespace, key)
        raw = self._load_raw(full_key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            raise DeserializationError(f"Stored payload for {full_key!r} is not valid JSON: {exc}") from exc

    def write(self, namespace: str, key: str | None, value: Any) -> None:
        full_key = storage_key(namespace, key)
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Value for {full_key!r} is not JSON serializable: {exc}") from exc
        self._save_raw(full_key, payload)
        logger.debug("Store wrote key=%s bytes=%d", full_key, len(payload))

    def remove(self, namespace: str, key: str | None = None) -> None:
        self._delete_raw(storage_key(namespace, key))

    def read_collection(self, namespace: str, key: str | None = None) -> list[Any]:
        """Missing or malformed collections read as empty."""
        try:
            value = self.read(namespace, key)
        except StorageError:
            logger.exception("Store failed reading key=%s; using empty collection", storage_key(namespace, key))
            return []
        if value is None:
            return []
        if not isinstance(value, list):
            logger.error(
                "Store expected a list at key=%s, got %s; using empty collection",
                storage_key(namespace, key),
                type(value).__name__,
            )
            return []
        return value

    def read_mapping(self, namespace: str, key: str | None = None) -> dict[str, Any]:
        try:
            value = self.read(namespace, key)
        except StorageError:
            logger.exception("Store failed reading key=%s; using empty mapping", storage_key(namespace, key))
            return {}
        return value if isinstance(value, dict) else {}


class InMemoryStore(KeyValueStore):
    """Keeps serialized payloads in a dict; nothing survives the process."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def _load_raw(self, key: str) -> str | None:
        return self._store.get(key)

    def _save_raw(self, key: str, payload: str) -> None:
        self._store[key] = payload

    def _delete_raw(self, key: str) -> None:
        self._store.pop(key, None)

    def put_raw(self, key: str, payload: str) -> None:
        self._store[key] = payload

    def keys(self) -> list[str]:
        return sorted(self._store)


class JsonFileStore(KeyValueStore):
    """One ``<key>.json`` file per storage key under ``data_dir``."""

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{_SAFE_KEY_RE.sub('_', key)}.json"

    def _load_raw(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DeserializationError(f"Could not read {path}: {exc}") from exc

    def _save_raw(self, key: str, payload: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=str(path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StorageError(f"Could not write {path}: {exc}") from exc

    def _delete_raw(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not delete {path}: {exc}") from exc
