from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any

import bcrypt

from simple_ledger.domain.errors import StorageError
from simple_ledger.domain.schemas import AuthResult, User
from simple_ledger.infrastructure.identity.provider import IdentityProvider
from simple_ledger.infrastructure.persistence.store import USERS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def new_user_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


class LocalIdentityProvider(IdentityProvider):
    """Username/password accounts kept in the local store under ``ledger_users``."""

    name = "local"

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._user: User | None = None

    def _users(self) -> dict[str, dict[str, Any]]:
        return self._store.read_mapping(USERS_KEY)

    def _save_users(self, users: dict[str, dict[str, Any]]) -> None:
        self._store.write(USERS_KEY, None, users)

    def _find(self, users: dict[str, dict[str, Any]], identifier: str) -> dict[str, Any] | None:
        record = users.get(identifier)
        if record is not None:
            return record
        lowered = identifier.lower()
        for candidate in users.values():
            email = candidate.get("email")
            if isinstance(email, str) and email.lower() == lowered:
                return candidate
        return None

    def _to_user(self, record: dict[str, Any]) -> User:
        username = str(record.get("username") or "")
        return User(
            id=str(record.get("id") or f"user_{username}"),
            username=username,
            email=record.get("email"),
            display_name=record.get("displayName"),
            created_at=record.get("created_at"),
        )

    def sign_in(self, identifier: str, secret: str) -> AuthResult:
        record = self._find(self._users(), identifier.strip())
        if record is None:
            logger.info("Local sign-in unknown user identifier=%s", identifier)
            return AuthResult.failure("User not found")

        stored_hash = str(record.get("password_hash") or "")
        try:
            matches = bcrypt.checkpw(secret.encode("utf-8"), stored_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Local sign-in found an unreadable password hash for user=%s", record.get("username"))
            matches = False
        if not matches:
            logger.info("Local sign-in wrong password user=%s", record.get("username"))
            return AuthResult.failure("Incorrect password")

        self._user = self._to_user(record)
        logger.info("Local sign-in ok user_id=%s", self._user.id)
        return AuthResult.success(self._user)

    def sign_up(self, identifier: str, secret: str, email: str | None = None) -> AuthResult:
        username = identifier.strip()
        users = self._users()
        if username in users:
            return AuthResult.failure("Username already exists")

        record = {
            "id": new_user_id(),
            "username": username,
            "email": email,
            "password_hash": bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt()).decode("utf-8"),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        users[username] = record
        try:
            self._save_users(users)
        except StorageError as exc:
            logger.exception("Local sign-up could not persist user=%s", username)
            return AuthResult.failure(f"Could not save user: {exc}")

        self._user = self._to_user(record)
        logger.info("Local sign-up ok user_id=%s", self._user.id)
        return AuthResult.success(self._user)

    def sign_out(self) -> None:
        self._user = None

    def current_user(self) -> User | None:
        return self._user

    def update_username(self, user: User, username: str) -> AuthResult:
        users = self._users()
        record = next((r for r in users.values() if r.get("id") == user.id), None)
        if record is None:
            logger.info("Local username update found no record user_id=%s", user.id)
            return AuthResult.failure("User not found")
        if username != record.get("username") and username in users:
            return AuthResult.failure("Username already exists")
        users.pop(str(record.get("username")), None)
        record["username"] = username
        users[username] = record
        try:
            self._save_users(users)
        except StorageError as exc:
            logger.exception("Local username update could not persist user_id=%s", user.id)
            return AuthResult.failure(f"Could not save user: {exc}")
        updated = user.model_copy(update={"username": username})
        self._user = updated
        return AuthResult.success(updated)

    def reset_password(self, email: str) -> AuthResult:
        # No mail delivery in local mode; only confirm the address is known.
        lowered = email.strip().lower()
        known = any(str(r.get("email") or "").lower() == lowered for r in self._users().values())
        if not known:
            return AuthResult.failure("Email not found")
        return AuthResult.success(message="Password reset is not available offline; the address is registered locally.")

    def restore(self, user: User | None) -> None:
        self._user = user
