from __future__ import annotations

import logging
import secrets
import time
from typing import Any

from pydantic import ValidationError

from simple_ledger.domain.errors import LedgerValidationError, StorageError, validation_message
from simple_ledger.domain.schemas import Account, AccountInput
from simple_ledger.infrastructure.persistence.store import ACCOUNTS_NAMESPACE, KeyValueStore, storage_key

logger = logging.getLogger(__name__)


def new_account_id() -> str:
    return f"account_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def _validate_input(data: AccountInput | dict[str, Any]) -> AccountInput:
    if isinstance(data, AccountInput):
        return data
    try:
        return AccountInput.model_validate(data)
    except ValidationError as exc:
        raise LedgerValidationError(validation_message(exc)) from exc


class AccountRegistry:
    """Per-user accounts/cards, stored one key per user as ``accounts_<userId>``."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._accounts: dict[str, list[Account]] = {}

    def _load(self, user_id: str) -> list[Account]:
        if user_id in self._accounts:
            return self._accounts[user_id]
        accounts: list[Account] = []
        for row in self._store.read_collection(ACCOUNTS_NAMESPACE, user_id):
            try:
                account = Account.model_validate(row)
            except ValidationError as exc:
                logger.warning("AccountRegistry skipped unreadable row user_id=%s: %s", user_id, validation_message(exc))
                continue
            if account.user_id == user_id:
                accounts.append(account)
        self._accounts[user_id] = accounts
        logger.info("AccountRegistry loaded user_id=%s accounts=%d", user_id, len(accounts))
        return accounts

    def _persist(self, user_id: str) -> None:
        accounts = self._accounts.get(user_id, [])
        try:
            self._store.write(ACCOUNTS_NAMESPACE, user_id, [a.to_storage() for a in accounts])
        except StorageError:
            logger.exception(
                "AccountRegistry could not persist key=%s; keeping in-memory state",
                storage_key(ACCOUNTS_NAMESPACE, user_id),
            )

    def list_by_user(self, user_id: str) -> list[Account]:
        return list(self._load(user_id))

    def get(self, user_id: str, account_id: str) -> Account | None:
        return next((a for a in self._load(user_id) if a.id == account_id), None)

    def add(self, user_id: str, data: AccountInput | dict[str, Any]) -> Account:
        validated = _validate_input(data)
        account = Account(id=new_account_id(), user_id=user_id, **validated.model_dump())
        self._load(user_id).append(account)
        self._persist(user_id)
        logger.info("AccountRegistry added id=%s user_id=%s type=%s", account.id, user_id, account.type.value)
        return account

    def update(self, user_id: str, account_id: str, data: AccountInput | dict[str, Any]) -> Account | None:
        validated = _validate_input(data)
        accounts = self._load(user_id)
        index = next((i for i, a in enumerate(accounts) if a.id == account_id), None)
        if index is None:
            logger.info("AccountRegistry update ignored unknown id=%s user_id=%s", account_id, user_id)
            return None
        replacement = Account(id=account_id, user_id=user_id, **validated.model_dump())
        accounts[index] = replacement
        self._persist(user_id)
        logger.info("AccountRegistry updated id=%s user_id=%s", account_id, user_id)
        return replacement

    def delete(self, user_id: str, account_id: str) -> bool:
        accounts = self._load(user_id)
        remaining = [a for a in accounts if a.id != account_id]
        if len(remaining) == len(accounts):
            logger.info("AccountRegistry delete ignored unknown id=%s user_id=%s", account_id, user_id)
            return False
        self._accounts[user_id] = remaining
        self._persist(user_id)
        logger.info("AccountRegistry deleted id=%s user_id=%s", account_id, user_id)
        return True

    def forget(self, user_id: str) -> None:
        """Drop the cached collection so the next read goes back to storage."""
        self._accounts.pop(user_id, None)
