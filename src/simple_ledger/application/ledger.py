from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Iterable

from pydantic import ValidationError

from simple_ledger.domain.errors import LedgerValidationError, StorageError, validation_message
from simple_ledger.domain.schemas import Transaction, TransactionDraft, TransactionPatch, check_category
from simple_ledger.infrastructure.persistence.store import TRANSACTIONS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def new_transaction_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"transaction_{int(time.time() * 1000)}_{suffix}"


class TransactionLedger:
    """
    Ordered collection of every user's transactions.

    Newest additions come first regardless of their ``date``. All users share
    one storage key; reads are partitioned by ``user_id`` in memory. Each
    mutation rewrites the whole collection, which is fine for a single user's
    hundreds to low thousands of rows but is the scaling limit of this design.
    """

    def __init__(self, store: KeyValueStore, autoload: bool = True) -> None:
        self._store = store
        self._transactions: list[Transaction] = []
        if autoload:
            self.load()

    def load(self) -> None:
        rows = self._store.read_collection(TRANSACTIONS_KEY)
        loaded: list[Transaction] = []
        skipped = 0
        for row in rows:
            try:
                loaded.append(Transaction.model_validate(row))
            except ValidationError as exc:
                skipped += 1
                logger.warning("Ledger skipped unreadable row id=%s: %s", _row_id(row), validation_message(exc))
        self._transactions = loaded
        logger.info("Ledger loaded transactions=%d skipped=%d", len(loaded), skipped)

    def _persist(self) -> None:
        try:
            self._store.write(TRANSACTIONS_KEY, None, [t.to_storage() for t in self._transactions])
        except StorageError:
            logger.exception("Ledger could not persist %d transactions; keeping in-memory state", len(self._transactions))

    def __len__(self) -> int:
        return len(self._transactions)

    def all(self) -> list[Transaction]:
        return list(self._transactions)

    def get(self, transaction_id: str) -> Transaction | None:
        return next((t for t in self._transactions if t.id == transaction_id), None)

    def by_user(self, user_id: str) -> list[Transaction]:
        return [t for t in self._transactions if t.user_id == user_id]

    def add(self, draft: TransactionDraft | dict[str, Any]) -> Transaction:
        if not isinstance(draft, TransactionDraft):
            try:
                draft = TransactionDraft.model_validate(draft)
            except ValidationError as exc:
                raise LedgerValidationError(validation_message(exc)) from exc

        if not draft.user_id:
            raise LedgerValidationError("userId: transaction must belong to a user")

        data = draft.model_dump()
        data["id"] = new_transaction_id()
        data["status"] = draft.status or "confirmado"
        transaction = Transaction.model_validate(data)

        self._transactions.insert(0, transaction)
        self._persist()
        logger.info("Ledger added id=%s user_id=%s type=%s", transaction.id, transaction.user_id, transaction.type.value)
        return transaction

    def update(self, transaction_id: str, patch: TransactionPatch | dict[str, Any]) -> Transaction | None:
        index = next((i for i, t in enumerate(self._transactions) if t.id == transaction_id), None)
        if index is None:
            logger.info("Ledger update ignored unknown id=%s", transaction_id)
            return None

        if not isinstance(patch, TransactionPatch):
            try:
                patch = TransactionPatch.model_validate(patch)
            except ValidationError as exc:
                raise LedgerValidationError(validation_message(exc)) from exc

        changes = patch.changes()
        if not changes:
            return self._transactions[index]

        current = self._transactions[index]
        merged = current.model_dump()
        merged.update(changes)
        try:
            updated = Transaction.model_validate(merged)
            if "type" in changes or "category" in changes:
                check_category(updated.type, updated.category)
        except ValidationError as exc:
            raise LedgerValidationError(validation_message(exc)) from exc
        except ValueError as exc:
            raise LedgerValidationError(str(exc)) from exc

        self._transactions[index] = updated
        self._persist()
        logger.info("Ledger updated id=%s fields=%s", transaction_id, ",".join(sorted(changes)))
        return updated

    def delete(self, transaction_id: str) -> bool:
        remaining = [t for t in self._transactions if t.id != transaction_id]
        if len(remaining) == len(self._transactions):
            logger.info("Ledger delete ignored unknown id=%s", transaction_id)
            return False
        self._transactions = remaining
        self._persist()
        logger.info("Ledger deleted id=%s", transaction_id)
        return True

    def delete_many(self, transaction_ids: Iterable[str]) -> int:
        return sum(1 for transaction_id in list(transaction_ids) if self.delete(transaction_id))


def _row_id(row: Any) -> str:
    return str(row.get("id")) if isinstance(row, dict) else "?"
