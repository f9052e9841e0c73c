from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError

from simple_ledger.application import aggregation
from simple_ledger.application.accounts import AccountRegistry
from simple_ledger.application.ledger import TransactionLedger
from simple_ledger.application.session import SessionContext
from simple_ledger.application.table import TransactionTable
from simple_ledger.domain.errors import LedgerValidationError, validation_message
from simple_ledger.domain.models import CategorySlice, MonthlyTotals, Summary, TransactionType
from simple_ledger.domain.schemas import (
    Account,
    AccountInput,
    Transaction,
    TransactionDraft,
    TransactionPatch,
)

logger = logging.getLogger(__name__)


def export_filename(today: date | None = None) -> str:
    return f"transacoes_{(today or date.today()).isoformat()}.json"


class FinanceDashboard:
    """Everything the screens need, scoped to the signed-in user."""

    def __init__(self, session: SessionContext, ledger: TransactionLedger, accounts: AccountRegistry) -> None:
        self.session = session
        self.ledger = ledger
        self.accounts = accounts

    @property
    def user_id(self) -> str:
        return self.session.require_user_id()

    def _owned(self, transaction_id: str) -> Transaction | None:
        txn = self.ledger.get(transaction_id)
        if txn is None or txn.user_id != self.user_id:
            return None
        return txn

    def _account_name(self, account_id: str | None) -> str | None:
        if not account_id:
            return None
        account = self.accounts.get(self.user_id, account_id)
        if account is None:
            raise LedgerValidationError(f"Unknown account {account_id!r}")
        return account.name

    # ---- transactions ----
    def transactions(self) -> list[Transaction]:
        return self.ledger.by_user(self.user_id)

    def add_transaction(self, draft: TransactionDraft | dict[str, Any]) -> Transaction:
        if not isinstance(draft, TransactionDraft):
            try:
                draft = TransactionDraft.model_validate(draft)
            except ValidationError as exc:
                raise LedgerValidationError(validation_message(exc)) from exc
        update: dict[str, Any] = {"user_id": self.user_id}
        if draft.account_id:
            update["account_name"] = self._account_name(draft.account_id)
        return self.ledger.add(draft.model_copy(update=update))

    def update_transaction(self, transaction_id: str, patch: TransactionPatch | dict[str, Any]) -> Transaction | None:
        if self._owned(transaction_id) is None:
            logger.info("FinanceDashboard update ignored id=%s (not found for user)", transaction_id)
            return None
        if not isinstance(patch, TransactionPatch):
            try:
                patch = TransactionPatch.model_validate(patch)
            except ValidationError as exc:
                raise LedgerValidationError(validation_message(exc)) from exc
        changes = patch.changes()
        if "account_id" in changes:
            patch = patch.model_copy(update={"account_name": self._account_name(changes["account_id"])})
        return self.ledger.update(transaction_id, patch)

    def delete_transaction(self, transaction_id: str) -> bool:
        if self._owned(transaction_id) is None:
            return False
        return self.ledger.delete(transaction_id)

    def delete_transactions(self, transaction_ids: Iterable[str]) -> int:
        return sum(1 for transaction_id in list(transaction_ids) if self.delete_transaction(transaction_id))

    def delete_selected(self, table: TransactionTable) -> int:
        removed = self.delete_transactions(table.selected)
        table.clear_selection()
        return removed

    def table_rows(self, table: TransactionTable) -> list[Transaction]:
        return table.rows(self.transactions())

    # ---- derived views ----
    def summary(self) -> Summary:
        return aggregation.summarize(self.transactions())

    def recent(self, limit: int = aggregation.RECENT_LIMIT) -> list[Transaction]:
        return aggregation.recent(self.transactions(), limit)

    def expense_breakdown(self) -> list[CategorySlice]:
        return aggregation.category_breakdown(self.transactions(), TransactionType.EXPENSE)

    def income_breakdown(self) -> list[CategorySlice]:
        return aggregation.category_breakdown(self.transactions(), TransactionType.INCOME)

    def history(self, months: int | None = None) -> list[MonthlyTotals]:
        return aggregation.monthly_history(self.transactions(), months)

    # ---- accounts ----
    def list_accounts(self) -> list[Account]:
        return self.accounts.list_by_user(self.user_id)

    def add_account(self, data: AccountInput | dict[str, Any]) -> Account:
        return self.accounts.add(self.user_id, data)

    def update_account(self, account_id: str, data: AccountInput | dict[str, Any]) -> Account | None:
        return self.accounts.update(self.user_id, account_id, data)

    def delete_account(self, account_id: str) -> bool:
        # Transactions keep their accountName snapshot.
        return self.accounts.delete(self.user_id, account_id)

    # ---- export ----
    def export_transactions(self, today: date | None = None) -> tuple[str, str]:
        payload = [txn.to_storage() for txn in self.transactions()]
        return export_filename(today), json.dumps(payload, ensure_ascii=False, indent=2)

    def export_to(self, directory: Path | str, today: date | None = None) -> Path:
        filename, body = self.export_transactions(today)
        target = Path(directory) / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(body, encoding="utf-8")
        logger.info("FinanceDashboard exported user_id=%s path=%s", self.user_id, target)
        return target
