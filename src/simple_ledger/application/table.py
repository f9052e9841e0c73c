from __future__ import annotations

import logging
from typing import Iterable, Sequence

from simple_ledger.application.aggregation import filter_transactions, sort_transactions, summarize
from simple_ledger.application.ledger import TransactionLedger
from simple_ledger.domain.models import SortField, Summary
from simple_ledger.domain.schemas import SortState, Transaction, TransactionFilters

logger = logging.getLogger(__name__)


class TransactionTable:
    """
    View state for the detailed transaction table.

    Holds the filter and sort configuration plus the bulk selection. Rows are
    recomputed from whatever transaction snapshot is passed in; nothing here
    is cached or persisted.
    """

    def __init__(self, filters: TransactionFilters | None = None, sort: SortState | None = None) -> None:
        self.filters = filters or TransactionFilters()
        self.sort = sort or SortState()
        self._selected: dict[str, None] = {}

    def rows(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        return sort_transactions(filter_transactions(transactions, self.filters), self.sort)

    def totals(self, transactions: Iterable[Transaction]) -> Summary:
        return summarize(filter_transactions(transactions, self.filters))

    def set_filters(self, **changes: str) -> TransactionFilters:
        self.filters = TransactionFilters.model_validate({**self.filters.model_dump(), **changes})
        return self.filters

    def sort_by(self, field: SortField | str) -> SortState:
        self.sort = self.sort.toggle(field)
        return self.sort

    @property
    def selected(self) -> list[str]:
        return list(self._selected)

    def is_selected(self, transaction_id: str) -> bool:
        return transaction_id in self._selected

    def toggle(self, transaction_id: str) -> None:
        if transaction_id in self._selected:
            del self._selected[transaction_id]
        else:
            self._selected[transaction_id] = None

    def toggle_all(self, visible: Sequence[Transaction]) -> None:
        """Select every visible row, or clear when they are all already selected."""
        if set(self._selected) == {txn.id for txn in visible}:
            self._selected.clear()
        else:
            self._selected = {txn.id: None for txn in visible}

    def clear_selection(self) -> None:
        self._selected.clear()

    def delete_selected(self, ledger: TransactionLedger) -> int:
        ids = self.selected
        removed = sum(1 for transaction_id in ids if ledger.delete(transaction_id))
        self._selected.clear()
        logger.info("TransactionTable bulk delete requested=%d removed=%d", len(ids), removed)
        return removed

    def reset(self) -> None:
        self.filters = TransactionFilters()
        self.sort = SortState()
        self._selected.clear()
