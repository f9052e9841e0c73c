from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from simple_ledger.domain.models import (
    ALL,
    CategorySlice,
    MonthlyTotals,
    SortDirection,
    SortField,
    Summary,
    TransactionType,
)
from simple_ledger.domain.schemas import SortState, Transaction, TransactionFilters

RECENT_LIMIT = 5

_EPOCH_FLOOR = datetime.min.replace(tzinfo=timezone.utc)
_CENTS = Decimal("0.01")


def _money(value: float) -> Decimal:
    return Decimal(str(abs(value)))


def _to_float(value: Decimal) -> float:
    return float(value.quantize(_CENTS, rounding=ROUND_HALF_UP))


def summarize(transactions: Iterable[Transaction]) -> Summary:
    """Totals are summed as Decimal; ``net_balance`` is derived from the rounded totals."""
    total_income = Decimal("0")
    total_expense = Decimal("0")
    income_count = 0
    expense_count = 0
    for txn in transactions:
        if txn.type == TransactionType.INCOME:
            total_income += _money(txn.amount)
            income_count += 1
        else:
            total_expense += _money(txn.amount)
            expense_count += 1
    income = _to_float(total_income)
    expense = _to_float(total_expense)
    return Summary(
        total_income=income,
        total_expense=expense,
        net_balance=income - expense,
        income_count=income_count,
        expense_count=expense_count,
    )


def recent(transactions: Sequence[Transaction], limit: int = RECENT_LIMIT) -> list[Transaction]:
    """First ``limit`` rows in ledger (newest-added-first) order; never re-sorted by date."""
    return list(transactions[: max(limit, 0)])


def matches(txn: Transaction, filters: TransactionFilters) -> bool:
    search = filters.search.lower()
    if search and search not in txn.description.lower() and search not in txn.category.lower():
        return False

    if filters.category != ALL and txn.category != filters.category:
        return False

    wanted_type = filters.transaction_type
    if wanted_type is not None and txn.type != wanted_type:
        return False

    if filters.account != ALL and (txn.account_name or "") != filters.account:
        return False

    if filters.status != ALL and txn.status.value != filters.status:
        return False

    return True


def filter_transactions(transactions: Iterable[Transaction], filters: TransactionFilters | None = None) -> list[Transaction]:
    filters = filters or TransactionFilters()
    return [txn for txn in transactions if matches(txn, filters)]


def parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return _EPOCH_FLOOR
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _sort_key(field: SortField):
    if field == SortField.DATE:
        return lambda txn: parse_timestamp(txn.date)
    if field == SortField.AMOUNT:
        return lambda txn: abs(txn.amount)
    if field == SortField.CATEGORY:
        return lambda txn: txn.category
    return lambda txn: txn.description


def sort_transactions(transactions: Iterable[Transaction], sort: SortState | None = None) -> list[Transaction]:
    # sorted() is stable for reverse=True as well, so equal keys keep ledger order.
    sort = sort or SortState()
    return sorted(transactions, key=_sort_key(sort.field), reverse=sort.direction == SortDirection.DESC)


def category_breakdown(
    transactions: Iterable[Transaction],
    txn_type: TransactionType = TransactionType.EXPENSE,
) -> list[CategorySlice]:
    totals: dict[str, float] = defaultdict(float)
    for txn in transactions:
        if txn.type == txn_type:
            totals[txn.category] += abs(txn.amount)

    grand_total = sum(totals.values())
    slices = [
        CategorySlice(
            name=name,
            value=round(value, 2),
            percentage=round(value / grand_total * 100, 1) if grand_total else 0.0,
        )
        for name, value in totals.items()
    ]
    return sorted(slices, key=lambda s: s.value, reverse=True)


def monthly_history(transactions: Iterable[Transaction], months: int | None = None) -> list[MonthlyTotals]:
    groups: dict[str, dict[str, Decimal]] = defaultdict(lambda: {"income": Decimal("0"), "expense": Decimal("0")})
    for txn in transactions:
        stamp = parse_timestamp(txn.date)
        if stamp == _EPOCH_FLOOR:
            continue
        bucket = groups[f"{stamp.year:04d}-{stamp.month:02d}"]
        if txn.type == TransactionType.INCOME:
            bucket["income"] += _money(txn.amount)
        else:
            bucket["expense"] += _money(txn.amount)

    history = []
    for month, values in sorted(groups.items()):
        income = _to_float(values["income"])
        expense = _to_float(values["expense"])
        history.append(MonthlyTotals(month=month, income=income, expense=expense, balance=income - expense))
    if months is not None:
        history = history[-months:] if months > 0 else []
    return history
