from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    CONFIRMED = "confirmado"
    PENDING = "pendente"
    CANCELLED = "cancelado"


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"


class SortField(str, Enum):
    DATE = "date"
    AMOUNT = "amount"
    CATEGORY = "category"
    DESCRIPTION = "description"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


CATEGORIES: dict[TransactionType, tuple[str, ...]] = {
    TransactionType.INCOME: ("Salário", "Freelance", "Investimentos", "Outros"),
    TransactionType.EXPENSE: ("Alimentação", "Transporte", "Moradia", "Saúde", "Lazer", "Outros"),
}

CARD_TYPES = frozenset({AccountType.CREDIT_CARD, AccountType.DEBIT_CARD})

ACCOUNT_TYPE_LABELS: dict[AccountType, str] = {
    AccountType.CHECKING: "Conta Corrente",
    AccountType.SAVINGS: "Conta Poupança",
    AccountType.CREDIT_CARD: "Cartão de Crédito",
    AccountType.DEBIT_CARD: "Cartão de Débito",
}

# Localized labels used by the type filter.
TYPE_FILTER_LABELS: dict[str, TransactionType] = {
    "receita": TransactionType.INCOME,
    "despesa": TransactionType.EXPENSE,
    "income": TransactionType.INCOME,
    "expense": TransactionType.EXPENSE,
}

ALL = "all"


@dataclass(frozen=True)
class Summary:
    total_income: float
    total_expense: float
    net_balance: float
    income_count: int = 0
    expense_count: int = 0


@dataclass(frozen=True)
class CategorySlice:
    name: str
    value: float
    percentage: float


@dataclass(frozen=True)
class MonthlyTotals:
    month: str  # YYYY-MM
    income: float
    expense: float
    balance: float
