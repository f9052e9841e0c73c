from __future__ import annotations

import datetime
import math
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from simple_ledger.domain.models import (
    ACCOUNT_TYPE_LABELS,
    ALL,
    CARD_TYPES,
    CATEGORIES,
    TYPE_FILTER_LABELS,
    AccountType,
    SortDirection,
    SortField,
    TransactionStatus,
    TransactionType,
)


def _today() -> str:
    return datetime.date.today().isoformat()


def _normalize_number_text(text: str) -> str:
    """Whichever of ``,``/``.`` comes last is the decimal separator."""
    text = text.strip().replace("R$", "").replace(" ", "")
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    return text.replace(",", ".")


def parse_magnitude(value: Any) -> Any:
    """Coerce user/stored amounts to a non-negative float; the sign lives in ``type``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            value = float(_normalize_number_text(value))
        except ValueError:
            return value
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError("amount must be a finite number")
        return abs(float(value))
    return value


def parse_balance(value: Any) -> float:
    """Free-text balance parsing: anything unparseable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    text = _normalize_number_text(str(value))
    if not text:
        return 0.0
    try:
        parsed = float(text)
    except ValueError:
        return 0.0
    return parsed if math.isfinite(parsed) else 0.0


def coerce_iso_date(value: Any) -> Any:
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text:
        raise ValueError("date is required")
    try:
        datetime.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"Invalid date {value!r}; expected ISO 8601 (YYYY-MM-DD)") from exc
    return text


def check_category(txn_type: TransactionType, category: str) -> None:
    allowed = CATEGORIES[txn_type]
    if category not in allowed:
        raise ValueError(
            f"Category {category!r} is not valid for {txn_type.value}; expected one of {', '.join(allowed)}"
        )


def _required_text(value: Any, label: str) -> Any:
    if value is None:
        raise ValueError(f"{label} is required")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError(f"{label} is required")
    return value


class Transaction(BaseModel):
    """
    A stored ledger row.

    ``amount`` is always a non-negative magnitude; legacy rows stored with a
    negative expense amount are normalized on load. ``account_name`` is a
    point-in-time snapshot of the account's name, not a live reference.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    type: TransactionType
    amount: float
    description: str
    category: str
    date: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    account_name: Optional[str] = Field(default=None, alias="accountName")
    status: TransactionStatus = TransactionStatus.CONFIRMED

    @field_validator("amount", mode="before")
    @classmethod
    def normalize_amount(cls, value: Any) -> Any:
        return parse_magnitude(value)

    @field_validator("description", "category")
    @classmethod
    def non_empty(cls, value: str, info) -> str:
        return _required_text(value, info.field_name)

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, value: Any) -> Any:
        return value or TransactionStatus.CONFIRMED

    @property
    def signed_amount(self) -> float:
        return self.amount if self.type == TransactionType.INCOME else -self.amount

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TransactionDraft(BaseModel):
    """Input for Ledger.add: a transaction without its generated id."""

    model_config = ConfigDict(populate_by_name=True)

    type: TransactionType
    amount: float
    description: str
    category: str
    date: str = Field(default_factory=_today)
    user_id: Optional[str] = Field(default=None, alias="userId")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    account_name: Optional[str] = Field(default=None, alias="accountName")
    status: Optional[TransactionStatus] = None

    @field_validator("amount", mode="before")
    @classmethod
    def normalize_amount(cls, value: Any) -> Any:
        return parse_magnitude(value)

    @field_validator("amount")
    @classmethod
    def non_zero(cls, value: float) -> float:
        if value == 0:
            raise ValueError("amount cannot be zero")
        return value

    @field_validator("description", "category", mode="before")
    @classmethod
    def non_empty(cls, value: Any, info) -> Any:
        return _required_text(value, info.field_name)

    @field_validator("date", mode="before")
    @classmethod
    def iso_date(cls, value: Any) -> Any:
        if value is None:
            return _today()
        return coerce_iso_date(value)

    @model_validator(mode="after")
    def category_matches_type(self) -> "TransactionDraft":
        check_category(self.type, self.category)
        return self


class TransactionPatch(BaseModel):
    """Partial update. Only explicitly provided fields are merged."""

    model_config = ConfigDict(populate_by_name=True)

    type: Optional[TransactionType] = None
    amount: Optional[float] = None
    description: Optional[str] = None
    category: Optional[str] = None
    date: Optional[str] = None
    account_id: Optional[str] = Field(default=None, alias="accountId")
    account_name: Optional[str] = Field(default=None, alias="accountName")
    status: Optional[TransactionStatus] = None

    @field_validator("amount", mode="before")
    @classmethod
    def normalize_amount(cls, value: Any) -> Any:
        return None if value is None else parse_magnitude(value)

    @field_validator("amount")
    @classmethod
    def non_zero(cls, value: Optional[float]) -> Optional[float]:
        if value == 0:
            raise ValueError("amount cannot be zero")
        return value

    @field_validator("description", "category", mode="before")
    @classmethod
    def non_empty(cls, value: Any, info) -> Any:
        if value is None:
            return None
        return _required_text(value, info.field_name)

    @field_validator("date", mode="before")
    @classmethod
    def iso_date(cls, value: Any) -> Any:
        return None if value is None else coerce_iso_date(value)

    def changes(self) -> dict[str, Any]:
        # Account fields may be cleared explicitly with None; everything else ignores None.
        provided = self.model_dump(exclude_unset=True)
        return {
            key: value
            for key, value in provided.items()
            if value is not None or key in ("account_id", "account_name")
        }


class AccountInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: AccountType
    bank: str
    brand: Optional[str] = None
    issuer: Optional[str] = None
    balance: float = 0.0

    @field_validator("name", "bank", mode="before")
    @classmethod
    def non_empty(cls, value: Any, info) -> Any:
        return _required_text(value, info.field_name)

    @field_validator("type", mode="before")
    @classmethod
    def type_required(cls, value: Any) -> Any:
        return _required_text(value, "type")

    @field_validator("brand", "issuer", mode="before")
    @classmethod
    def blank_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("balance", mode="before")
    @classmethod
    def lenient_balance(cls, value: Any) -> float:
        return parse_balance(value)

    @model_validator(mode="after")
    def drop_card_fields(self) -> "AccountInput":
        if self.type not in CARD_TYPES:
            self.brand = None
            self.issuer = None
        return self


class Account(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    name: str
    type: AccountType
    bank: str
    brand: Optional[str] = None
    issuer: Optional[str] = None
    balance: float = 0.0
    user_id: str = Field(alias="userId")

    @field_validator("balance", mode="before")
    @classmethod
    def lenient_balance(cls, value: Any) -> float:
        return parse_balance(value)

    @property
    def is_card(self) -> bool:
        return self.type in CARD_TYPES

    @property
    def type_label(self) -> str:
        return ACCOUNT_TYPE_LABELS[self.type]

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    created_at: Optional[str] = None


class AuthResult(BaseModel):
    """Outcome of an identity operation, normalized to a single message string."""

    ok: bool
    user: Optional[User] = None
    message: str = ""
    session_active: bool = True
    fallback_allowed: bool = False

    @classmethod
    def success(cls, user: Optional[User] = None, session_active: bool = True, message: str = "") -> "AuthResult":
        return cls(ok=True, user=user, session_active=session_active, message=message)

    @classmethod
    def failure(cls, message: str, fallback_allowed: bool = False) -> "AuthResult":
        return cls(ok=False, message=message or "Unexpected authentication error", fallback_allowed=fallback_allowed)


class TransactionFilters(BaseModel):
    """
    Compound filter over a user's transactions.

    Every predicate defaults to pass-through: ``search`` to the empty string,
    the others to the sentinel ``"all"``. ``type`` accepts the localized
    labels ``receita``/``despesa`` as well as ``income``/``expense``.
    """

    search: str = ""
    category: str = ALL
    type: str = ALL
    account: str = ALL
    status: str = ALL

    @field_validator("search", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("category", "account", "status", "type", mode="before")
    @classmethod
    def none_as_all(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return ALL
        return value

    @field_validator("type")
    @classmethod
    def known_type_label(cls, value: str) -> str:
        label = value.strip().lower()
        if label != ALL and label not in TYPE_FILTER_LABELS:
            raise ValueError(f"Unknown type filter {value!r}")
        return label

    @property
    def transaction_type(self) -> Optional[TransactionType]:
        if self.type == ALL:
            return None
        return TYPE_FILTER_LABELS[self.type]


class SortState(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: SortField = SortField.DATE
    direction: SortDirection = SortDirection.DESC

    def toggle(self, field: SortField | str) -> "SortState":
        """Same field flips direction; a new field starts descending."""
        field = SortField(field)
        if field == self.field:
            flipped = SortDirection.ASC if self.direction == SortDirection.DESC else SortDirection.DESC
            return SortState(field=field, direction=flipped)
        return SortState(field=field, direction=SortDirection.DESC)


class SignInRequest(BaseModel):
    identifier: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SignUpRequest(BaseModel):
    username: str
    password: str
    email: Optional[str] = None
    confirm_password: Optional[str] = None


class UsernameUpdate(BaseModel):
    username: str


class RemoteConfigRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    anon_key: str = Field(alias="anonKey")


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


class PasswordResetRequest(BaseModel):
    email: str = Field(min_length=1)
