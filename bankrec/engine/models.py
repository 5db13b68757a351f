"""Data models for the reconciliation engine."""

from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol

from bankrec.parsers.dates import normalize_date

OPEN_STATUSES = frozenset({"pending", "overdue"})


class MatchConfidence(Enum):
    """Confidence level of a match."""
    HIGH = "high"        # Reference/transaction ID match
    MEDIUM = "medium"    # Amount and date proximity
    LOW = "low"          # Amount only, or no match at all


@dataclass
class BankTransaction:
    """A single transaction extracted from a bank statement."""
    date: date
    description: str
    amount: Decimal
    reference: Optional[str] = None
    account: Optional[str] = None
    row_number: int = 0

    def __repr__(self) -> str:
        return (
            f"BankTransaction(row={self.row_number}, date={self.date}, "
            f"amount={self.amount}, desc={self.description[:30]!r})"
        )


class Obligation(Protocol):
    """
    Read-only view of an outstanding repayment the engine can match against.

    Any object exposing these attributes works; the engine never writes to it.
    """
    id: str
    due_date: Optional[date]
    paid_date: Optional[date]
    amount_due: Optional[Decimal]
    amount_paid: Optional[Decimal]
    status: str
    transaction_id: Optional[str]
    reference: Optional[str]


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return None if result.is_nan() else result


def _to_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return normalize_date(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "nan":
        return None
    return text


def obligation_date(obligation: Obligation) -> Optional[date]:
    """Due date, falling back to the paid date."""
    return _to_date(getattr(obligation, "due_date", None)) or _to_date(getattr(obligation, "paid_date", None))


def obligation_amount(obligation: Obligation) -> Optional[Decimal]:
    """Amount due, falling back to the amount paid."""
    return (
        _to_decimal(getattr(obligation, "amount_due", None))
        or _to_decimal(getattr(obligation, "amount_paid", None))
    )


def is_open(obligation: Obligation) -> bool:
    """Whether the obligation is still pending or overdue."""
    return str(obligation.status or "").strip().lower() in OPEN_STATUSES


@dataclass
class Repayment:
    """Concrete obligation record, e.g. a scheduled loan repayment."""
    id: str
    due_date: Optional[date] = None
    paid_date: Optional[date] = None
    amount_due: Optional[Decimal] = None
    amount_paid: Optional[Decimal] = None
    status: str = ""
    transaction_id: Optional[str] = None
    reference: Optional[str] = None

    # Record keys accepted by from_dict, camelCase first
    FIELD_ALIASES = {
        "id": ("id",),
        "due_date": ("dueDate", "due_date"),
        "paid_date": ("paidDate", "paidAt", "paid_date", "paid_at"),
        "amount_due": ("amountDue", "amount_due"),
        "amount_paid": ("amountPaid", "amount_paid"),
        "status": ("status",),
        "transaction_id": ("transactionId", "transaction_id"),
        "reference": ("reference",),
    }

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> "Repayment":
        """
        Build a repayment from an external record.

        Args:
            record: Mapping using either the camelCase keys of the upstream
                store (``dueDate``, ``amountDue``...) or snake_case keys.

        Raises:
            ValueError: If the record has no ``id``.
        """
        values: Dict[str, Any] = {}
        for name, keys in cls.FIELD_ALIASES.items():
            for key in keys:
                if key in record and record[key] is not None:
                    values[name] = record[key]
                    break

        repayment_id = _optional_str(values.get("id"))
        if repayment_id is None:
            raise ValueError(f"Repayment record has no id: {dict(record)!r}")

        return cls(
            id=repayment_id,
            due_date=_to_date(values.get("due_date")),
            paid_date=_to_date(values.get("paid_date")),
            amount_due=_to_decimal(values.get("amount_due")),
            amount_paid=_to_decimal(values.get("amount_paid")),
            status=_optional_str(values.get("status")) or "",
            transaction_id=_optional_str(values.get("transaction_id")),
            reference=_optional_str(values.get("reference")),
        )


@dataclass
class ReconciliationMatch:
    """Outcome for one bank transaction: the obligation it settles, if any."""
    bank_transaction: BankTransaction
    obligation: Optional[Obligation]
    confidence: MatchConfidence
    reason: str
    strategy: Optional[str] = None
    date_diff_days: Optional[int] = None
    amount_diff: Optional[Decimal] = None

    @property
    def is_matched(self) -> bool:
        """Check if an obligation was assigned."""
        return self.obligation is not None


@dataclass
class ReconciliationReport:
    """Summary statistics for a reconciliation run."""
    total_transactions: int = 0
    matched: int = 0
    unmatched: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    total_amount: Decimal = Decimal("0")
    matched_amount: Decimal = Decimal("0")
    unmatched_amount: Decimal = Decimal("0")
    match_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("total_amount", "matched_amount", "unmatched_amount"):
            data[key] = str(data[key])
        return data
