"""Map statement header names onto transaction fields."""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

# Checked in this order; the first field whose synonym appears in a header wins
FIELD_SYNONYMS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("date", ("date",)),
    ("description", ("description", "narration", "details", "memo", "particulars")),
    ("amount", ("amount", "debit", "credit", "value")),
    ("reference", ("reference", "ref", "transaction")),
    ("account", ("account",)),
)


@dataclass
class FieldMapping:
    """Column indexes feeding each transaction field, in header order."""
    columns: Dict[str, Tuple[int, ...]] = field(default_factory=dict)

    def indexes(self, field_name: str) -> Tuple[int, ...]:
        return self.columns.get(field_name, ())

    @property
    def is_usable(self) -> bool:
        """Rows can only become transactions when date and amount are mapped."""
        return bool(self.indexes("date")) and bool(self.indexes("amount"))


def classify_header(header: str) -> str:
    """Return the field a single header feeds, or an empty string."""
    name = str(header).strip().lower()
    for field_name, synonyms in FIELD_SYNONYMS:
        if any(synonym in name for synonym in synonyms):
            return field_name
    return ""


def map_fields(header: Sequence[str]) -> FieldMapping:
    """
    Map a header row onto date, description, amount, reference and account.

    Matching is case-insensitive substring matching, so "Value Date" feeds
    date and "Transaction ID" feeds reference. A field may be fed by several
    columns (e.g. separate Debit and Credit columns).
    """
    columns: Dict[str, List[int]] = {}
    for index, name in enumerate(header):
        field_name = classify_header(name)
        if field_name:
            columns.setdefault(field_name, []).append(index)

    return FieldMapping(columns={name: tuple(indexes) for name, indexes in columns.items()})
