"""Build bank transactions from statement rows."""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence

from bankrec.engine.models import BankTransaction
from bankrec.parsers.dates import normalize_date
from bankrec.parsers.field_mapper import FieldMapping, map_fields
from bankrec.parsers.tabular import RawTable, read_table

logger = logging.getLogger(__name__)

MISSING_DATE = "Missing date"
INVALID_DATE = "Invalid date format"
MISSING_AMOUNT = "Missing amount"
NON_POSITIVE_AMOUNT = "Non-positive amount"
UNMAPPED_COLUMNS = "No date or amount column"

AMOUNT_NOISE = re.compile(r"[^0-9.\-]")


class RowSkipped(ValueError):
    """A statement row that is not a transaction (header, subtotal, footer)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass
class StatementParseResult:
    """Transactions parsed from a statement plus what was left out."""
    transactions: List[BankTransaction] = field(default_factory=list)
    skipped: Counter = field(default_factory=Counter)
    discarded_rows: int = 0
    mapping: FieldMapping = field(default_factory=FieldMapping)

    @property
    def skipped_count(self) -> int:
        return sum(self.skipped.values())


class StatementParser:
    """Parse CSV/Excel bank statements into BankTransaction objects."""

    def parse(self, data: bytes, file_format: str) -> StatementParseResult:
        """
        Parse raw statement bytes.

        Args:
            data: File content.
            file_format: Declared format: csv, xlsx or xls.

        Returns:
            StatementParseResult; an empty transaction list is a valid result.

        Raises:
            UnsupportedFormatError: If the format is not supported.
            FormatError: If the content cannot be decoded.
        """
        table = read_table(data, file_format)
        return self.build(table)

    def build(self, table: RawTable) -> StatementParseResult:
        """Turn raw rows into transactions, dropping rows that are not ones."""
        mapping = map_fields(table.header)
        result = StatementParseResult(discarded_rows=table.discarded, mapping=mapping)

        if not mapping.is_usable:
            logger.info("No date or amount column in header %r; no transactions parsed", table.header)
            if table.rows:
                result.skipped[UNMAPPED_COLUMNS] = len(table.rows)
            return result

        # Row numbers are 1-based and count the header line
        for row_number, row in enumerate(table.rows, start=2):
            try:
                result.transactions.append(self._convert_row(row, mapping, row_number))
            except RowSkipped as e:
                result.skipped[e.reason] += 1
                logger.debug("Skipping row %d: %s", row_number, e.reason)

        logger.info(
            "Parsed %d transactions (%d rows skipped, %d malformed)",
            len(result.transactions), result.skipped_count, result.discarded_rows,
        )
        return result

    def _convert_row(self, row: Sequence[str], mapping: FieldMapping, row_number: int) -> BankTransaction:
        date_text = self._first_value(row, mapping.indexes("date"))
        if not date_text:
            raise RowSkipped(MISSING_DATE)

        amount = self._first_amount(row, mapping.indexes("amount"))

        txn_date = normalize_date(date_text)
        if txn_date is None:
            raise RowSkipped(INVALID_DATE)

        return BankTransaction(
            date=txn_date,
            description=self._first_value(row, mapping.indexes("description")) or "",
            amount=amount,
            reference=self._first_value(row, mapping.indexes("reference")),
            account=self._first_value(row, mapping.indexes("account")),
            row_number=row_number,
        )

    @staticmethod
    def _first_value(row: Sequence[str], indexes: Sequence[int]) -> Optional[str]:
        for index in indexes:
            if index < len(row) and row[index]:
                return row[index]
        return None

    def _first_amount(self, row: Sequence[str], indexes: Sequence[int]) -> Decimal:
        """First non-zero amount among the mapped columns (Debit/Credit pairs)."""
        seen_value = False
        for index in indexes:
            if index >= len(row) or not row[index]:
                continue
            seen_value = True
            amount = self._parse_amount(row[index])
            if amount is not None and amount > 0:
                return amount

        raise RowSkipped(NON_POSITIVE_AMOUNT if seen_value else MISSING_AMOUNT)

    @staticmethod
    def _parse_amount(value: str) -> Optional[Decimal]:
        """Strip currency symbols and separators, returning the magnitude."""
        cleaned = AMOUNT_NOISE.sub("", value)
        if not cleaned:
            return None
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            return None
        return None if not amount.is_finite() else abs(amount)
