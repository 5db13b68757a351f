"""Run a statement file through parsing, matching and reporting."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from bankrec.engine.matcher import ReconciliationEngine
from bankrec.engine.models import (
    MatchConfidence,
    Obligation,
    ReconciliationMatch,
    ReconciliationReport,
    Repayment,
)
from bankrec.exceptions import UnsupportedFormatError
from bankrec.parsers.statement_parser import StatementParseResult, StatementParser
from bankrec.parsers.tabular import SUPPORTED_FORMATS

logger = logging.getLogger(__name__)

CONFIDENCE_RANK = {
    MatchConfidence.LOW: 0,
    MatchConfidence.MEDIUM: 1,
    MatchConfidence.HIGH: 2,
}


@dataclass
class ReconciliationOutcome:
    """Everything a caller needs from one reconciliation run."""
    parse_result: StatementParseResult
    matches: List[ReconciliationMatch] = field(default_factory=list)
    report: ReconciliationReport = field(default_factory=ReconciliationReport)

    def accepted(self, min_confidence: MatchConfidence = MatchConfidence.MEDIUM) -> List[ReconciliationMatch]:
        """Matched entries at or above ``min_confidence``, the ones worth applying."""
        floor = CONFIDENCE_RANK[min_confidence]
        return [
            match for match in self.matches
            if match.is_matched and CONFIDENCE_RANK[match.confidence] >= floor
        ]


def detect_format(filename: str | Path) -> str:
    """
    Statement format from a file name.

    Raises:
        UnsupportedFormatError: For anything but .csv, .xlsx or .xls.
    """
    suffix = Path(filename).suffix.lower().lstrip(".")
    if suffix not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(suffix or str(filename))
    return suffix


def to_obligations(records: Iterable[Any]) -> List[Obligation]:
    """Accept obligation objects as-is and convert mappings to Repayment."""
    return [
        Repayment.from_dict(record) if isinstance(record, Mapping) else record
        for record in records
    ]


def reconcile_statement(
    data: bytes,
    file_format: str,
    obligations: Iterable[Any],
    engine: Optional[ReconciliationEngine] = None,
) -> ReconciliationOutcome:
    """
    Parse a statement and match its transactions against obligations.

    Args:
        data: Statement file content.
        file_format: csv, xlsx or xls.
        obligations: Objects satisfying the Obligation protocol, or mappings in
            the upstream record shape (``dueDate``, ``amountDue``...).
        engine: Matcher to use; defaults to the standard tolerances.

    Raises:
        UnsupportedFormatError: If the format is not supported.
        FormatError: If the statement cannot be decoded. No matches are
            computed in either case.
    """
    parse_result = StatementParser().parse(data, file_format)
    engine = engine or ReconciliationEngine()
    matches, report = engine.reconcile(parse_result.transactions, to_obligations(obligations))
    return ReconciliationOutcome(parse_result=parse_result, matches=matches, report=report)


def reconcile_file(
    file_path: str | Path,
    obligations: Iterable[Any],
    engine: Optional[ReconciliationEngine] = None,
) -> ReconciliationOutcome:
    """
    Reconcile a statement file on disk, detecting its format from the suffix.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        UnsupportedFormatError: For unsupported suffixes, before reading.
        FormatError: If the content cannot be decoded.
    """
    file_path = Path(file_path)
    file_format = detect_format(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Statement not found: {file_path}")

    logger.info("Reconciling %s statement %s", file_format, file_path.name)
    return reconcile_statement(file_path.read_bytes(), file_format, obligations, engine)
