"""
Exceptions raised by the statement reconciliation engine.

Only fatal problems are exceptions: a statement in a format we do not read,
or content that cannot be decoded as its declared format. Skipped rows and
unmatched transactions are normal outcomes and never raise.
"""

from typing import Optional


class ReconciliationError(ValueError):
    """Base exception for reconciliation errors."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict] = None):
        self.message = message
        self.code = code or "RECONCILIATION_ERROR"
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Structured form for callers that report errors by kind."""
        return {"kind": self.code, "message": self.message, "details": dict(self.details)}


class UnsupportedFormatError(ReconciliationError):
    """Statement type is not one of csv, xlsx or xls."""

    def __init__(self, file_format: str):
        super().__init__(
            "Unsupported file format. Please use CSV or Excel (.xlsx, .xls)",
            code="UNSUPPORTED_FORMAT",
            details={"format": file_format},
        )


class FormatError(ReconciliationError):
    """Statement content could not be decoded as its declared format."""

    def __init__(self, file_format: str, reason: Optional[str] = None):
        message = f"Failed to read {file_format} statement"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            code="FORMAT_ERROR",
            details={"format": file_format, "reason": reason},
        )
