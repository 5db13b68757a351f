"""Excel export of a reconciliation run."""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from bankrec.engine.models import (
    MatchConfidence,
    ReconciliationMatch,
    ReconciliationReport,
    obligation_amount,
    obligation_date,
)

MATCH_HEADERS = [
    "Date", "Amount", "Description", "Reference",
    "Obligation ID", "Obligation Date", "Obligation Amount", "Status",
    "Confidence", "Date Diff (days)", "Amount Diff", "Reason",
]
UNMATCHED_HEADERS = ["Date", "Amount", "Description", "Reference", "Account", "Reason"]

# 1-based columns holding money, formatted as amounts
MATCH_AMOUNT_COLUMNS = (2, 7, 11)
UNMATCHED_AMOUNT_COLUMNS = (2,)

MAX_COLUMN_WIDTH = 50


def _solid(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


def _iso(value) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


class ExcelReportGenerator:
    """Write reconciliation matches and their summary to an Excel workbook."""

    NAVY = "1F4E79"
    HEADER_FILL = _solid(NAVY)
    HEADER_FONT = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
    TITLE_FONT = Font(name="Calibri", size=16, bold=True, color=NAVY)
    SECTION_FONT = Font(name="Calibri", size=12, bold=True, color=NAVY)
    VALUE_FONT = Font(name="Calibri", size=13, bold=True)
    LABEL_FONT = Font(bold=True)
    _EDGE = Side(style="thin")
    GRID = Border(left=_EDGE, right=_EDGE, top=_EDGE, bottom=_EDGE)
    AMOUNT_FORMAT = "#,##0.00"

    CONFIDENCE_FILLS = {
        MatchConfidence.HIGH: _solid("C6EFCE"),
        MatchConfidence.MEDIUM: _solid("FFEB9C"),
        MatchConfidence.LOW: _solid("FCE4D6"),
    }
    UNMATCHED_FILL = _solid("FFC7CE")

    # A run is flagged on the summary below this match rate
    GOOD_MATCH_RATE = 95.0

    def generate(
        self,
        matches: Sequence[ReconciliationMatch],
        report: ReconciliationReport,
        output_path: str | Path,
    ) -> Path:
        """
        Generate Excel report with Summary, Matches and Unmatched tabs.

        Args:
            matches: Match list from a reconciliation run.
            report: Summary computed from the same matches.
            output_path: Destination .xlsx; missing directories are created.

        Returns:
            Path to the generated report.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        wb = Workbook()
        self._summary_sheet(wb, report)
        self._matches_sheet(wb, [m for m in matches if m.is_matched])
        self._unmatched_sheet(wb, [m for m in matches if not m.is_matched])

        wb.save(output_path)
        return output_path

    def _summary_sheet(self, wb: Workbook, report: ReconciliationReport) -> None:
        ws = wb.active
        ws.title = "Summary"
        ws.sheet_properties.tabColor = self.NAVY

        ws["A1"] = "Bank Statement Reconciliation"
        ws["A1"].font = self.TITLE_FONT
        ws["A2"] = f"Run at {datetime.now():%Y-%m-%d %H:%M}"
        ws["A2"].font = Font(italic=True, color="808080")

        counts = [
            ("Match Rate", f"{report.match_rate:.1f}%"),
            ("Transactions", report.total_transactions),
            ("Matched", report.matched),
            ("High Confidence", report.high_confidence),
            ("Medium Confidence", report.medium_confidence),
            ("Low Confidence", report.low_confidence),
            ("Unmatched", report.unmatched),
        ]
        next_row = self._write_block(ws, 4, "Results", counts)

        rate_cell = ws["B5"]
        rate_cell.fill = (
            self.CONFIDENCE_FILLS[MatchConfidence.HIGH]
            if report.match_rate >= self.GOOD_MATCH_RATE
            else self.UNMATCHED_FILL
        )
        if report.unmatched:
            ws[f"B{next_row - 1}"].fill = self.UNMATCHED_FILL

        amounts = [
            ("Total Amount", report.total_amount),
            ("Matched Amount", report.matched_amount),
            ("Unmatched Amount", report.unmatched_amount),
        ]
        end = self._write_block(ws, next_row + 1, "Amounts", amounts)
        for (cell,) in ws.iter_rows(min_row=end - len(amounts), max_row=end - 1, min_col=2, max_col=2):
            cell.number_format = self.AMOUNT_FORMAT

        ws.column_dimensions["A"].width = 24
        ws.column_dimensions["B"].width = 18

    def _write_block(self, ws, start_row: int, title: str, rows: List[Tuple[str, Any]]) -> int:
        """Write a titled label/value block; returns the first row after it."""
        ws.cell(row=start_row, column=1, value=title).font = self.SECTION_FONT

        row = start_row + 1
        for label, value in rows:
            ws.cell(row=row, column=1, value=label).font = self.LABEL_FONT
            if isinstance(value, Decimal):
                value = float(value)
            ws.cell(row=row, column=2, value=value).font = self.VALUE_FONT
            row += 1
        return row

    def _matches_sheet(self, wb: Workbook, matched: List[ReconciliationMatch]) -> None:
        ws = wb.create_sheet("Matches")
        ws.sheet_properties.tabColor = "00B050"
        self._header_row(ws, MATCH_HEADERS)

        for match in matched:
            txn = match.bank_transaction
            obligation = match.obligation
            self._append(
                ws,
                [
                    _iso(txn.date),
                    float(txn.amount),
                    txn.description[:50],
                    txn.reference or "",
                    str(obligation.id),
                    _iso(obligation_date(obligation)),
                    _money(obligation_amount(obligation)),
                    str(obligation.status or ""),
                    match.confidence.value,
                    match.date_diff_days,
                    _money(match.amount_diff),
                    match.reason,
                ],
                self.CONFIDENCE_FILLS[match.confidence],
                MATCH_AMOUNT_COLUMNS,
            )

        self._fit_columns(ws)

    def _unmatched_sheet(self, wb: Workbook, unmatched: List[ReconciliationMatch]) -> None:
        ws = wb.create_sheet("Unmatched")
        ws.sheet_properties.tabColor = "C00000"
        self._header_row(ws, UNMATCHED_HEADERS)

        for match in unmatched:
            txn = match.bank_transaction
            self._append(
                ws,
                [
                    _iso(txn.date),
                    float(txn.amount),
                    txn.description[:80],
                    txn.reference or "",
                    txn.account or "",
                    match.reason,
                ],
                self.UNMATCHED_FILL,
                UNMATCHED_AMOUNT_COLUMNS,
            )

        self._fit_columns(ws)

    def _header_row(self, ws, headers: List[str]) -> None:
        ws.append(headers)
        for cell in ws[1]:
            cell.font = self.HEADER_FONT
            cell.fill = self.HEADER_FILL
            cell.border = self.GRID
            cell.alignment = Alignment(horizontal="center", vertical="center")

        ws.freeze_panes = "A2"
        ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"

    def _append(self, ws, values: list, fill: PatternFill, amount_columns: Iterable[int]) -> None:
        ws.append(values)
        row = ws[ws.max_row]
        for cell in row:
            cell.fill = fill
        for column in amount_columns:
            row[column - 1].number_format = self.AMOUNT_FORMAT

    def _fit_columns(self, ws) -> None:
        """Size each column to its longest value, capped."""
        for column in ws.iter_cols():
            longest = max(len(str(cell.value)) for cell in column if cell.value is not None)
            letter = get_column_letter(column[0].column)
            ws.column_dimensions[letter].width = min(longest + 3, MAX_COLUMN_WIDTH)
