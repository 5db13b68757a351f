"""CLI entry point for bank statement reconciliation."""

import logging
import sys
from pathlib import Path
from typing import List

import click
import pandas as pd

from bankrec.engine.matcher import (
    DEFAULT_AMOUNT_TOLERANCE,
    DEFAULT_DATE_WINDOW_DAYS,
    ReconciliationEngine,
)
from bankrec.engine.models import Obligation, Repayment
from bankrec.exceptions import ReconciliationError
from bankrec.pipeline import reconcile_file
from bankrec.reports.excel_report import ExcelReportGenerator

logger = logging.getLogger(__name__)


def validate_window(ctx, param, value):
    """Validate date window is non-negative."""
    if value < 0:
        raise click.BadParameter("Date window must be non-negative.")
    return value


def validate_tolerance(ctx, param, value):
    """Validate amount tolerance is non-negative."""
    if value < 0:
        raise click.BadParameter("Amount tolerance must be non-negative.")
    return value


def load_obligations(path: Path) -> List[Obligation]:
    """
    Read repayment records from a JSON (list of records) or CSV file.

    Raises:
        ValueError: For other file types or records without an id.
    """
    suffix = path.suffix.lower()
    if suffix == ".json":
        df = pd.read_json(path, orient="records", dtype=False, convert_dates=False)
    elif suffix == ".csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    else:
        raise ValueError(f"Unsupported obligations file: {suffix}. Use .json or .csv")

    return [Repayment.from_dict(record) for record in df.to_dict(orient="records")]


@click.command()
@click.option(
    "--statement", "-s",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Bank statement file (.csv, .xlsx or .xls).",
)
@click.option(
    "--obligations", "-r",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Repayments to match against (.json list of records or .csv).",
)
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False),
    default=None,
    help="Optional path for an Excel report.",
)
@click.option(
    "--date-window", "-d",
    default=DEFAULT_DATE_WINDOW_DAYS,
    type=int,
    callback=validate_window,
    help=f"Maximum days between statement and due date (default: {DEFAULT_DATE_WINDOW_DAYS}).",
)
@click.option(
    "--amount-tolerance", "-a",
    default=float(DEFAULT_AMOUNT_TOLERANCE),
    type=float,
    callback=validate_tolerance,
    help=f"Maximum absolute amount difference (default: {DEFAULT_AMOUNT_TOLERANCE}).",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every match decision.")
def main(
    statement: str,
    obligations: str,
    output: str,
    date_window: int,
    amount_tolerance: float,
    verbose: bool,
) -> None:
    """
    Bank Statement Reconciliation

    Matches the transactions of a CSV or Excel bank statement against
    outstanding repayments and prints a summary.

    Example:
        bank-recon --statement march.csv --obligations repayments.json -o report.xlsx
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        pool = load_obligations(Path(obligations))
        click.echo(f"  Loaded {len(pool)} obligations")

        engine = ReconciliationEngine(
            date_window_days=date_window,
            amount_tolerance=amount_tolerance,
        )
        outcome = reconcile_file(Path(statement), pool, engine)
        report = outcome.report

        click.echo(f"  Parsed {report.total_transactions} transactions "
                   f"({outcome.parse_result.skipped_count} rows skipped)")

        click.echo("\n" + "=" * 60)
        click.echo("  RECONCILIATION SUMMARY")
        click.echo("=" * 60)
        click.echo(f"  Match Rate:           {report.match_rate:.1f}%")
        click.echo(f"  Matched:              {report.matched}")
        click.echo(f"    +-- High:           {report.high_confidence}")
        click.echo(f"    +-- Medium:         {report.medium_confidence}")
        click.echo(f"    +-- Low:            {report.low_confidence}")
        click.echo(f"  Unmatched:            {report.unmatched}")
        click.echo(f"  Total Amount:         {report.total_amount:,.2f}")
        click.echo(f"  Matched Amount:       {report.matched_amount:,.2f}")
        click.echo(f"  Unmatched Amount:     {report.unmatched_amount:,.2f}")
        click.echo("=" * 60)

        if output:
            output_path = ExcelReportGenerator().generate(outcome.matches, report, output)
            click.echo(f"\n  Report saved to: {output_path.absolute()}")

    except ReconciliationError as e:
        click.echo(f"\n  ERROR [{e.code}]: {e.message}", err=True)
        sys.exit(1)
    except FileNotFoundError as e:
        click.echo(f"\n  ERROR: {e}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"\n  ERROR: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error during reconciliation")
        click.echo(f"\n  UNEXPECTED ERROR: {e}", err=True)
        sys.exit(2)


if __name__ == "__main__":
    main()
