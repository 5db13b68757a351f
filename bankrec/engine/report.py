"""Summarize a list of reconciliation matches."""

from typing import Sequence

from bankrec.engine.models import MatchConfidence, ReconciliationMatch, ReconciliationReport


def build_report(matches: Sequence[ReconciliationMatch]) -> ReconciliationReport:
    """
    Reduce matches to counts and totals by confidence tier.

    ``low_confidence`` only counts low matches that found an obligation, so
    it can be told apart from plain non-matches. ``match_rate`` is a
    percentage and is 0 when there are no transactions.
    """
    report = ReconciliationReport(total_transactions=len(matches))

    for match in matches:
        amount = match.bank_transaction.amount
        report.total_amount += amount

        if not match.is_matched:
            report.unmatched += 1
            continue

        report.matched += 1
        report.matched_amount += amount
        if match.confidence == MatchConfidence.HIGH:
            report.high_confidence += 1
        elif match.confidence == MatchConfidence.MEDIUM:
            report.medium_confidence += 1
        else:
            report.low_confidence += 1

    report.unmatched_amount = report.total_amount - report.matched_amount
    if report.total_transactions:
        report.match_rate = report.matched * 100 / report.total_transactions

    return report
