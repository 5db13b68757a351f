"""Core reconciliation matching engine."""

import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from bankrec.engine.models import (
    BankTransaction,
    MatchConfidence,
    Obligation,
    ReconciliationMatch,
    ReconciliationReport,
    is_open,
    obligation_amount,
    obligation_date,
)
from bankrec.engine.report import build_report

logger = logging.getLogger(__name__)

DEFAULT_DATE_WINDOW_DAYS = 5
DEFAULT_AMOUNT_TOLERANCE = Decimal("0.01")
DEFAULT_MIN_SCORE = Decimal("0.1")

SCORE_OFFSET = Decimal("0.01")

STRATEGY_REFERENCE = "reference"
STRATEGY_AMOUNT_DATE = "amount_date"
STRATEGY_AMOUNT_ONLY = "amount_only"

NO_MATCH_REASON = "No match found"
INVALID_DATE_REASON = "Invalid date format"


class ReconciliationEngine:
    """
    Match bank statement transactions against outstanding obligations.

    Matching Strategy (first success wins, per transaction):
    1. Reference: the transaction reference equals or contains/is contained in
       an obligation id, transaction id or reference. Confidence high.
    2. Amount + date: amount within tolerance and date within the window,
       best score (1 / (days + 1)) * (1 / (amount_diff + 0.01)). Confidence medium.
    3. Amount only: first pending/overdue obligation within tolerance.
       Confidence low.

    Assignment is greedy: transactions are processed in statement order and an
    obligation claimed by one transaction is unavailable to later ones.
    """

    def __init__(
        self,
        date_window_days: int = DEFAULT_DATE_WINDOW_DAYS,
        amount_tolerance: float | Decimal = DEFAULT_AMOUNT_TOLERANCE,
        min_score: float | Decimal = DEFAULT_MIN_SCORE,
    ):
        """
        Initialize the reconciliation engine.

        Args:
            date_window_days: Maximum days between transaction and obligation date
                for the amount + date strategy.
            amount_tolerance: Maximum absolute amount difference, inclusive.
            min_score: Amount + date candidates must score above this.
        """
        self.date_window_days = date_window_days
        self.amount_tolerance = Decimal(str(amount_tolerance))
        self.min_score = Decimal(str(min_score))

    def reconcile(
        self,
        transactions: Sequence[BankTransaction],
        obligations: Iterable[Obligation],
    ) -> Tuple[List[ReconciliationMatch], ReconciliationReport]:
        """
        Match transactions and summarize the run.

        Returns:
            Tuple of (one match per transaction, report).
        """
        matches = self.match(transactions, obligations)
        return matches, build_report(matches)

    def match(
        self,
        transactions: Sequence[BankTransaction],
        obligations: Iterable[Obligation],
    ) -> List[ReconciliationMatch]:
        """
        Produce exactly one ReconciliationMatch per transaction, in input order.

        Obligations are evaluated in the order supplied; reordering either input
        can change the result.
        """
        pool = list(obligations)
        amount_index = self._build_amount_index(pool)
        claimed: Set[str] = set()
        matches: List[ReconciliationMatch] = []

        for txn in transactions:
            match = self._match_transaction(txn, pool, amount_index, claimed)
            if match.obligation is not None:
                claimed.add(match.obligation.id)
                logger.debug(
                    "Row %s matched obligation %s (%s): %s",
                    txn.row_number, match.obligation.id, match.confidence.value, match.reason,
                )
            matches.append(match)

        logger.info(
            "Matched %d of %d transactions against %d obligations",
            len(claimed), len(matches), len(pool),
        )
        return matches

    def _match_transaction(
        self,
        txn: BankTransaction,
        pool: List[Obligation],
        amount_index: Dict[int, List[Tuple[int, Decimal]]],
        claimed: Set[str],
    ) -> ReconciliationMatch:
        if not isinstance(txn.date, date):
            return ReconciliationMatch(
                bank_transaction=txn,
                obligation=None,
                confidence=MatchConfidence.LOW,
                reason=INVALID_DATE_REASON,
            )

        candidates = [
            pool[position]
            for position in self._amount_candidates(txn.amount, amount_index)
            if pool[position].id not in claimed
        ]

        return (
            self._find_reference_match(txn, pool, claimed)
            or self._find_amount_date_match(txn, candidates)
            or self._find_amount_only_match(txn, candidates)
            or ReconciliationMatch(
                bank_transaction=txn,
                obligation=None,
                confidence=MatchConfidence.LOW,
                reason=NO_MATCH_REASON,
            )
        )

    def _find_reference_match(
        self,
        txn: BankTransaction,
        pool: List[Obligation],
        claimed: Set[str],
    ) -> Optional[ReconciliationMatch]:
        """First unclaimed obligation whose identifiers match the reference."""
        reference = (txn.reference or "").strip()
        if not reference:
            return None

        for obligation in pool:
            if obligation.id in claimed:
                continue
            if any(_references_match(reference, ident) for ident in _identifiers(obligation)):
                return ReconciliationMatch(
                    bank_transaction=txn,
                    obligation=obligation,
                    confidence=MatchConfidence.HIGH,
                    reason="Matched by reference/transaction ID",
                    strategy=STRATEGY_REFERENCE,
                )

        return None

    def _find_amount_date_match(
        self,
        txn: BankTransaction,
        candidates: List[Obligation],
    ) -> Optional[ReconciliationMatch]:
        """Best-scoring obligation within the date window and amount tolerance."""
        # Caller-built transactions may carry a datetime; compare calendar days
        txn_date = txn.date.date() if isinstance(txn.date, datetime) else txn.date
        scored = []

        for obligation in candidates:
            due = obligation_date(obligation)
            if due is None:
                continue
            days_diff = abs((txn_date - due).days)
            if days_diff > self.date_window_days:
                continue
            amount_diff = abs(obligation_amount(obligation) - txn.amount)
            score = (Decimal(1) / (days_diff + 1)) * (Decimal(1) / (amount_diff + SCORE_OFFSET))
            scored.append((score, days_diff, amount_diff, obligation))

        if not scored:
            return None

        # Stable sort keeps pool order among equal scores
        scored.sort(key=lambda item: item[0], reverse=True)
        score, days_diff, amount_diff, obligation = scored[0]
        if score <= self.min_score:
            return None

        return ReconciliationMatch(
            bank_transaction=txn,
            obligation=obligation,
            confidence=MatchConfidence.MEDIUM,
            reason=f"Matched by amount and date ({days_diff} days, {amount_diff:.2f} difference)",
            strategy=STRATEGY_AMOUNT_DATE,
            date_diff_days=days_diff,
            amount_diff=amount_diff,
        )

    def _find_amount_only_match(
        self,
        txn: BankTransaction,
        candidates: List[Obligation],
    ) -> Optional[ReconciliationMatch]:
        """First open (pending/overdue) obligation within the amount tolerance."""
        for obligation in candidates:
            if not is_open(obligation):
                continue
            return ReconciliationMatch(
                bank_transaction=txn,
                obligation=obligation,
                confidence=MatchConfidence.LOW,
                reason="Matched by amount only (pending repayment)",
                strategy=STRATEGY_AMOUNT_ONLY,
                amount_diff=abs(obligation_amount(obligation) - txn.amount),
            )
        return None

    def _build_amount_index(self, pool: List[Obligation]) -> Dict[int, List[Tuple[int, Decimal]]]:
        """Index (pool position, amount) pairs by amount in whole cents, floored."""
        index: Dict[int, List[Tuple[int, Decimal]]] = defaultdict(list)
        for position, obligation in enumerate(pool):
            amount = obligation_amount(obligation)
            if amount is not None:
                index[_cents_bucket(amount)].append((position, amount))
        return index

    def _amount_candidates(
        self,
        amount: Decimal,
        index: Dict[int, List[Tuple[int, Decimal]]],
    ) -> List[int]:
        """Pool positions whose amount is within tolerance, in pool order."""
        positions = []
        low = _cents_bucket(amount - self.amount_tolerance)
        high = _cents_bucket(amount + self.amount_tolerance)
        for bucket in range(low, high + 1):
            for position, candidate_amount in index.get(bucket, ()):
                if abs(candidate_amount - amount) <= self.amount_tolerance:
                    positions.append(position)
        return sorted(positions)


def _cents_bucket(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_FLOOR))


def _identifiers(obligation: Obligation) -> List[str]:
    values = (
        obligation.id,
        getattr(obligation, "transaction_id", None),
        getattr(obligation, "reference", None),
    )
    return [str(value).strip() for value in values if value is not None and str(value).strip()]


def _references_match(reference: str, identifier: str) -> bool:
    """Exact match, or either value embedded in the other."""
    return reference == identifier or identifier in reference or reference in identifier
