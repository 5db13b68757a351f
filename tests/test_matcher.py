"""Tests for the reconciliation matcher engine."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from bankrec.engine.matcher import ReconciliationEngine
from bankrec.engine.models import BankTransaction, MatchConfidence, Repayment


def make_txn(
    date_str: str,
    amount: str,
    ref: str = None,
    desc: str = "Test",
    row: int = 0,
) -> BankTransaction:
    """Helper to create test transactions."""
    return BankTransaction(
        date=datetime.strptime(date_str, "%Y-%m-%d").date(),
        description=desc,
        amount=Decimal(amount),
        reference=ref,
        row_number=row,
    )


def make_repayment(
    id: str,
    due: str = None,
    amount: str = "0",
    status: str = "pending",
    txn_id: str = None,
    ref: str = None,
    paid: str = None,
) -> Repayment:
    """Helper to create test repayments."""
    return Repayment(
        id=id,
        due_date=datetime.strptime(due, "%Y-%m-%d").date() if due else None,
        paid_date=datetime.strptime(paid, "%Y-%m-%d").date() if paid else None,
        amount_due=Decimal(amount),
        status=status,
        transaction_id=txn_id,
        reference=ref,
    )


class TestReferenceMatching:
    """Strategy 1: reference / transaction id."""

    def test_transaction_id_match_is_high(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-02-01", "500.00", ref="TXN-9")]
        pool = [make_repayment("R1", "2024-06-01", "500.00", txn_id="TXN-9")]

        matches = engine.match(txns, pool)

        assert matches[0].obligation.id == "R1"
        assert matches[0].confidence == MatchConfidence.HIGH
        assert "reference" in matches[0].reason

    def test_obligation_id_embedded_in_bank_reference(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-02-01", "75.00", ref="NEFT/INV-0042/ACME")]
        pool = [make_repayment("INV-0042", "2024-09-01", "999.00")]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "INV-0042"
        assert matches[0].confidence == MatchConfidence.HIGH

    def test_bank_reference_embedded_in_obligation_reference(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-02-01", "75.00", ref="0042")]
        pool = [make_repayment("R7", "2024-09-01", "999.00", ref="LOAN-0042-A")]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "R7"

    def test_reference_preempts_better_amount_date_candidate(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "1200.00", ref="R2")]
        pool = [
            make_repayment("R1", "2024-04-10", "1200.00"),
            make_repayment("R2", "2024-12-25", "80.00"),
        ]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "R2"
        assert matches[0].confidence == MatchConfidence.HIGH

    def test_empty_identifiers_never_match(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "10.00", ref="ABC")]
        pool = [make_repayment("XYZ", None, "99.00", txn_id="", ref="  ")]

        matches = engine.match(txns, pool)
        assert not matches[0].is_matched


class TestAmountDateMatching:
    """Strategy 2: amount within tolerance, date within window."""

    def test_amount_and_date_proximity_is_medium(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "1200.00")]
        pool = [make_repayment("R1", "2024-04-08", "1200.00")]

        matches = engine.match(txns, pool)

        assert matches[0].obligation.id == "R1"
        assert matches[0].confidence == MatchConfidence.MEDIUM
        assert matches[0].date_diff_days == 2
        assert matches[0].reason == "Matched by amount and date (2 days, 0.00 difference)"

    def test_closest_date_wins(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "300.00")]
        pool = [
            make_repayment("FAR", "2024-04-14", "300.00", status="paid"),
            make_repayment("NEAR", "2024-04-09", "300.00", status="paid"),
        ]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "NEAR"

    def test_exact_amount_beats_one_cent_off(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "300.00")]
        pool = [
            make_repayment("CENT", "2024-04-10", "300.01"),
            make_repayment("EXACT", "2024-04-10", "300.00"),
        ]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "EXACT"

    def test_equal_scores_keep_pool_order(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "300.00")]
        pool = [
            make_repayment("FIRST", "2024-04-12", "300.00"),
            make_repayment("SECOND", "2024-04-08", "300.00"),
        ]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "FIRST"

    def test_paid_date_used_when_no_due_date(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "300.00")]
        pool = [make_repayment("R1", None, "300.00", status="paid", paid="2024-04-11")]

        matches = engine.match(txns, pool)
        assert matches[0].confidence == MatchConfidence.MEDIUM

    def test_datetime_transaction_date(self):
        engine = ReconciliationEngine()
        txn = BankTransaction(
            date=datetime(2024, 4, 10, 14, 30),
            description="Test",
            amount=Decimal("300.00"),
        )
        pool = [make_repayment("R1", "2024-04-08", "300.00", status="paid")]

        matches = engine.match([txn], pool)

        assert matches[0].confidence == MatchConfidence.MEDIUM
        assert matches[0].date_diff_days == 2

    def test_outside_window_falls_through(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "300.00")]
        pool = [make_repayment("R1", "2024-04-16", "300.00", status="paid")]

        matches = engine.match(txns, pool)
        assert not matches[0].is_matched


class TestToleranceBoundary:
    """Amount tolerance is inclusive at 0.01."""

    def test_exactly_one_cent_matches(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "500.00")]
        pool = [
            make_repayment("OVER", "2024-04-10", "500.0100001"),
            make_repayment("EDGE", "2024-04-10", "500.01"),
        ]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "EDGE"

    def test_just_over_one_cent_does_not_match(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "500.00")]
        pool = [make_repayment("OVER", "2024-04-10", "500.0100001")]

        matches = engine.match(txns, pool)
        assert not matches[0].is_matched

    def test_float_amounts_compare_exactly(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "100.00")]
        pool = [Repayment(id="R1", due_date=date(2024, 4, 10), amount_due=100.01)]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "R1"


class TestAmountOnlyMatching:
    """Strategy 3: amount only, pending/overdue obligations."""

    def test_pending_obligation_matches_low(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "250.00")]
        pool = [make_repayment("R1", "2024-01-01", "250.00", status="pending")]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "R1"
        assert matches[0].confidence == MatchConfidence.LOW
        assert matches[0].reason == "Matched by amount only (pending repayment)"

    def test_overdue_obligation_matches(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "250.00")]
        pool = [make_repayment("R1", "2023-11-01", "250.00", status="Overdue")]

        matches = engine.match(txns, pool)
        assert matches[0].is_matched

    def test_settled_obligation_never_amount_only(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "250.00")]
        pool = [make_repayment("R1", "2024-01-01", "250.00", status="paid")]

        matches = engine.match(txns, pool)
        assert not matches[0].is_matched

    def test_missing_status_never_amount_only(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-04-10", "250.00")]
        pool = [Repayment.from_dict({"id": "R1", "amountDue": 250})]

        matches = engine.match(txns, pool)

        assert pool[0].status == ""
        assert not matches[0].is_matched
        assert matches[0].reason == "No match found"


class TestNoMatch:
    """Transactions with no acceptable candidate."""

    def test_no_match_found(self):
        engine = ReconciliationEngine()
        txns = [make_txn("2024-01-01", "77.00")]
        pool = [
            make_repayment("R1", "2024-01-01", "78.00"),
            make_repayment("R2", "2024-01-02", "76.98"),
        ]

        matches = engine.match(txns, pool)

        assert matches[0].obligation is None
        assert matches[0].confidence == MatchConfidence.LOW
        assert matches[0].reason == "No match found"

    def test_invalid_date_recorded_not_raised(self):
        engine = ReconciliationEngine()
        txn = make_txn("2024-01-01", "77.00")
        txn.date = None
        pool = [make_repayment("R1", "2024-01-01", "77.00")]

        matches = engine.match([txn], pool)
        assert matches[0].reason == "Invalid date format"
        assert matches[0].obligation is None

    def test_empty_inputs(self):
        engine = ReconciliationEngine()
        matches, report = engine.reconcile([], [])
        assert matches == []
        assert report.match_rate == 0.0


class TestGreedyAssignment:
    """One obligation per run, statement order decides."""

    @pytest.fixture
    def batch(self):
        txns = [
            make_txn("2024-04-10", "100.00", row=2),
            make_txn("2024-04-10", "100.00", row=3),
            make_txn("2024-04-11", "100.00", ref="R3", row=4),
            make_txn("2024-04-12", "55.55", row=5),
        ]
        pool = [
            make_repayment("R1", "2024-04-10", "100.00"),
            make_repayment("R2", "2024-04-10", "100.00"),
            make_repayment("R3", "2024-04-11", "100.00"),
        ]
        return txns, pool

    def test_completeness(self, batch):
        txns, pool = batch
        matches = ReconciliationEngine().match(txns, pool)

        assert len(matches) == len(txns)
        assert [m.bank_transaction for m in matches] == txns

    def test_no_obligation_claimed_twice(self, batch):
        txns, pool = batch
        matches = ReconciliationEngine().match(txns, pool)

        ids = [m.obligation.id for m in matches if m.is_matched]
        assert len(ids) == len(set(ids))
        assert ids == ["R1", "R2", "R3"]

    def test_idempotent_across_runs(self, batch):
        txns, pool = batch
        engine = ReconciliationEngine()

        first = engine.match(txns, pool)
        second = engine.match(txns, pool)

        assert [(m.obligation and m.obligation.id, m.confidence, m.reason) for m in first] == \
               [(m.obligation and m.obligation.id, m.confidence, m.reason) for m in second]

    def test_earlier_transaction_claims_first(self):
        engine = ReconciliationEngine()
        pool = [make_repayment("R1", "2024-04-10", "100.00")]
        txns = [
            make_txn("2024-04-13", "100.00", row=2),
            make_txn("2024-04-10", "100.00", row=3),
        ]

        matches = engine.match(txns, pool)
        assert matches[0].obligation.id == "R1"
        assert not matches[1].is_matched

        reordered = engine.match(list(reversed(txns)), pool)
        assert reordered[0].bank_transaction.row_number == 3
        assert reordered[0].obligation.id == "R1"

    def test_reference_skips_claimed_obligation(self):
        engine = ReconciliationEngine()
        pool = [make_repayment("R1", "2024-04-10", "100.00")]
        txns = [
            make_txn("2024-04-10", "100.00", ref="R1"),
            make_txn("2024-04-10", "100.00", ref="R1"),
        ]

        matches = engine.match(txns, pool)
        assert matches[0].confidence == MatchConfidence.HIGH
        assert matches[1].obligation is None


class TestReconcile:
    """reconcile() pairs the matches with a report."""

    def test_report_from_matches(self):
        engine = ReconciliationEngine()
        txns = [
            make_txn("2024-04-10", "100.00", ref="R1"),
            make_txn("2024-04-10", "200.00"),
            make_txn("2024-04-10", "300.00"),
            make_txn("2024-04-10", "400.00"),
        ]
        pool = [
            make_repayment("R1", "2024-04-10", "100.00"),
            make_repayment("R2", "2024-04-09", "200.00"),
            make_repayment("R3", "2023-01-01", "300.00", status="overdue"),
        ]

        matches, report = engine.reconcile(txns, pool)

        assert report.matched == 3
        assert report.high_confidence == 1
        assert report.medium_confidence == 1
        assert report.low_confidence == 1
        assert report.unmatched == 1
        assert report.match_rate == 75.0
        assert report.unmatched_amount == Decimal("400.00")

    def test_custom_window(self):
        engine = ReconciliationEngine(date_window_days=10)
        txns = [make_txn("2024-04-10", "100.00")]
        pool = [make_repayment("R1", "2024-04-18", "100.00", status="paid")]

        matches = engine.match(txns, pool)
        assert matches[0].confidence == MatchConfidence.MEDIUM
