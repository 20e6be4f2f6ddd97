"""
Unit Tests for ReconciliationService

Covers:
- Passes over a statement with the in-memory stores
- Idempotence and link consistency
- Manual overrides surviving later passes
- Lease contention
- Rollback on failure, timeout and cancellation
- Variance report and transaction listing

Run with: pytest tests/test_reconciliation_service.py -v
"""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from database.statement_models import MatchStatus
from reconciliation.exceptions import (
    LockContention,
    ReconciliationFailed,
    StatementNotFound,
)
from reconciliation.services.reconciliation_service import ReconciliationService


@pytest.fixture
def january(backend):
    """A small January statement with one of each outcome."""
    backend.add_statement(
        period_start=date(2024, 1, 1),
        period_end=date(2024, 1, 31),
        beginning_balance=Decimal("1000.00"),
        ending_balance=Decimal("807.83"),
    )
    backend.add_transaction("t-office", date(2024, 1, 11), "-250.00", description="OFFICE DEPOT")
    backend.add_transaction("t-fuel", date(2024, 1, 20), "-105.00", description="SHELL")
    backend.add_transaction("t-misc", date(2024, 1, 25), "-42.17", description="UNKNOWN")
    backend.add_transaction("t-deposit", date(2024, 1, 15), "205.00", description="CLIENT PAYMENT")

    backend.add_expense("e-office", date(2024, 1, 10), "250.00")
    backend.add_expense("e-fuel", date(2024, 1, 20), "100.00")
    return backend


class TestReconcile:
    """Test a single pass."""

    @pytest.mark.asyncio
    async def test_classifies_every_transaction(self, service, january, links_consistent):
        result = await service.reconcile("stmt-1")

        assert january.transaction("t-office").match_status == MatchStatus.MATCHED
        assert january.transaction("t-office").matched_expense_id == "e-office"
        assert january.transaction("t-fuel").match_status == MatchStatus.DISCREPANCY
        assert january.transaction("t-fuel").matched_expense_id == "e-fuel"
        assert "$5.00" in january.transaction("t-fuel").match_notes
        assert january.transaction("t-misc").match_status == MatchStatus.UNMATCHED
        assert january.transaction("t-misc").matched_expense_id is None

        assert january.expense("e-office").bank_transaction_id == "t-office"
        assert january.expense("e-fuel").bank_transaction_id == "t-fuel"
        links_consistent(january)

        assert result.processed_count == 4
        assert result.matched_count == 1
        assert result.discrepancy_count == 1
        assert result.unmatched_count == 2
        assert result.ignored_count == 0

    @pytest.mark.asyncio
    async def test_counts_add_up_to_statement_size(self, service, january):
        result = await service.reconcile("stmt-1")

        total = (
            result.matched_count + result.discrepancy_count
            + result.unmatched_count + result.ignored_count
        )
        assert total == len(january.statement_transactions())

    @pytest.mark.asyncio
    async def test_totals_follow_signed_amounts(self, service, january):
        result = await service.reconcile("stmt-1")

        assert result.deposits_total == Decimal("205.00")
        assert result.withdrawals_total == Decimal("397.17")

    @pytest.mark.asyncio
    async def test_unknown_statement(self, service, backend):
        with pytest.raises(StatementNotFound):
            await service.reconcile("missing")

    @pytest.mark.asyncio
    async def test_empty_statement(self, service, backend):
        backend.add_statement()

        result = await service.reconcile("stmt-1")

        assert result.processed_count == 0
        assert result.matched_count == 0
        assert result.decisions == []

    @pytest.mark.asyncio
    async def test_expenses_from_other_companies_are_ignored(self, service, backend):
        backend.add_statement()
        backend.add_transaction("t1", date(2024, 1, 10), "-60.00")
        backend.add_expense("e-other", date(2024, 1, 10), "60.00", company_id="company-2")

        await service.reconcile("stmt-1")

        assert backend.transaction("t1").match_status == MatchStatus.UNMATCHED
        assert backend.expense("e-other").bank_transaction_id is None

    @pytest.mark.asyncio
    async def test_expense_linked_elsewhere_is_not_reused(self, service, backend, links_consistent):
        backend.add_statement()
        backend.add_statement("stmt-0")
        backend.add_transaction(
            "t-old", date(2024, 1, 10), "-60.00", statement_id="stmt-0",
            match_status=MatchStatus.MATCHED, matched_expense_id="e1",
        )
        backend.add_transaction("t-new", date(2024, 1, 10), "-60.00")
        backend.add_expense("e1", date(2024, 1, 10), "60.00", bank_transaction_id="t-old")

        await service.reconcile("stmt-1")

        assert backend.transaction("t-new").match_status == MatchStatus.UNMATCHED
        assert backend.expense("e1").bank_transaction_id == "t-old"
        links_consistent(backend)

    @pytest.mark.asyncio
    async def test_one_commit_per_pass(self, service, january):
        await service.reconcile("stmt-1")

        assert january.commit_count == 1
        assert january.rollback_count == 0


class TestIdempotence:
    """Running a pass again without new data changes nothing."""

    @pytest.mark.asyncio
    async def test_second_pass_is_a_no_op(self, service, january, links_consistent):
        first = await service.reconcile("stmt-1")
        after_first = january.snapshot()

        second = await service.reconcile("stmt-1")

        assert january.snapshot() == after_first
        assert second.matched_count == first.matched_count
        assert second.discrepancy_count == first.discrepancy_count
        assert second.unmatched_count == first.unmatched_count
        links_consistent(january)

    @pytest.mark.asyncio
    async def test_matched_rows_are_not_reprocessed(self, service, january):
        await service.reconcile("stmt-1")
        second = await service.reconcile("stmt-1")

        # Discrepancy and unmatched rows are re-decided, matched rows are not
        assert {d.transaction_id for d in second.decisions} == {"t-fuel", "t-misc", "t-deposit"}
        assert all(not d.link_changed for d in second.decisions)

    @pytest.mark.asyncio
    async def test_new_expense_upgrades_discrepancy(self, service, january, links_consistent):
        await service.reconcile("stmt-1")
        january.add_expense("e-fuel-exact", date(2024, 1, 21), "105.00")

        await service.reconcile("stmt-1")

        fuel = january.transaction("t-fuel")
        assert fuel.match_status == MatchStatus.MATCHED
        assert fuel.matched_expense_id == "e-fuel-exact"
        assert january.expense("e-fuel").bank_transaction_id is None
        links_consistent(january)

    @pytest.mark.asyncio
    async def test_new_expense_matches_previously_unmatched(self, service, january):
        await service.reconcile("stmt-1")
        january.add_expense("e-misc", date(2024, 1, 24), "42.17")

        await service.reconcile("stmt-1")

        assert january.transaction("t-misc").match_status == MatchStatus.MATCHED
        assert january.transaction("t-misc").matched_expense_id == "e-misc"


class TestOverrideStability:
    """Confirmed rows are never touched by a pass."""

    @pytest.mark.asyncio
    async def test_confirmed_ignored_row_keeps_state(self, service, tracker, january):
        await tracker.set_match_status("t-misc", "ignored", notes="bank charge, no receipt")
        january.add_expense("e-misc", date(2024, 1, 25), "42.17")

        await service.reconcile("stmt-1")

        misc = january.transaction("t-misc")
        assert misc.match_status == MatchStatus.IGNORED
        assert misc.match_notes == "bank charge, no receipt"
        assert misc.manually_confirmed is True
        assert january.expense("e-misc").bank_transaction_id is None

    @pytest.mark.asyncio
    async def test_confirmed_discrepancy_keeps_link(self, service, tracker, january, links_consistent):
        await service.reconcile("stmt-1")
        await tracker.set_match_status("t-fuel", "discrepancy", notes="tip added")
        january.add_expense("e-fuel-exact", date(2024, 1, 20), "105.00")

        await service.reconcile("stmt-1")

        fuel = january.transaction("t-fuel")
        assert fuel.match_status == MatchStatus.DISCREPANCY
        assert fuel.matched_expense_id == "e-fuel"
        assert january.expense("e-fuel-exact").bank_transaction_id is None
        links_consistent(january)

    @pytest.mark.asyncio
    async def test_cleared_override_is_reclassified(self, service, tracker, january):
        await tracker.set_match_status("t-misc", "ignored")
        january.add_expense("e-misc", date(2024, 1, 25), "42.17")

        await tracker.clear_override("t-misc")
        await service.reconcile("stmt-1")

        # Ignored rows stay out of the pass even when no longer confirmed
        assert january.transaction("t-misc").match_status == MatchStatus.IGNORED

        await tracker.set_match_status("t-misc", "unmatched", confirm=False)
        await service.reconcile("stmt-1")

        assert january.transaction("t-misc").match_status == MatchStatus.MATCHED


class TestLeases:

    @pytest.mark.asyncio
    async def test_held_lease_raises_contention(self, service, january, leases):
        await leases.acquire("stmt-1")

        with pytest.raises(LockContention):
            await service.reconcile("stmt-1")

        assert january.commit_count == 0
        assert january.transaction("t-office").match_status == MatchStatus.UNMATCHED

    @pytest.mark.asyncio
    async def test_concurrent_passes_one_wins(self, service, january, leases, links_consistent):
        january.delays["list_transactions"] = 0.05

        results = await asyncio.gather(
            service.reconcile("stmt-1"),
            service.reconcile("stmt-1"),
            return_exceptions=True,
        )

        contention = [r for r in results if isinstance(r, LockContention)]
        assert len(contention) == 1
        assert january.commit_count == 1
        links_consistent(january)

    @pytest.mark.asyncio
    async def test_lease_released_after_pass(self, service, january, leases):
        await service.reconcile("stmt-1")

        assert not leases.is_held("stmt-1")

    @pytest.mark.asyncio
    async def test_different_statements_do_not_contend(self, service, backend, leases):
        backend.add_statement("stmt-1")
        backend.add_statement("stmt-2")
        await leases.acquire("stmt-2")

        result = await service.reconcile("stmt-1")

        assert result.statement_id == "stmt-1"


class TestRollback:
    """A failed pass leaves the previous state in place."""

    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back(self, service, january):
        before = january.snapshot()
        january.fail_on = "save_match_updates"

        with patch("reconciliation.services.reconciliation_service.capture_exception") as capture:
            with pytest.raises(ReconciliationFailed) as exc_info:
                await service.reconcile("stmt-1")

        assert "injected failure" in exc_info.value.reason
        assert january.snapshot() == before
        assert january.rollback_count == 1
        capture.assert_called_once()

    @pytest.mark.asyncio
    async def test_link_failure_leaves_no_partial_links(self, service, january):
        before = january.snapshot()
        january.fail_on = "commit"

        with pytest.raises(ReconciliationFailed):
            await service.reconcile("stmt-1")

        assert january.snapshot() == before
        assert january.expense("e-office").bank_transaction_id is None

    @pytest.mark.asyncio
    async def test_timeout_rolls_back(self, statement_store, expense_ledger, leases, january):
        service = ReconciliationService(statement_store, expense_ledger, leases, timeout_seconds=0.05)
        before = january.snapshot()
        january.delays["save_match_updates"] = 1.0

        with pytest.raises(ReconciliationFailed) as exc_info:
            await service.reconcile("stmt-1")

        assert "timed out" in exc_info.value.reason
        assert january.snapshot() == before
        assert january.rollback_count == 1
        assert not leases.is_held("stmt-1")

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back_and_propagates(self, service, january, leases):
        before = january.snapshot()
        january.delays["save_match_updates"] = 1.0

        task = asyncio.create_task(service.reconcile("stmt-1"))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert january.snapshot() == before
        assert january.rollback_count == 1
        assert not leases.is_held("stmt-1")

    @pytest.mark.asyncio
    async def test_failed_pass_can_be_retried(self, service, january, links_consistent):
        january.fail_on = "save_match_updates"
        with pytest.raises(ReconciliationFailed):
            await service.reconcile("stmt-1")

        january.fail_on = None
        result = await service.reconcile("stmt-1")

        assert result.matched_count == 1
        links_consistent(january)


class TestReadOperations:

    @pytest.mark.asyncio
    async def test_report_after_pass(self, service, january):
        await service.reconcile("stmt-1")

        report = await service.get_report("stmt-1")

        assert report.deposits_total == Decimal("205.00")
        assert report.withdrawals_total == Decimal("397.17")
        assert report.calculated_ending_balance == Decimal("807.83")
        assert report.variance == Decimal("0.00")
        assert report.balanced is True
        assert report.matched_count == 1
        assert report.discrepancy_count == 1

    @pytest.mark.asyncio
    async def test_report_unknown_statement(self, service, backend):
        with pytest.raises(StatementNotFound):
            await service.get_report("missing")

    @pytest.mark.asyncio
    async def test_list_transactions_filters_by_status(self, service, january):
        await service.reconcile("stmt-1")

        unmatched = await service.list_transactions("stmt-1", MatchStatus.UNMATCHED)

        assert {t.id for t in unmatched} == {"t-misc", "t-deposit"}

    @pytest.mark.asyncio
    async def test_list_transactions_unknown_statement(self, service, backend):
        with pytest.raises(StatementNotFound):
            await service.list_transactions("missing")


class TestStatements:
    """Test statement listing and deletion."""

    @pytest.mark.asyncio
    async def test_list_statements_latest_period_first(self, service, backend):
        backend.add_statement("stmt-jan", period_end=date(2024, 1, 31))
        backend.add_statement("stmt-feb", period_end=date(2024, 2, 29))
        backend.add_statement("stmt-undated")
        backend.add_statement("stmt-other", company_id="company-2", period_end=date(2024, 3, 31))

        statements = await service.list_statements("company-1")

        assert [s.id for s in statements] == ["stmt-feb", "stmt-jan", "stmt-undated"]
        assert await service.list_statements("company-9") == []

    @pytest.mark.asyncio
    async def test_get_statement(self, service, january):
        statement = await service.get_statement("stmt-1")

        assert statement.ending_balance == Decimal("807.83")

        with pytest.raises(StatementNotFound):
            await service.get_statement("missing")

    @pytest.mark.asyncio
    async def test_delete_releases_linked_expenses(self, service, january, links_consistent):
        await service.reconcile("stmt-1")
        assert january.expense("e-office").bank_transaction_id == "t-office"

        await service.delete_statement("stmt-1")

        assert "stmt-1" not in january.committed["statements"]
        assert january.statement_transactions() == []
        assert january.expense("e-office").bank_transaction_id is None
        assert january.expense("e-fuel").bank_transaction_id is None
        links_consistent(january)

    @pytest.mark.asyncio
    async def test_released_expenses_match_on_a_new_statement(self, service, january):
        await service.reconcile("stmt-1")
        await service.delete_statement("stmt-1")
        january.add_statement("stmt-2")
        january.add_transaction("t-again", date(2024, 1, 11), "-250.00", statement_id="stmt-2")

        result = await service.reconcile("stmt-2")

        assert result.matched_count == 1
        assert january.transaction("t-again").matched_expense_id == "e-office"

    @pytest.mark.asyncio
    async def test_delete_leaves_other_statements(self, service, january):
        january.add_statement("stmt-2")
        january.add_transaction("t-keep", date(2024, 2, 1), "-9.99", statement_id="stmt-2")

        await service.delete_statement("stmt-1")

        assert [t.id for t in january.statement_transactions("stmt-2")] == ["t-keep"]

    @pytest.mark.asyncio
    async def test_delete_unknown_statement(self, service, backend):
        with pytest.raises(StatementNotFound):
            await service.delete_statement("missing")

    @pytest.mark.asyncio
    async def test_delete_while_lease_held(self, service, january, leases):
        await leases.acquire("stmt-1")

        with pytest.raises(LockContention):
            await service.delete_statement("stmt-1")

        assert "stmt-1" in january.committed["statements"]

    @pytest.mark.asyncio
    async def test_delete_failure_rolls_back(self, service, january):
        await service.reconcile("stmt-1")
        january.fail_on = "delete_statement"

        with pytest.raises(RuntimeError):
            await service.delete_statement("stmt-1")

        assert len(january.statement_transactions()) == 4
        assert january.expense("e-office").bank_transaction_id == "t-office"
        assert january.rollback_count == 1
