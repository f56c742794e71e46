"""Tests for technician balance computation."""

from decimal import Decimal

import pytest

from flowdrain.balance import BalanceCalculator
from flowdrain.errors import DataAccessError, NotFoundError
from flowdrain.models import ExpenseStatus, JobStatus, LedgerKind, LedgerStatus, PaymentOrigin

from conftest import COMPANY_ID, TECH_ID, FakeRepository


class TestComputeBalance:
    @pytest.mark.asyncio
    async def test_balance_combines_all_sources(self, seeded_repo):
        balance = await BalanceCalculator(seeded_repo).compute_balance(TECH_ID)

        assert balance.total_commission == Decimal("150.00")
        assert balance.total_bonus == Decimal("20.00")
        assert balance.total_reimbursements == Decimal("15.00")
        assert balance.total_advances == Decimal("50.00")
        assert balance.final_balance == Decimal("135.00")
        assert balance.os_count == 2
        assert len(balance.ledger_entry_ids) == 2
        assert len(balance.expense_ids) == 1
        assert balance.can_close

    @pytest.mark.asyncio
    async def test_technician_without_records_has_zero_balance(self, repo):
        repo.add_technician()

        balance = await BalanceCalculator(repo).compute_balance(TECH_ID)

        assert balance.final_balance == Decimal("0.00")
        assert balance.os_ids == ()
        assert balance.ledger_entry_ids == ()
        assert balance.expense_ids == ()
        assert not balance.can_close

    @pytest.mark.asyncio
    async def test_commission_rounds_once_at_the_end(self, repo):
        repo.add_technician(rate="12.5")
        # 0.125 each: three unrounded commissions sum to 0.375, rounded 0.38
        repo.add_job("1.00")
        repo.add_job("1.00")
        repo.add_job("1.00")

        balance = await BalanceCalculator(repo).compute_balance(TECH_ID)

        assert balance.total_commission == Decimal("0.38")
        assert balance.final_balance == Decimal("0.38")
        assert [job.commission for job in balance.jobs] == [Decimal("0.13")] * 3

    @pytest.mark.asyncio
    async def test_only_completed_unpaid_jobs_count(self, repo):
        repo.add_technician()
        counted = repo.add_job("100.00")
        repo.add_job("100.00", paid=True)
        repo.add_job("100.00", status=JobStatus.IN_PROGRESS)
        repo.add_job("100.00", technician_id="someone-else")

        balance = await BalanceCalculator(repo).compute_balance(TECH_ID)

        assert balance.os_ids == (counted.id,)
        assert balance.total_commission == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_company_paid_and_unapproved_expenses_are_excluded(self, repo):
        repo.add_technician()
        repo.add_expense("40.00", origin=PaymentOrigin.COMPANY)
        repo.add_expense("25.00", status=ExpenseStatus.PENDING)
        repo.add_expense("30.00", status=ExpenseStatus.AUTHORIZED)
        counted = repo.add_expense("12.50")

        balance = await BalanceCalculator(repo).compute_balance(TECH_ID)

        assert balance.total_reimbursements == Decimal("12.50")
        assert balance.expense_ids == (counted.id,)

    @pytest.mark.asyncio
    async def test_processed_entries_are_ignored(self, repo):
        repo.add_technician()
        repo.add_entry(LedgerKind.BONUS, "99.00", status=LedgerStatus.PROCESSED)

        balance = await BalanceCalculator(repo).compute_balance(TECH_ID)

        assert balance.total_bonus == Decimal("0.00")
        assert balance.ledger_entry_ids == ()

    @pytest.mark.asyncio
    async def test_unrecognised_pending_kinds_are_swept_not_summed(self, repo):
        repo.add_technician()
        repo.add_job("100.00")
        odd = repo.add_entry("VALE_REFEICAO", "30.00")
        inflow = repo.add_entry(LedgerKind.INFLOW, "500.00")

        balance = await BalanceCalculator(repo).compute_balance(TECH_ID)

        assert balance.final_balance == Decimal("10.00")
        assert set(balance.ledger_entry_ids) == {odd.id, inflow.id}

    @pytest.mark.asyncio
    async def test_negative_balance_is_reported(self, repo):
        repo.add_technician()
        repo.add_job("100.00")
        repo.add_entry(LedgerKind.ADVANCE, "200.00")

        balance = await BalanceCalculator(repo).compute_balance(TECH_ID)

        assert balance.final_balance == Decimal("-190.00")
        assert not balance.can_close

    @pytest.mark.asyncio
    async def test_missing_technician_raises_not_found(self, repo):
        with pytest.raises(NotFoundError):
            await BalanceCalculator(repo).compute_balance("nobody")

    @pytest.mark.asyncio
    async def test_query_failure_propagates(self, seeded_repo, backend_error):
        seeded_repo.failures["list_pending_ledger_entries"] = backend_error

        with pytest.raises(DataAccessError):
            await BalanceCalculator(seeded_repo).compute_balance(TECH_ID)

    @pytest.mark.asyncio
    async def test_missing_name_falls_back(self, repo):
        repo.add_technician(name="")

        balance = await BalanceCalculator(repo).compute_balance(TECH_ID)

        assert balance.technician_name == "Technician"


class TestCompanyBalances:
    @pytest.mark.asyncio
    async def test_balances_sorted_by_name(self):
        repo = FakeRepository()
        repo.add_technician("t-2", name="zeca")
        repo.add_technician("t-1", name="Ana")
        repo.add_job("100.00", technician_id="t-2")

        balances = await BalanceCalculator(repo).compute_company_balances(COMPANY_ID)

        assert [b.technician_name for b in balances] == ["Ana", "zeca"]
        assert balances[1].final_balance == Decimal("10.00")
