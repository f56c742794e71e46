"""Tests for ledger entries and the cash-flow summary."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from flowdrain.errors import ValidationError
from flowdrain.ledger import LedgerService
from flowdrain.models import ExpenseStatus, LedgerKind, LedgerStatus

from conftest import COMPANY_ID, TECH_ID


class TestRecordEntry:
    @pytest.mark.asyncio
    async def test_advance_is_pending_for_next_closing(self, repo):
        entry = await LedgerService(repo).record_entry(
            COMPANY_ID, LedgerKind.ADVANCE, "100", "Advance", technician_id=TECH_ID
        )

        assert entry.status is LedgerStatus.PENDING
        assert entry.value == Decimal("100.00")
        assert repo.entries[entry.id].technician_id == TECH_ID

    @pytest.mark.asyncio
    async def test_inflow_is_stored_processed(self, repo):
        entry = await LedgerService(repo).record_entry(
            COMPANY_ID, "ENTRADA", "1500,00", "Job payment"
        )

        assert entry.kind is LedgerKind.INFLOW
        assert entry.status is LedgerStatus.PROCESSED
        assert entry.value == Decimal("1500.00")

    @pytest.mark.asyncio
    async def test_closing_entries_cannot_be_recorded_manually(self, repo):
        with pytest.raises(ValidationError):
            await LedgerService(repo).record_entry(
                COMPANY_ID, LedgerKind.CLOSING, "10", "Manual", technician_id=TECH_ID
            )
        assert repo.writes == []

    @pytest.mark.asyncio
    async def test_unknown_kind_is_rejected(self, repo):
        with pytest.raises(ValidationError):
            await LedgerService(repo).record_entry(COMPANY_ID, "VALE", "10", "Voucher")

    @pytest.mark.asyncio
    async def test_bonus_requires_technician(self, repo):
        with pytest.raises(ValidationError):
            await LedgerService(repo).record_entry(COMPANY_ID, LedgerKind.BONUS, "10", "Bonus")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["0", "-1", "", "ten"])
    async def test_value_must_be_positive(self, repo, value):
        with pytest.raises(ValidationError):
            await LedgerService(repo).record_entry(COMPANY_ID, LedgerKind.OUTFLOW, value, "Rent")


class TestCashFlow:
    @pytest.mark.asyncio
    async def test_summary_includes_projected_reimbursements(self, repo):
        repo.add_entry(
            LedgerKind.INFLOW,
            "1000.00",
            technician_id=None,
            status=LedgerStatus.PROCESSED,
            created_at=datetime(2024, 3, 5, tzinfo=UTC),
        )
        repo.add_entry(
            LedgerKind.OUTFLOW,
            "300.00",
            technician_id=None,
            status=LedgerStatus.PROCESSED,
            created_at=datetime(2024, 3, 1, tzinfo=UTC),
        )
        repo.add_entry(LedgerKind.ADVANCE, "50.00")
        repo.add_expense("25.00")
        repo.add_expense("99.00", status=ExpenseStatus.PENDING)

        summary = await LedgerService(repo).cash_flow(COMPANY_ID)

        assert summary.revenue == Decimal("1000.00")
        assert summary.outgoings == Decimal("375.00")
        assert summary.net == Decimal("625.00")
        projected = [line for line in summary.lines if line.projected]
        assert len(projected) == 1
        assert projected[0].description == "(To pay) Fuel"
        assert summary.lines[0].is_inflow

    @pytest.mark.asyncio
    async def test_empty_company(self, repo):
        summary = await LedgerService(repo).cash_flow(COMPANY_ID)

        assert summary.lines == ()
        assert summary.net == Decimal("0.00")
        assert "Net:" in summary.to_text()
