"""Pytest configuration and fixtures."""

from __future__ import annotations

import itertools
import os
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("FLOWDRAIN_API_URL", "http://localhost:54321")
os.environ.setdefault("FLOWDRAIN_API_KEY", "anon-test-key")

from flowdrain.errors import DataAccessError, NotFoundError  # noqa: E402
from flowdrain.models import (  # noqa: E402
    ExpenseCategory,
    ExpenseStatus,
    JobStatus,
    LedgerEntry,
    LedgerKind,
    LedgerStatus,
    PaymentOrigin,
    ServiceOrder,
    Technician,
    TechnicianExpense,
)

COMPANY_ID = "c0000000-0000-0000-0000-000000000001"
TECH_ID = "t0000000-0000-0000-0000-000000000001"


@dataclass
class FakeRepository:
    """In-memory FinancialRepository with conditional writes and failure injection.

    ``failures`` maps a method name to the exception it should raise.
    ``writes`` records the name of every write method that was called.
    """

    technicians: dict[str, Technician] = field(default_factory=dict)
    jobs: dict[str, ServiceOrder] = field(default_factory=dict)
    entries: dict[str, LedgerEntry] = field(default_factory=dict)
    expenses: dict[str, TechnicianExpense] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)
    writes: list[str] = field(default_factory=list)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def _maybe_fail(self, name: str) -> None:
        if name in self.failures:
            raise self.failures[name]

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # === Seeding ===

    def add_technician(
        self, technician_id: str = TECH_ID, name: str = "Carlos", rate: str = "10"
    ) -> Technician:
        technician = Technician(
            id=technician_id,
            company_id=COMPANY_ID,
            name=name,
            commission_rate=Decimal(rate),
        )
        self.technicians[technician_id] = technician
        return technician

    def add_job(
        self,
        total: str,
        technician_id: str = TECH_ID,
        status: JobStatus = JobStatus.COMPLETED,
        paid: bool = False,
    ) -> ServiceOrder:
        job = ServiceOrder(
            id=self._next_id("os"),
            company_id=COMPANY_ID,
            technician_id=technician_id,
            status=status,
            total=Decimal(total),
            paid_to_technician=paid,
            client_name="Client",
            created_at=datetime(2024, 3, 1, tzinfo=UTC),
        )
        self.jobs[job.id] = job
        return job

    def add_entry(
        self,
        kind: LedgerKind | str,
        value: str,
        technician_id: str | None = TECH_ID,
        status: LedgerStatus = LedgerStatus.PENDING,
        created_at: datetime | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            id=self._next_id("fx"),
            company_id=COMPANY_ID,
            technician_id=technician_id,
            kind=kind,
            value=Decimal(value),
            status=status,
            created_at=created_at or datetime(2024, 3, 2, tzinfo=UTC),
        )
        self.entries[entry.id] = entry
        return entry

    def add_expense(
        self,
        amount: str,
        status: ExpenseStatus = ExpenseStatus.APPROVED,
        origin: PaymentOrigin = PaymentOrigin.SELF_FUNDED,
        technician_id: str = TECH_ID,
    ) -> TechnicianExpense:
        expense = TechnicianExpense(
            id=self._next_id("dt"),
            company_id=COMPANY_ID,
            technician_id=technician_id,
            amount=Decimal(amount),
            description="Fuel",
            category=ExpenseCategory.FUEL,
            origin=origin,
            status=status,
            created_at=datetime(2024, 3, 3, tzinfo=UTC),
        )
        self.expenses[expense.id] = expense
        return expense

    # === FinancialRepository ===

    async def get_technician(self, technician_id: str) -> Technician:
        self._maybe_fail("get_technician")
        if technician_id not in self.technicians:
            raise NotFoundError(f"Technician {technician_id} not found")
        return self.technicians[technician_id]

    async def list_technicians(self, company_id: str) -> list[Technician]:
        self._maybe_fail("list_technicians")
        return [t for t in self.technicians.values() if t.company_id == company_id]

    async def list_unpaid_completed_jobs(self, technician_id: str) -> list[ServiceOrder]:
        self._maybe_fail("list_unpaid_completed_jobs")
        return [
            job
            for job in self.jobs.values()
            if job.technician_id == technician_id
            and job.status is JobStatus.COMPLETED
            and not job.paid_to_technician
        ]

    async def set_jobs_paid(self, job_ids: Sequence[str], paid: bool) -> list[str]:
        self.writes.append("set_jobs_paid")
        self._maybe_fail("set_jobs_paid" if paid else "unset_jobs_paid")
        changed = []
        for job_id in job_ids:
            job = self.jobs.get(job_id)
            if job is not None and job.paid_to_technician is not paid:
                self.jobs[job_id] = replace(job, paid_to_technician=paid)
                changed.append(job_id)
        return changed

    async def list_pending_ledger_entries(self, technician_id: str) -> list[LedgerEntry]:
        self._maybe_fail("list_pending_ledger_entries")
        return [
            entry
            for entry in self.entries.values()
            if entry.technician_id == technician_id and entry.status is LedgerStatus.PENDING
        ]

    async def list_company_ledger(self, company_id: str) -> list[LedgerEntry]:
        self._maybe_fail("list_company_ledger")
        return [e for e in self.entries.values() if e.company_id == company_id]

    async def set_ledger_status(
        self, entry_ids: Sequence[str], status: LedgerStatus, expected: LedgerStatus
    ) -> list[str]:
        self.writes.append("set_ledger_status")
        self._maybe_fail(f"set_ledger_status:{status.value}")
        changed = []
        for entry_id in entry_ids:
            entry = self.entries.get(entry_id)
            if entry is not None and entry.status is expected:
                self.entries[entry_id] = replace(entry, status=status)
                changed.append(entry_id)
        return changed

    async def insert_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        self.writes.append("insert_ledger_entry")
        self._maybe_fail("insert_ledger_entry")
        stored = replace(
            entry,
            id=self._next_id("fx"),
            created_at=entry.created_at or datetime.now(UTC),
        )
        self.entries[stored.id] = stored
        return stored

    async def get_expense(self, expense_id: str) -> TechnicianExpense:
        self._maybe_fail("get_expense")
        if expense_id not in self.expenses:
            raise NotFoundError(f"Expense {expense_id} not found")
        return self.expenses[expense_id]

    async def list_expenses(
        self, technician_id: str, status: ExpenseStatus
    ) -> list[TechnicianExpense]:
        self._maybe_fail("list_expenses")
        return [
            e
            for e in self.expenses.values()
            if e.technician_id == technician_id and e.status is status
        ]

    async def list_company_expenses(
        self, company_id: str, status: ExpenseStatus
    ) -> list[TechnicianExpense]:
        self._maybe_fail("list_company_expenses")
        return [
            e for e in self.expenses.values() if e.company_id == company_id and e.status is status
        ]

    async def set_expense_status(
        self, expense_ids: Sequence[str], status: ExpenseStatus, expected: ExpenseStatus
    ) -> list[str]:
        self.writes.append("set_expense_status")
        self._maybe_fail(f"set_expense_status:{status.value}")
        changed = []
        for expense_id in expense_ids:
            expense = self.expenses.get(expense_id)
            if expense is not None and expense.status is expected:
                self.expenses[expense_id] = replace(expense, status=status)
                changed.append(expense_id)
        return changed

    async def insert_expense(self, expense: TechnicianExpense) -> TechnicianExpense:
        self.writes.append("insert_expense")
        self._maybe_fail("insert_expense")
        stored = replace(expense, id=self._next_id("dt"), created_at=datetime.now(UTC))
        self.expenses[stored.id] = stored
        return stored


@pytest.fixture
def repo() -> FakeRepository:
    """Empty in-memory repository."""
    return FakeRepository()


@pytest.fixture
def seeded_repo() -> FakeRepository:
    """One technician at 10% with two jobs, an advance, a bonus and a reimbursement.

    Balance: 150.00 commission + 20.00 bonus + 15.00 reimbursed - 50.00 advance = 135.00
    """
    repo = FakeRepository()
    repo.add_technician()
    repo.add_job("1000.00")
    repo.add_job("500.00")
    repo.add_entry(LedgerKind.ADVANCE, "50.00")
    repo.add_entry(LedgerKind.BONUS, "20.00")
    repo.add_expense("15.00")
    return repo


@pytest.fixture
def backend_error() -> DataAccessError:
    return DataAccessError("backend unavailable")


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client
