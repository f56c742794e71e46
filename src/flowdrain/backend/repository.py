"""Data-access layer for the financial core.

``FinancialRepository`` is the collaborator contract the services depend on.
``RestRepository`` implements it over the hosted backend. Batch status
changes are conditional (they only touch rows still in the expected state)
and return the ids they actually changed, which is what makes a closing
race-safe.
"""

from collections.abc import Iterable, Sequence
from typing import Protocol

from flowdrain.backend.client import BackendClient, eq, in_
from flowdrain.errors import NotFoundError
from flowdrain.models import (
    ExpenseStatus,
    JobStatus,
    LedgerEntry,
    LedgerStatus,
    ServiceOrder,
    Technician,
    TechnicianExpense,
)

TECHNICIAN_ROLE = "tecnico"


class FinancialRepository(Protocol):
    """Collaborator interface consumed by the financial services."""

    async def get_technician(self, technician_id: str) -> Technician: ...

    async def list_technicians(self, company_id: str) -> list[Technician]: ...

    async def list_unpaid_completed_jobs(self, technician_id: str) -> list[ServiceOrder]: ...

    async def set_jobs_paid(self, job_ids: Sequence[str], paid: bool) -> list[str]: ...

    async def list_pending_ledger_entries(self, technician_id: str) -> list[LedgerEntry]: ...

    async def list_company_ledger(self, company_id: str) -> list[LedgerEntry]: ...

    async def set_ledger_status(
        self, entry_ids: Sequence[str], status: LedgerStatus, expected: LedgerStatus
    ) -> list[str]: ...

    async def insert_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry: ...

    async def get_expense(self, expense_id: str) -> TechnicianExpense: ...

    async def list_expenses(
        self, technician_id: str, status: ExpenseStatus
    ) -> list[TechnicianExpense]: ...

    async def list_company_expenses(
        self, company_id: str, status: ExpenseStatus
    ) -> list[TechnicianExpense]: ...

    async def set_expense_status(
        self, expense_ids: Sequence[str], status: ExpenseStatus, expected: ExpenseStatus
    ) -> list[str]: ...

    async def insert_expense(self, expense: TechnicianExpense) -> TechnicianExpense: ...


def _ids(rows: Iterable[dict]) -> list[str]:
    return [str(row["id"]) for row in rows]


class RestRepository:
    """FinancialRepository backed by the hosted REST API."""

    def __init__(self, client: BackendClient):
        self._client = client

    # === Technicians ===

    async def get_technician(self, technician_id: str) -> Technician:
        rows = await self._client.select(
            Technician.TABLE,
            Technician.COLUMNS,
            filters={"id": eq(technician_id), "cargo": eq(TECHNICIAN_ROLE)},
        )
        if not rows:
            raise NotFoundError(f"Technician {technician_id} not found")
        return Technician.from_row(rows[0])

    async def list_technicians(self, company_id: str) -> list[Technician]:
        rows = await self._client.select(
            Technician.TABLE,
            Technician.COLUMNS,
            filters={"empresa_id": eq(company_id), "cargo": eq(TECHNICIAN_ROLE)},
            order="nome.asc",
        )
        return [Technician.from_row(row) for row in rows]

    # === Service orders ===

    async def list_unpaid_completed_jobs(self, technician_id: str) -> list[ServiceOrder]:
        rows = await self._client.select(
            ServiceOrder.TABLE,
            ServiceOrder.COLUMNS,
            filters={
                "tecnico_id": eq(technician_id),
                "status": eq(JobStatus.COMPLETED.value),
                "paga_ao_tecnico": eq(False),
            },
            order="created_at.asc",
        )
        return [ServiceOrder.from_row(row) for row in rows]

    async def set_jobs_paid(self, job_ids: Sequence[str], paid: bool) -> list[str]:
        if not job_ids:
            return []
        rows = await self._client.update(
            ServiceOrder.TABLE,
            {"paga_ao_tecnico": paid},
            filters={"id": in_(job_ids), "paga_ao_tecnico": eq(not paid)},
        )
        return _ids(rows)

    # === Ledger ===

    async def list_pending_ledger_entries(self, technician_id: str) -> list[LedgerEntry]:
        rows = await self._client.select(
            LedgerEntry.TABLE,
            LedgerEntry.COLUMNS,
            filters={
                "tecnico_id": eq(technician_id),
                "status": eq(LedgerStatus.PENDING.value),
            },
        )
        return [LedgerEntry.from_row(row) for row in rows]

    async def list_company_ledger(self, company_id: str) -> list[LedgerEntry]:
        rows = await self._client.select(
            LedgerEntry.TABLE,
            LedgerEntry.COLUMNS,
            filters={"empresa_id": eq(company_id)},
            order="data_lancamento.desc",
        )
        return [LedgerEntry.from_row(row) for row in rows]

    async def set_ledger_status(
        self, entry_ids: Sequence[str], status: LedgerStatus, expected: LedgerStatus
    ) -> list[str]:
        if not entry_ids:
            return []
        rows = await self._client.update(
            LedgerEntry.TABLE,
            {"status": status.value},
            filters={"id": in_(entry_ids), "status": eq(expected.value)},
        )
        return _ids(rows)

    async def insert_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        row = await self._client.insert(LedgerEntry.TABLE, entry.to_row(), LedgerEntry.COLUMNS)
        return LedgerEntry.from_row(row)

    # === Expenses ===

    async def get_expense(self, expense_id: str) -> TechnicianExpense:
        rows = await self._client.select(
            TechnicianExpense.TABLE,
            TechnicianExpense.COLUMNS,
            filters={"id": eq(expense_id)},
        )
        if not rows:
            raise NotFoundError(f"Expense {expense_id} not found")
        return TechnicianExpense.from_row(rows[0])

    async def list_expenses(
        self, technician_id: str, status: ExpenseStatus
    ) -> list[TechnicianExpense]:
        rows = await self._client.select(
            TechnicianExpense.TABLE,
            TechnicianExpense.COLUMNS,
            filters={"tecnico_id": eq(technician_id), "status": eq(status.value)},
            order="created_at.asc",
        )
        return [TechnicianExpense.from_row(row) for row in rows]

    async def list_company_expenses(
        self, company_id: str, status: ExpenseStatus
    ) -> list[TechnicianExpense]:
        rows = await self._client.select(
            TechnicianExpense.TABLE,
            TechnicianExpense.COLUMNS,
            filters={"empresa_id": eq(company_id), "status": eq(status.value)},
            order="created_at.asc",
        )
        return [TechnicianExpense.from_row(row) for row in rows]

    async def set_expense_status(
        self, expense_ids: Sequence[str], status: ExpenseStatus, expected: ExpenseStatus
    ) -> list[str]:
        if not expense_ids:
            return []
        rows = await self._client.update(
            TechnicianExpense.TABLE,
            {"status": status.value},
            filters={"id": in_(expense_ids), "status": eq(expected.value)},
        )
        return _ids(rows)

    async def insert_expense(self, expense: TechnicianExpense) -> TechnicianExpense:
        row = await self._client.insert(
            TechnicianExpense.TABLE, expense.to_row(), TechnicianExpense.COLUMNS
        )
        return TechnicianExpense.from_row(row)
