"""Technician balance computation.

A balance is what the company currently owes a technician:

    commission (completed, unpaid jobs)
    + bonuses (pending ledger entries)
    + reimbursements (approved, self-funded expenses not yet paid out)
    - advances (pending ledger entries)

Balances are derived snapshots. They are never cached and must be recomputed
after any closing or expense transition.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from flowdrain.backend.repository import FinancialRepository
from flowdrain.config import get_logger
from flowdrain.models import (
    ExpenseStatus,
    LedgerEntry,
    LedgerKind,
    ServiceOrder,
    Technician,
    TechnicianExpense,
)
from flowdrain.money import ZERO, money_sum, quantize

logger = get_logger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class JobCommission:
    """Display details of a job contributing to a balance."""

    job_id: str
    client_name: str
    description: str
    created_at: datetime | None
    total: Decimal
    commission: Decimal


@dataclass(frozen=True)
class TechnicianBalance:
    """Snapshot of a technician's payable balance."""

    technician_id: str
    technician_name: str
    total_commission: Decimal
    total_reimbursements: Decimal
    total_advances: Decimal
    total_bonus: Decimal
    final_balance: Decimal
    os_ids: tuple[str, ...] = ()
    ledger_entry_ids: tuple[str, ...] = ()
    expense_ids: tuple[str, ...] = ()
    jobs: tuple[JobCommission, ...] = ()
    computed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def os_count(self) -> int:
        return len(self.os_ids)

    @property
    def can_close(self) -> bool:
        return self.final_balance > ZERO


def commission_for(job: ServiceOrder, rate_percent: Decimal) -> Decimal:
    """Unrounded commission for one job."""
    return job.total * rate_percent / HUNDRED


class BalanceCalculator:
    """Computes technician balances from jobs, ledger entries and expenses."""

    def __init__(self, repository: FinancialRepository):
        self._repo = repository
        self._logger = logger.bind(component="balance_calculator")

    async def compute_balance(self, technician_id: str) -> TechnicianBalance:
        """Compute a fresh balance for one technician.

        Raises:
            NotFoundError: The technician does not exist.
            DataAccessError: Any underlying query failed. No partial balance
                is returned.
        """
        technician = await self._repo.get_technician(technician_id)
        jobs, entries, expenses = await asyncio.gather(
            self._repo.list_unpaid_completed_jobs(technician_id),
            self._repo.list_pending_ledger_entries(technician_id),
            self._repo.list_expenses(technician_id, ExpenseStatus.APPROVED),
        )
        return self._build_balance(technician, jobs, entries, expenses)

    async def compute_company_balances(self, company_id: str) -> list[TechnicianBalance]:
        """Compute balances for every technician of a company, by name."""
        technicians = await self._repo.list_technicians(company_id)
        balances = await asyncio.gather(
            *(self.compute_balance(technician.id) for technician in technicians)
        )
        return sorted(balances, key=lambda b: b.technician_name.lower())

    def _build_balance(
        self,
        technician: Technician,
        jobs: list[ServiceOrder],
        entries: list[LedgerEntry],
        expenses: list[TechnicianExpense],
    ) -> TechnicianBalance:
        rate = technician.commission_rate or ZERO

        # Paid jobs are filtered by the query too; never count one twice.
        eligible = [job for job in jobs if not job.paid_to_technician]
        raw_commission = money_sum(commission_for(job, rate) for job in eligible)
        job_details = [
            JobCommission(
                job_id=job.id,
                client_name=job.client_name,
                description=job.description,
                created_at=job.created_at,
                total=job.total,
                commission=quantize(commission_for(job, rate)),
            )
            for job in eligible
        ]

        advances = ZERO
        bonus = ZERO
        entry_ids: list[str] = []
        for entry in entries:
            if entry.kind is LedgerKind.ADVANCE:
                advances += entry.value
            elif entry.kind is LedgerKind.BONUS:
                bonus += entry.value
            else:
                # Swept on closing without contributing to the balance.
                self._logger.warning(
                    "pending_entry_not_summed",
                    technician_id=technician.id,
                    entry_id=entry.id,
                    kind=getattr(entry.kind, "value", entry.kind),
                )
            if entry.id is not None:
                entry_ids.append(entry.id)

        reimbursable = [
            expense
            for expense in expenses
            if expense.is_reimbursable and expense.status is ExpenseStatus.APPROVED
        ]
        reimbursements = money_sum(expense.amount for expense in reimbursable)

        final_balance = raw_commission + bonus + reimbursements - advances

        balance = TechnicianBalance(
            technician_id=technician.id,
            technician_name=technician.name or "Technician",
            total_commission=quantize(raw_commission),
            total_reimbursements=quantize(reimbursements),
            total_advances=quantize(advances),
            total_bonus=quantize(bonus),
            final_balance=quantize(final_balance),
            os_ids=tuple(detail.job_id for detail in job_details),
            ledger_entry_ids=tuple(entry_ids),
            expense_ids=tuple(expense.id for expense in reimbursable if expense.id is not None),
            jobs=tuple(job_details),
        )
        self._logger.info(
            "balance_computed",
            technician_id=technician.id,
            final_balance=str(balance.final_balance),
            os_count=balance.os_count,
            ledger_entries=len(balance.ledger_entry_ids),
            expenses=len(balance.expense_ids),
        )
        return balance
