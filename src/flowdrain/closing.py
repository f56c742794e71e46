"""Month-end closing of a technician's balance.

A closing settles everything a balance snapshot was built from:

1. jobs in the snapshot are marked paid to the technician;
2. pending ledger entries in the snapshot are marked processed;
3. approved reimbursements in the snapshot are marked paid out (authorized);
4. one CLOSING ledger entry records the amount paid.

Steps 1-3 are conditional batch updates that only touch rows still in the
state the snapshot saw, and report the rows they changed. A snapshot that
another closing already consumed therefore changes nothing and is rejected.
If any step fails, the steps already applied are undone in reverse order.
"""

import asyncio
import weakref
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

import structlog

from flowdrain.backend.repository import FinancialRepository
from flowdrain.balance import BalanceCalculator, TechnicianBalance
from flowdrain.config import get_logger
from flowdrain.errors import InvalidStateError, PartialClosingError, StaleBalanceError
from flowdrain.models import ExpenseStatus, LedgerEntry, LedgerKind, LedgerStatus
from flowdrain.money import ZERO, format_brl

logger = get_logger(__name__)

BatchWrite = Callable[[Sequence[str]], Awaitable[list[str]]]


@dataclass(frozen=True)
class ClosingRecord:
    """Outcome of a successful closing."""

    technician_id: str
    company_id: str
    amount: Decimal
    entry: LedgerEntry
    jobs_paid: tuple[str, ...]
    entries_processed: tuple[str, ...]
    expenses_authorized: tuple[str, ...]
    closed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class _AppliedStep:
    name: str
    ids: tuple[str, ...]
    undo: BatchWrite


def closing_description(balance: TechnicianBalance) -> str:
    """Summary text stored on the CLOSING ledger entry."""
    return f"Commission closing ({balance.os_count} service orders)"


class MonthEndClosing:
    """Applies month-end closings as a compensating transaction.

    Keep one instance per process: it also serialises closings for the same
    technician with a per-technician lock.
    """

    def __init__(
        self,
        repository: FinancialRepository,
        calculator: BalanceCalculator | None = None,
    ):
        self._repo = repository
        self._calculator = calculator or BalanceCalculator(repository)
        # An entry lives only while a closing holds or awaits its lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._logger = logger.bind(component="month_end_closing")

    async def close_technician(self, technician_id: str, company_id: str) -> ClosingRecord:
        """Recompute a technician's balance and close it."""
        balance = await self._calculator.compute_balance(technician_id)
        return await self.close_month(balance, company_id)

    async def close_month(self, balance: TechnicianBalance, company_id: str) -> ClosingRecord:
        """Close a balance snapshot.

        Raises:
            InvalidStateError: The balance is zero or negative. Nothing is
                written.
            StaleBalanceError: Records in the snapshot were already settled
                by another closing. Applied steps are undone.
            DataAccessError: A write failed. Applied steps are undone.
            PartialClosingError: A write failed and undoing an applied step
                failed too; ``applied_steps`` lists what is still in place.
        """
        if balance.final_balance <= ZERO:
            raise InvalidStateError(
                f"Cannot close a non-positive balance ({format_brl(balance.final_balance)})",
                details={"technician_id": balance.technician_id},
            )

        lock = self._locks.setdefault(balance.technician_id, asyncio.Lock())
        async with lock:
            return await self._apply(balance, company_id)

    async def _apply(self, balance: TechnicianBalance, company_id: str) -> ClosingRecord:
        log = self._logger.bind(
            technician_id=balance.technician_id, company_id=company_id
        )
        log.info(
            "closing_started",
            amount=str(balance.final_balance),
            os_count=balance.os_count,
            ledger_entries=len(balance.ledger_entry_ids),
            expenses=len(balance.expense_ids),
        )
        applied: list[_AppliedStep] = []

        try:
            jobs_paid = await self._run_step(
                "jobs_paid",
                balance.os_ids,
                lambda ids: self._repo.set_jobs_paid(ids, True),
                lambda ids: self._repo.set_jobs_paid(ids, False),
                applied,
            )
            entries_processed = await self._run_step(
                "entries_processed",
                balance.ledger_entry_ids,
                lambda ids: self._repo.set_ledger_status(
                    ids, LedgerStatus.PROCESSED, expected=LedgerStatus.PENDING
                ),
                lambda ids: self._repo.set_ledger_status(
                    ids, LedgerStatus.PENDING, expected=LedgerStatus.PROCESSED
                ),
                applied,
            )
            expenses_authorized = await self._run_step(
                "expenses_authorized",
                balance.expense_ids,
                lambda ids: self._repo.set_expense_status(
                    ids, ExpenseStatus.AUTHORIZED, expected=ExpenseStatus.APPROVED
                ),
                lambda ids: self._repo.set_expense_status(
                    ids, ExpenseStatus.APPROVED, expected=ExpenseStatus.AUTHORIZED
                ),
                applied,
            )
            entry = await self._repo.insert_ledger_entry(
                LedgerEntry(
                    company_id=company_id,
                    technician_id=balance.technician_id,
                    kind=LedgerKind.CLOSING,
                    value=balance.final_balance,
                    description=closing_description(balance),
                    status=LedgerStatus.PROCESSED,
                )
            )
        except Exception as exc:
            log.error("closing_failed", error=str(exc), applied=[s.name for s in applied])
            await self._compensate(applied, exc, log)
            raise

        log.info("closing_completed", amount=str(balance.final_balance), entry_id=entry.id)
        return ClosingRecord(
            technician_id=balance.technician_id,
            company_id=company_id,
            amount=balance.final_balance,
            entry=entry,
            jobs_paid=jobs_paid,
            entries_processed=entries_processed,
            expenses_authorized=expenses_authorized,
        )

    async def _run_step(
        self,
        name: str,
        ids: tuple[str, ...],
        apply: BatchWrite,
        undo: BatchWrite,
        applied: list[_AppliedStep],
    ) -> tuple[str, ...]:
        if not ids:
            return ()
        changed = tuple(await apply(ids))
        if changed:
            applied.append(_AppliedStep(name=name, ids=changed, undo=undo))
        if set(changed) != set(ids):
            missing = sorted(set(ids) - set(changed))
            raise StaleBalanceError(
                f"Balance snapshot is stale: {len(missing)} record(s) in step "
                f"'{name}' were already settled",
                details={"step": name, "ids": missing},
            )
        return changed

    async def _compensate(
        self,
        applied: list[_AppliedStep],
        cause: Exception,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        """Undo applied steps in reverse order."""
        still_applied: dict[str, tuple[str, ...]] = {}
        for step in reversed(applied):
            try:
                reverted = set(await step.undo(step.ids))
            except Exception as undo_exc:
                log.error("closing_compensation_failed", step=step.name, error=str(undo_exc))
                still_applied[step.name] = step.ids
                continue
            leftover = tuple(record_id for record_id in step.ids if record_id not in reverted)
            if leftover:
                still_applied[step.name] = leftover
            log.info("closing_compensated", step=step.name, reverted=len(reverted))

        if still_applied:
            raise PartialClosingError(
                "Closing failed and could not be fully rolled back",
                applied_steps=still_applied,
                details={"cause": str(cause)},
            ) from cause
