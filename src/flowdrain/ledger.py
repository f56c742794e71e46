"""Company financial flow: recording ledger entries and cash-flow summaries."""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from flowdrain.backend.repository import FinancialRepository
from flowdrain.config import get_logger
from flowdrain.errors import ValidationError
from flowdrain.models import ExpenseStatus, LedgerEntry, LedgerKind, LedgerStatus
from flowdrain.money import ZERO, format_brl, money_sum, parse_decimal, quantize

logger = get_logger(__name__)

# Kinds that feed a technician balance and wait for a closing.
TECHNICIAN_KINDS = frozenset({LedgerKind.ADVANCE, LedgerKind.BONUS})


@dataclass(frozen=True)
class CashFlowLine:
    """One row of the cash-flow view."""

    id: str | None
    kind: str
    value: Decimal
    description: str
    status: str
    created_at: datetime | None
    projected: bool = False

    @property
    def is_inflow(self) -> bool:
        return self.kind == LedgerKind.INFLOW.value


@dataclass(frozen=True)
class CashFlowSummary:
    """Company cash flow with approved reimbursements as projected outflows."""

    company_id: str
    revenue: Decimal
    outgoings: Decimal
    lines: tuple[CashFlowLine, ...]

    @property
    def net(self) -> Decimal:
        return self.revenue - self.outgoings

    def to_text(self) -> str:
        return (
            f"Revenue:   {format_brl(self.revenue)}\n"
            f"Outgoings: {format_brl(self.outgoings)}\n"
            f"Net:       {format_brl(self.net)}"
        )


class LedgerService:
    """Records manual ledger entries and summarizes the company cash flow."""

    def __init__(self, repository: FinancialRepository):
        self._repo = repository
        self._logger = logger.bind(component="ledger")

    async def record_entry(
        self,
        company_id: str,
        kind: LedgerKind | str,
        value: Any,
        description: str,
        technician_id: str | None = None,
    ) -> LedgerEntry:
        """Record an advance, bonus, inflow or outflow.

        Advances and bonuses belong to a technician and stay PENDING until
        the next closing. Inflows and outflows are stored PROCESSED so a
        closing can never sweep them. CLOSING entries are written only by
        the closing itself.
        """
        try:
            kind = LedgerKind(kind)
        except ValueError as e:
            raise ValidationError(f"Unknown ledger entry kind {kind!r}") from e
        if kind is LedgerKind.CLOSING:
            raise ValidationError("Closing entries are recorded by the month-end closing only")

        amount = parse_decimal(value)
        if amount is None or amount <= ZERO:
            raise ValidationError(f"Ledger entry value must be a positive number, got {value!r}")

        if kind in TECHNICIAN_KINDS:
            if not technician_id:
                raise ValidationError(f"{kind.name} entries require a technician")
            status = LedgerStatus.PENDING
        else:
            status = LedgerStatus.PROCESSED

        entry = await self._repo.insert_ledger_entry(
            LedgerEntry(
                company_id=company_id,
                technician_id=technician_id,
                kind=kind,
                value=quantize(amount),
                description=description.strip(),
                status=status,
                created_at=datetime.now(UTC),
            )
        )
        self._logger.info(
            "ledger_entry_recorded",
            entry_id=entry.id,
            kind=kind.value,
            value=str(entry.value),
            technician_id=technician_id,
        )
        return entry

    async def cash_flow(self, company_id: str) -> CashFlowSummary:
        """Summarize the company ledger, newest first.

        Approved reimbursements not yet paid out are shown as projected
        outflows; once a closing pays them they are part of its CLOSING entry.
        """
        entries, approved = await asyncio.gather(
            self._repo.list_company_ledger(company_id),
            self._repo.list_company_expenses(company_id, ExpenseStatus.APPROVED),
        )

        lines = [
            CashFlowLine(
                id=entry.id,
                kind=getattr(entry.kind, "value", entry.kind),
                value=entry.value,
                description=entry.description,
                status=entry.status.value,
                created_at=entry.created_at,
            )
            for entry in entries
        ]
        lines.extend(
            CashFlowLine(
                id=expense.id,
                kind=LedgerKind.OUTFLOW.value,
                value=expense.amount,
                description=f"(To pay) {expense.description}",
                status=expense.status.value,
                created_at=expense.created_at,
                projected=True,
            )
            for expense in approved
        )
        oldest = datetime.min.replace(tzinfo=UTC)
        lines.sort(key=lambda line: _aware(line.created_at) or oldest, reverse=True)

        revenue = money_sum(line.value for line in lines if line.is_inflow)
        outgoings = money_sum(line.value for line in lines if not line.is_inflow)
        return CashFlowSummary(
            company_id=company_id,
            revenue=quantize(revenue),
            outgoings=quantize(outgoings),
            lines=tuple(lines),
        )


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)
