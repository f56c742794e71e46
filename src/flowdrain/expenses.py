"""Technician expense (reimbursement) workflow.

    PENDING --approve--> APPROVED --authorize--> AUTHORIZED
       \\
        --reject--> REJECTED

Only self-funded expenses that are APPROVED count toward a technician's
balance. AUTHORIZED is terminal: the amount has been paid out, normally by a
month-end closing.
"""

from dataclasses import replace
from typing import Any

from flowdrain.backend.repository import FinancialRepository
from flowdrain.config import get_logger
from flowdrain.errors import InvalidStateError, ValidationError
from flowdrain.models import (
    ExpenseCategory,
    ExpenseStatus,
    PaymentOrigin,
    TechnicianExpense,
)
from flowdrain.money import ZERO, parse_decimal, quantize

logger = get_logger(__name__)

TRANSITIONS: dict[ExpenseStatus, frozenset[ExpenseStatus]] = {
    ExpenseStatus.PENDING: frozenset({ExpenseStatus.APPROVED, ExpenseStatus.REJECTED}),
    ExpenseStatus.APPROVED: frozenset({ExpenseStatus.AUTHORIZED}),
    ExpenseStatus.REJECTED: frozenset(),
    ExpenseStatus.AUTHORIZED: frozenset(),
}


def can_transition(current: ExpenseStatus, target: ExpenseStatus) -> bool:
    return target in TRANSITIONS[current]


class ExpenseWorkflow:
    """Submission, review and payout authorization of technician expenses."""

    def __init__(self, repository: FinancialRepository):
        self._repo = repository
        self._logger = logger.bind(component="expense_workflow")

    async def submit(
        self,
        technician_id: str,
        company_id: str,
        amount: Any,
        description: str,
        category: ExpenseCategory | str = ExpenseCategory.FUEL,
        origin: PaymentOrigin | str = PaymentOrigin.COMPANY,
        receipt_url: str | None = None,
    ) -> TechnicianExpense:
        """Register a new expense awaiting review."""
        value = parse_decimal(amount)
        if value is None or value <= ZERO:
            raise ValidationError(f"Expense amount must be a positive number, got {amount!r}")
        if not description or not description.strip():
            raise ValidationError("Expense description is required")
        try:
            category = ExpenseCategory(category)
            origin = PaymentOrigin(origin)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        expense = await self._repo.insert_expense(
            TechnicianExpense(
                company_id=company_id,
                technician_id=technician_id,
                amount=quantize(value),
                description=description.strip(),
                category=category,
                origin=origin,
                status=ExpenseStatus.PENDING,
                receipt_url=receipt_url,
            )
        )
        self._logger.info(
            "expense_submitted",
            expense_id=expense.id,
            technician_id=technician_id,
            amount=str(expense.amount),
            origin=origin.value,
        )
        return expense

    async def pending(self, technician_id: str) -> list[TechnicianExpense]:
        """Expenses awaiting review, oldest first."""
        return await self._repo.list_expenses(technician_id, ExpenseStatus.PENDING)

    async def awaiting_reimbursement(self, technician_id: str) -> list[TechnicianExpense]:
        """Approved expenses not yet paid out, oldest first."""
        return await self._repo.list_expenses(technician_id, ExpenseStatus.APPROVED)

    async def approve(self, expense_id: str) -> TechnicianExpense:
        return await self._transition(expense_id, ExpenseStatus.APPROVED)

    async def reject(self, expense_id: str) -> TechnicianExpense:
        return await self._transition(expense_id, ExpenseStatus.REJECTED)

    async def authorize(self, expense_id: str) -> TechnicianExpense:
        """Mark an approved expense as paid out."""
        return await self._transition(expense_id, ExpenseStatus.AUTHORIZED)

    async def _transition(self, expense_id: str, target: ExpenseStatus) -> TechnicianExpense:
        expense = await self._repo.get_expense(expense_id)
        if not can_transition(expense.status, target):
            raise InvalidStateError(
                f"Expense {expense_id} is {expense.status.name}; cannot move to {target.name}",
                details={"expense_id": expense_id, "status": expense.status.value},
            )

        changed = await self._repo.set_expense_status([expense_id], target, expected=expense.status)
        if expense_id not in changed:
            # Someone else resolved it between our read and write.
            raise InvalidStateError(
                f"Expense {expense_id} changed state concurrently",
                details={"expense_id": expense_id},
            )

        self._logger.info(
            "expense_transitioned",
            expense_id=expense_id,
            from_status=expense.status.value,
            to_status=target.value,
        )
        return replace(expense, status=target)
