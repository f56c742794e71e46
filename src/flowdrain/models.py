"""Typed row schemas for the hosted backend tables.

Each entity has exactly one schema. Rows are parsed here, at the data-access
boundary: a column the schema does not know is rejected with
``DataAccessError`` instead of being defaulted somewhere in business logic.
Wire names (Portuguese column names and enum values) are the backend's; the
Python side uses English attribute names.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, TypeVar

from flowdrain.errors import DataAccessError
from flowdrain.money import ZERO, parse_decimal

E = TypeVar("E", bound=Enum)


class JobStatus(str, Enum):
    """Service order lifecycle."""

    PENDING = "PENDENTE"
    APPROVED = "APROVADO"
    IN_PROGRESS = "EM_ANDAMENTO"
    COMPLETED = "CONCLUIDO"
    CANCELLED = "CANCELADO"


class LedgerKind(str, Enum):
    """Kinds of financial flow entries."""

    INFLOW = "ENTRADA"
    OUTFLOW = "SAIDA"
    ADVANCE = "ADIANTAMENTO"
    BONUS = "BONUS"
    CLOSING = "FECHAMENTO"


class LedgerStatus(str, Enum):
    PENDING = "PENDENTE"
    PROCESSED = "PROCESSADO"


class ExpenseStatus(str, Enum):
    """Reimbursement approval states. AUTHORIZED means paid out."""

    PENDING = "pendente"
    APPROVED = "aprovado"
    REJECTED = "rejeitado"
    AUTHORIZED = "pago"


class ExpenseCategory(str, Enum):
    FUEL = "combustivel"
    FOOD = "alimentacao"
    MATERIAL = "material"
    OTHER = "outros"


class PaymentOrigin(str, Enum):
    """Who paid for an expense up front."""

    COMPANY = "empresa"
    SELF_FUNDED = "proprio"


# =============================================================================
# ROW PARSING HELPERS
# =============================================================================


def _map_row(
    entity: str,
    row: Mapping[str, Any],
    columns: Mapping[str, str],
    required: tuple[str, ...],
) -> dict[str, Any]:
    """Translate wire column names into attribute names, strictly."""
    unknown = sorted(set(row) - set(columns))
    if unknown:
        raise DataAccessError(
            f"Unrecognised {entity} columns: {', '.join(unknown)}",
            details={"columns": unknown},
        )
    missing = [column for column in required if row.get(column) is None]
    if missing:
        raise DataAccessError(
            f"Missing {entity} columns: {', '.join(missing)}",
            details={"columns": missing},
        )
    return {columns[key]: value for key, value in row.items()}


def _decimal(entity: str, field_name: str, value: Any) -> Decimal:
    if value is None:
        return ZERO
    result = parse_decimal(value)
    if result is None:
        raise DataAccessError(
            f"{entity}.{field_name} is not numeric", details={"value": value}
        )
    return result


def _enum(entity: str, enum_cls: type[E], value: Any) -> E:
    try:
        return enum_cls(value)
    except ValueError as e:
        raise DataAccessError(
            f"{entity} has unknown {enum_cls.__name__} value {value!r}"
        ) from e


def _timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise DataAccessError(f"Invalid timestamp {value!r}") from e


def _text(value: Any) -> str | None:
    return None if value is None else str(value)


# =============================================================================
# ENTITIES
# =============================================================================


@dataclass(frozen=True)
class Technician:
    """A technician (a `usuarios` row with cargo = tecnico)."""

    TABLE: ClassVar[str] = "usuarios"
    COLUMNS: ClassVar[dict[str, str]] = {
        "id": "id",
        "empresa_id": "company_id",
        "nome": "name",
        "percentual_comissao": "commission_rate",
        "salario_base": "base_salary",
        "chave_pix": "pix_key",
    }

    id: str
    company_id: str
    name: str
    commission_rate: Decimal = ZERO
    base_salary: Decimal = ZERO
    pix_key: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Technician:
        data = _map_row("technician", row, cls.COLUMNS, ("id", "empresa_id"))
        return cls(
            id=str(data["id"]),
            company_id=str(data["company_id"]),
            name=str(data.get("name") or ""),
            commission_rate=_decimal("technician", "commission_rate", data.get("commission_rate")),
            base_salary=_decimal("technician", "base_salary", data.get("base_salary")),
            pix_key=_text(data.get("pix_key")),
        )


@dataclass(frozen=True)
class ServiceOrder:
    """A service order (job) assigned to a technician."""

    TABLE: ClassVar[str] = "ordens_servico"
    COLUMNS: ClassVar[dict[str, str]] = {
        "id": "id",
        "empresa_id": "company_id",
        "cliente_id": "client_id",
        "cliente_nome": "client_name",
        "tecnico_id": "technician_id",
        "status": "status",
        "valor_total": "total",
        "descricao_servico": "description",
        "desconto": "discount_percent",
        "paga_ao_tecnico": "paid_to_technician",
        "created_at": "created_at",
    }

    id: str
    company_id: str
    technician_id: str
    status: JobStatus
    total: Decimal = ZERO
    paid_to_technician: bool = False
    client_id: str | None = None
    client_name: str = ""
    description: str = ""
    discount_percent: Decimal = ZERO
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ServiceOrder:
        data = _map_row(
            "service order", row, cls.COLUMNS, ("id", "empresa_id", "tecnico_id", "status")
        )
        return cls(
            id=str(data["id"]),
            company_id=str(data["company_id"]),
            technician_id=str(data["technician_id"]),
            status=_enum("service order", JobStatus, data["status"]),
            total=_decimal("service order", "total", data.get("total")),
            paid_to_technician=bool(data.get("paid_to_technician") or False),
            client_id=_text(data.get("client_id")),
            client_name=str(data.get("client_name") or ""),
            description=str(data.get("description") or ""),
            discount_percent=_decimal(
                "service order", "discount_percent", data.get("discount_percent")
            ),
            created_at=_timestamp(data.get("created_at")),
        )


@dataclass(frozen=True)
class LedgerEntry:
    """A line of the company's financial flow (`financeiro_fluxo`).

    ``kind`` stays a plain string when the backend holds a kind this module
    does not know, so such entries can still be swept by a closing.
    """

    TABLE: ClassVar[str] = "financeiro_fluxo"
    COLUMNS: ClassVar[dict[str, str]] = {
        "id": "id",
        "empresa_id": "company_id",
        "tecnico_id": "technician_id",
        "tipo": "kind",
        "valor": "value",
        "descricao": "description",
        "status": "status",
        "data_lancamento": "created_at",
    }

    company_id: str
    kind: LedgerKind | str
    value: Decimal
    status: LedgerStatus
    description: str = ""
    technician_id: str | None = None
    id: str | None = None
    created_at: datetime | None = None

    @property
    def is_recognised(self) -> bool:
        return isinstance(self.kind, LedgerKind)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> LedgerEntry:
        data = _map_row("ledger entry", row, cls.COLUMNS, ("id", "empresa_id", "tipo", "status"))
        raw_kind = str(data["kind"])
        try:
            kind: LedgerKind | str = LedgerKind(raw_kind)
        except ValueError:
            kind = raw_kind
        return cls(
            id=str(data["id"]),
            company_id=str(data["company_id"]),
            technician_id=_text(data.get("technician_id")),
            kind=kind,
            value=_decimal("ledger entry", "value", data.get("value")),
            status=_enum("ledger entry", LedgerStatus, data["status"]),
            description=str(data.get("description") or ""),
            created_at=_timestamp(data.get("created_at")),
        )

    def to_row(self) -> dict[str, Any]:
        """Serialize for insertion; the backend assigns id and timestamp."""
        kind = self.kind.value if isinstance(self.kind, LedgerKind) else self.kind
        row: dict[str, Any] = {
            "empresa_id": self.company_id,
            "tecnico_id": self.technician_id,
            "tipo": kind,
            "valor": str(self.value),
            "descricao": self.description,
            "status": self.status.value,
        }
        if self.created_at is not None:
            row["data_lancamento"] = self.created_at.isoformat()
        return row


@dataclass(frozen=True)
class TechnicianExpense:
    """A reimbursement request (`despesas_tecnicos`)."""

    TABLE: ClassVar[str] = "despesas_tecnicos"
    COLUMNS: ClassVar[dict[str, str]] = {
        "id": "id",
        "empresa_id": "company_id",
        "tecnico_id": "technician_id",
        "valor": "amount",
        "descricao": "description",
        "categoria": "category",
        "comprovante_url": "receipt_url",
        "origem_pagamento": "origin",
        "status": "status",
        "created_at": "created_at",
    }

    company_id: str
    technician_id: str
    amount: Decimal
    description: str
    category: ExpenseCategory
    origin: PaymentOrigin
    status: ExpenseStatus = ExpenseStatus.PENDING
    receipt_url: str | None = None
    id: str | None = None
    created_at: datetime | None = None

    @property
    def is_reimbursable(self) -> bool:
        return self.origin is PaymentOrigin.SELF_FUNDED

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> TechnicianExpense:
        data = _map_row(
            "expense", row, cls.COLUMNS, ("id", "empresa_id", "tecnico_id", "status")
        )
        return cls(
            id=str(data["id"]),
            company_id=str(data["company_id"]),
            technician_id=str(data["technician_id"]),
            amount=_decimal("expense", "amount", data.get("amount")),
            description=str(data.get("description") or ""),
            category=_enum("expense", ExpenseCategory, data.get("category") or "outros"),
            origin=_enum("expense", PaymentOrigin, data.get("origin") or "empresa"),
            status=_enum("expense", ExpenseStatus, data["status"]),
            receipt_url=_text(data.get("receipt_url")),
            created_at=_timestamp(data.get("created_at")),
        )

    def to_row(self) -> dict[str, Any]:
        """Serialize for insertion."""
        return {
            "empresa_id": self.company_id,
            "tecnico_id": self.technician_id,
            "valor": str(self.amount),
            "descricao": self.description,
            "categoria": self.category.value,
            "origem_pagamento": self.origin.value,
            "comprovante_url": self.receipt_url,
            "status": self.status.value,
        }
