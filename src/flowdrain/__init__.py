"""FlowDrain - technician commissions, reimbursements and month-end closing."""

__version__ = "0.1.0"

from flowdrain.backend import BackendClient, FinancialRepository, RestRepository
from flowdrain.balance import BalanceCalculator, JobCommission, TechnicianBalance
from flowdrain.closing import ClosingRecord, MonthEndClosing
from flowdrain.config import configure_logging, get_settings
from flowdrain.errors import (
    DataAccessError,
    FlowDrainError,
    InvalidStateError,
    NotFoundError,
    PartialClosingError,
    StaleBalanceError,
    ValidationError,
)
from flowdrain.expenses import ExpenseWorkflow
from flowdrain.ledger import CashFlowSummary, LedgerService
from flowdrain.pricing import DiscountCalculator, ServiceItem, TankShape, estimate_tank

__all__ = [
    # Version
    "__version__",
    # Balances & Closing
    "BalanceCalculator",
    "TechnicianBalance",
    "JobCommission",
    "MonthEndClosing",
    "ClosingRecord",
    # Expenses & Ledger
    "ExpenseWorkflow",
    "LedgerService",
    "CashFlowSummary",
    # Pricing
    "DiscountCalculator",
    "ServiceItem",
    "TankShape",
    "estimate_tank",
    # Backend
    "BackendClient",
    "FinancialRepository",
    "RestRepository",
    # Errors
    "FlowDrainError",
    "NotFoundError",
    "InvalidStateError",
    "StaleBalanceError",
    "ValidationError",
    "DataAccessError",
    "PartialClosingError",
    # Config
    "get_settings",
    "configure_logging",
]
