"""Error taxonomy shared by the FlowDrain financial core."""

from typing import Any


class FlowDrainError(Exception):
    """Base exception for FlowDrain errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class NotFoundError(FlowDrainError):
    """A referenced technician, job, ledger entry or expense does not exist."""

    pass


class InvalidStateError(FlowDrainError):
    """The operation is not allowed in the record's current state."""

    pass


class StaleBalanceError(InvalidStateError):
    """A balance snapshot no longer matches the stored records."""

    pass


class ValidationError(FlowDrainError):
    """Malformed input on a write operation."""

    pass


class DataAccessError(FlowDrainError):
    """Backend or network failure, or a row the schema does not recognise."""

    pass


class PartialClosingError(DataAccessError):
    """A closing failed and could not be fully rolled back.

    ``applied_steps`` names the closing steps whose writes are still in place,
    mapped to the record ids they touched.
    """

    def __init__(
        self,
        message: str,
        applied_steps: dict[str, tuple[str, ...]],
        details: Any = None,
    ):
        super().__init__(message, details=details)
        self.applied_steps = applied_steps
