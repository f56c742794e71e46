"""Backend access for FlowDrain."""

from flowdrain.backend.client import (
    AuthenticationError,
    BackendClient,
    BackendError,
    RateLimitError,
)
from flowdrain.backend.repository import FinancialRepository, RestRepository

__all__ = [
    # API Client
    "BackendClient",
    "BackendError",
    "AuthenticationError",
    "RateLimitError",
    # Repository
    "FinancialRepository",
    "RestRepository",
]
