"""Async client for the hosted backend's REST API (PostgREST conventions)."""

import asyncio
from collections.abc import Iterable
from typing import Any

import httpx

from flowdrain.config import get_logger, get_settings
from flowdrain.errors import DataAccessError

logger = get_logger(__name__)

REST_PREFIX = "/rest/v1"
DEFAULT_RETRY_AFTER = 60


class BackendError(DataAccessError):
    """Base exception for backend API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.status_code = status_code


class AuthenticationError(BackendError):
    """The API key or access token was rejected."""

    pass


class RateLimitError(BackendError):
    """Rate limit exceeded."""

    pass


def eq(value: Any) -> str:
    """PostgREST equality filter."""
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def in_(values: Iterable[Any]) -> str:
    """PostgREST membership filter."""
    return "in.(" + ",".join(str(value) for value in values) + ")"


def _retry_after(value: str | None) -> int:
    """Seconds from a Retry-After header; HTTP-date or missing values give 60."""
    try:
        return max(int(value), 0) if value is not None else DEFAULT_RETRY_AFTER
    except ValueError:
        return DEFAULT_RETRY_AFTER


class BackendClient:
    """Async client for the hosted database REST API.

    Authentication is delegated to the backend: the client only forwards the
    project API key and, when available, the signed-in user's access token.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        access_token: str | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self._api_key = api_key or settings.api_key.get_secret_value()
        if access_token is None and settings.access_token is not None:
            access_token = settings.access_token.get_secret_value()
        self._access_token = access_token or self._api_key
        self._timeout = settings.timeout
        self._max_retries = settings.max_retries

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, prefer: str | None = None) -> dict[str, str]:
        """Get request headers with API key and bearer token."""
        headers = {
            "Content-Type": "application/json",
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    # === Generic Request Methods ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make an API request with retry logic for transport failures."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(prefer),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.warning(
                    "backend_request_retry",
                    method=method,
                    path=path,
                    attempt=retry_count + 1,
                    error=str(e),
                )
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, path, params, json, prefer, retry_count + 1)
            raise BackendError(f"Request failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError("Backend rejected credentials", status_code=401)

        if response.status_code == 429:
            retry_after = _retry_after(response.headers.get("Retry-After"))
            raise RateLimitError(
                f"Rate limited, retry after {retry_after}s",
                status_code=429,
                details={"retry_after": retry_after},
            )

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {
                    "raw": response.text[:500] if response.text else "empty response"
                }
            raise BackendError(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(
                "Invalid JSON response",
                status_code=response.status_code,
                details={"raw": response.text[:500] if response.text else ""},
            ) from e

    @staticmethod
    def _rows(result: Any) -> list[dict[str, Any]]:
        """Return the list of rows from a representation response."""
        if result is None:
            return []
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            return [result]
        raise BackendError("Unexpected response format", details={"body": result})

    # === Table Operations ===

    async def select(
        self,
        table: str,
        columns: Iterable[str],
        filters: dict[str, str] | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows from a table."""
        params: dict[str, Any] = {"select": ",".join(columns)}
        if filters:
            params.update(filters)
        if order:
            params["order"] = order
        result = await self._request("GET", f"{REST_PREFIX}/{table}", params=params)
        return self._rows(result)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: dict[str, str],
        columns: Iterable[str] = ("id",),
    ) -> list[dict[str, Any]]:
        """Update matching rows and return the rows actually changed."""
        if not filters:
            raise ValueError("Refusing to update without filters")
        params: dict[str, Any] = {"select": ",".join(columns), **filters}
        result = await self._request(
            "PATCH",
            f"{REST_PREFIX}/{table}",
            params=params,
            json=values,
            prefer="return=representation",
        )
        return self._rows(result)

    async def insert(
        self,
        table: str,
        row: dict[str, Any],
        columns: Iterable[str] = ("*",),
    ) -> dict[str, Any]:
        """Insert one row and return its stored representation."""
        result = await self._request(
            "POST",
            f"{REST_PREFIX}/{table}",
            params={"select": ",".join(columns)},
            json=row,
            prefer="return=representation",
        )
        rows = self._rows(result)
        if not rows:
            raise BackendError(f"Insert into {table} returned no row")
        return rows[0]
