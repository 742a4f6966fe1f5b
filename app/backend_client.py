"""
REST client for the hosted back-office database.

Speaks the database's REST dialect:
    GET {base_url}/rest/v1/{table}?select=...&status=eq.active&order=name

Failures always raise BackendError so callers (cache fetchers in particular)
can tell an error from an empty result.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

logger = logging.getLogger("backend_client")

REST_PREFIX = "rest/v1"

# HTTP statuses worth retrying
TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


class BackendError(Exception):
    """A request to the hosted database failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientBackendError(BackendError):
    """Failure that may succeed on retry (network error, 5xx, rate limit)."""


class BackofficeClient:
    """
    Thin query client for back-office tables.

    Usage:
        client = BackofficeClient(settings.backend_url, settings.backend_api_key)
        branches = await client.select("branches", filters={"status": "active"}, order="name")
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_wait=None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: Root URL of the hosted database
            api_key: Service key sent as apikey and bearer token
            timeout: Per-request timeout in seconds
            retry_attempts: Total attempts for transient failures
            retry_wait: tenacity wait strategy (exponential backoff by default)
            session: HTTP session, mainly for tests
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._session = session or requests.Session()

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def build_params(
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
    ) -> Dict[str, str]:
        """Translate a simple equality query into REST query parameters."""
        params = {"select": columns}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        if order:
            params["order"] = order
        return params

    def _request_once(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/{REST_PREFIX}/{table}"
        try:
            response = self._session.get(
                url,
                headers=self._get_headers(),
                params=params,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientBackendError(f"{table}: {e}") from e
        except requests.RequestException as e:
            raise BackendError(f"{table}: {e}") from e

        if response.status_code in TRANSIENT_STATUSES:
            raise TransientBackendError(
                f"{table}: HTTP {response.status_code}", response.status_code
            )
        if response.status_code >= 400:
            raise BackendError(
                f"{table}: HTTP {response.status_code} {response.text[:200]}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(f"{table}: invalid JSON response") from e
        if not isinstance(data, list):
            raise BackendError(f"{table}: expected a list of rows, got {type(data).__name__}")
        return data

    def select_sync(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch rows from a table, retrying transient failures.

        Raises:
            BackendError: If the request ultimately fails
        """
        params = self.build_params(columns, filters, order)
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(TransientBackendError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    rows = self._request_once(table, params)
        except BackendError as e:
            logger.error(f"Backend query failed: {e}")
            raise
        logger.debug(f"Fetched {len(rows)} rows from {table}")
        return rows

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Async variant of select_sync; the HTTP call runs in a worker thread."""
        return await asyncio.to_thread(self.select_sync, table, columns, filters, order)


_client: Optional[BackofficeClient] = None


def get_backend_client() -> BackofficeClient:
    """Get or create the shared backend client."""
    global _client
    if _client is None:
        from config.settings import settings
        _client = BackofficeClient(
            settings.backend_url,
            settings.backend_api_key,
            timeout=settings.backend_timeout_seconds,
            retry_attempts=settings.backend_retry_attempts,
        )
    return _client
