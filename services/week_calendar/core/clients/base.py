"""
Base API client for upstream calendar integrations.

Provides common functionality for HTTP requests, request logging and
translation of transport and status failures into ``CalendarError``.
"""

import random
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from services.common.logging_config import correlation_id_var, get_logger
from services.week_calendar.core.exceptions import CalendarError, CalendarErrorCode

logger = get_logger(__name__)

# Query parameters that carry credentials and must never be logged verbatim
SENSITIVE_PARAMS = frozenset({"key", "access_token"})


def mask_key(key: Optional[str]) -> str:
    """Mask an API key for safe logging, keeping the first and last 4 characters."""
    if not key:
        return "<empty>"
    if len(key) <= 8:
        return "***"
    return f"{key[:4]}...{key[-4:]}"


class BaseAPIClient(ABC):
    """
    Base API client providing common functionality for provider-specific clients.

    Features:
    - httpx.AsyncClient integration with proper configuration
    - Request/response logging with masked credentials
    - Translation of HTTP failures into the calendar error taxonomy

    The client may be handed an existing ``httpx.AsyncClient``; in that case
    its lifetime belongs to the caller and ``__aexit__`` leaves it open.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the base API client.

        Args:
            http_client: Optional shared httpx client
            timeout: Request timeout in seconds for owned clients
        """
        self.http_client = http_client
        self.timeout = timeout
        self._owns_client = http_client is None
        self._session_id = str(uuid.uuid4())[:8]

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry"""
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self._get_default_headers(),
            )
            self._owns_client = True
            logger.debug(f"Initialized {type(self).__name__} http client")
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit"""
        await self.close()

    async def close(self) -> None:
        if self.http_client is not None and self._owns_client:
            await self.http_client.aclose()
            self.http_client = None
            logger.debug(f"Closed {type(self).__name__} http client")

    @abstractmethod
    def _get_default_headers(self) -> Dict[str, str]:
        """Get default headers for API requests. Must be implemented by subclasses."""

    @abstractmethod
    def _get_base_url(self) -> str:
        """Get base URL for the provider API. Must be implemented by subclasses."""

    @abstractmethod
    def _translate_status_error(
        self, response: httpx.Response, context: Dict[str, Any]
    ) -> CalendarError:
        """Map a non-success response to a ``CalendarError``."""

    def _generate_request_id(self) -> str:
        """Generate a unique request ID for tracking"""
        timestamp = str(int(time.time_ns()))[-8:]
        random_suffix = str(random.randint(1000, 9999))
        return f"{self._session_id}-{timestamp}-{random_suffix}"

    @staticmethod
    def _loggable_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not params:
            return {}
        return {
            name: mask_key(str(value)) if name in SENSITIVE_PARAMS else value
            for name, value in params.items()
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        error_context: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make an HTTP request with logging and error handling.

        Args:
            method: HTTP method (GET, POST, ...)
            endpoint: API endpoint path
            params: Query parameters
            headers: Additional headers
            error_context: Values the status translator may quote in messages
            **kwargs: Additional httpx request arguments

        Returns:
            httpx.Response object for a 2xx response

        Raises:
            CalendarError: For non-success statuses and transport failures
        """
        if self.http_client is None:
            raise RuntimeError(
                "HTTP client not initialized. Use async context manager."
            )

        url = f"{self._get_base_url()}{endpoint}"
        request_headers = self._get_default_headers()
        if headers:
            request_headers.update(headers)

        # Propagate the current correlation id if present, otherwise generate one
        context_id = correlation_id_var.get()
        if context_id and context_id != "uninitialized":
            request_id = context_id
        else:
            request_id = self._generate_request_id()
        request_headers["X-Request-ID"] = request_id

        start_time = time.time()
        logger.debug(
            f"Making {method.upper()} request to {endpoint}",
            params=self._loggable_params(params),
            request_id=request_id,
        )

        try:
            response = await self.http_client.request(
                method=method,
                url=url,
                params=params,
                headers=request_headers,
                **kwargs,
            )
            response_time_ms = int((time.time() - start_time) * 1000)
            logger.debug(
                f"Response: {response.status_code}",
                endpoint=endpoint,
                response_time_ms=response_time_ms,
                request_id=request_id,
            )
            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            error = self._translate_status_error(e.response, error_context or {})
            error.details.update(
                {
                    "endpoint": endpoint,
                    "method": method.upper(),
                    "status_code": e.response.status_code,
                    "request_id": request_id,
                }
            )
            logger.error(
                f"HTTP error: {error.message}",
                code=error.code.value,
                endpoint=endpoint,
                request_id=request_id,
            )
            raise error from e

        except httpx.RequestError as e:
            response_time_ms = int((time.time() - start_time) * 1000)
            logger.error(
                f"Request error: {type(e).__name__}: {e}",
                endpoint=endpoint,
                response_time_ms=response_time_ms,
                request_id=request_id,
            )
            raise CalendarError(
                f"Network error: unable to reach {self._get_base_url()} "
                f"({type(e).__name__})",
                CalendarErrorCode.NETWORK_ERROR,
                original_error=e,
                details={
                    "endpoint": endpoint,
                    "method": method.upper(),
                    "request_id": request_id,
                },
            ) from e

    async def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs: Any
    ) -> httpx.Response:
        """Make a GET request"""
        return await self._make_request("GET", endpoint, params=params, **kwargs)
