"""
Shared HTTP plumbing for the REST-based platform clients.

Wraps `httpx.AsyncClient` with retry on transient failures, a circuit
breaker per platform, and API call logging/metrics.
"""

from typing import Any, Dict, Optional

import httpx

from review_gateway.services.code_management import NotFoundError, PermanentError, TransientError
from review_gateway.utils.logging import get_logger
from review_gateway.utils.metrics import track_api_call
from review_gateway.utils.resilience import (
    CircuitBreaker,
    create_code_management_circuit_breaker,
    retry_with_backoff,
)

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 20.0
PERMANENT_STATUS_CODES = {400, 401, 403, 405, 410, 422}


class RestApiClient:
    """
    Base class for platform REST clients.

    Subclasses set `service_name` and pass auth headers or credentials.
    """

    service_name = "rest"

    def __init__(
        self,
        api_url: str,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[httpx.Auth] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize the client.

        Args:
            api_url: Base URL of the platform API
            headers: Headers sent on every request (auth tokens, API version)
            auth: httpx auth (Bitbucket uses basic auth)
            http_client: Preconfigured client, mainly for tests
            circuit_breaker: Optional CircuitBreaker instance for fault tolerance
        """
        self.api_url = api_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(
            headers=headers,
            auth=auth,
            timeout=DEFAULT_TIMEOUT,
        )
        if http_client is not None and headers:
            self._http.headers.update(headers)
        self.circuit_breaker = circuit_breaker or create_code_management_circuit_breaker(self.service_name)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.api_url}/{path.lstrip('/')}"

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=10.0, exceptions=(TransientError,))
    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """
        Send one request through the circuit breaker.

        Raises:
            NotFoundError: 404
            PermanentError: Auth and validation failures
            TransientError: Rate limiting, 5xx and network errors
        """
        url = self._url(path)

        async def _send() -> httpx.Response:
            async with track_api_call(self.service_name, path, method, logger):
                try:
                    response = await self._http.request(method, url, params=params)
                except httpx.TransportError as e:
                    raise TransientError(f"{self.service_name} request failed: {e}") from e

                if response.status_code == 404:
                    return response
                if response.status_code in PERMANENT_STATUS_CODES:
                    raise PermanentError(
                        f"{self.service_name} returned {response.status_code} for {path}"
                    )
                if response.status_code == 429 or response.status_code >= 500:
                    raise TransientError(
                        f"{self.service_name} returned {response.status_code} for {path}"
                    )
                return response

        response = await self.circuit_breaker.call(_send)
        # 404s do not count against the circuit breaker
        if response.status_code == 404:
            raise NotFoundError(f"{self.service_name} resource not found: {path}")
        return response

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._request("GET", path, params=params)
        return response.json()

    async def _get_text(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        response = await self._request("GET", path, params=params)
        return response.text
