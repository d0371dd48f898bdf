"""
Base HTTP client for upstream connectors.
Provides lazy httpx client management, retries, per-host in-flight limits,
error mapping and cache-backed JSON reads.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Mapping, NoReturn, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from shipreport.core.config import settings
from shipreport.core.exceptions import ExternalServiceError
from shipreport.core.logging import get_logger
from shipreport.repositories.cache_repo import InMemoryResponseCache

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def _without_query(url: httpx.URL) -> str:
    return str(url).split("?", 1)[0]


class BaseHttpClient(ABC):
    """
    Abstract base class for upstream REST clients.

    Every call gets an explicit timeout, at most ``max_in_flight`` concurrent
    requests per host, and up to ``max_retries`` attempts for transport errors
    and retryable status codes. Cache keys are the full request URL, which
    never carries credentials: those travel in headers only.
    """

    def __init__(
        self,
        base_url: str,
        cache: Optional[InMemoryResponseCache] = None,
        timeout: Optional[float] = None,
        max_in_flight: Optional[int] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Upstream base URL
            cache: Response cache shared by the run, or None to disable caching
            timeout: Per-call timeout in seconds
            max_in_flight: Concurrent request budget per host
            max_retries: Attempts for transient failures
            transport: Custom httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.timeout = timeout if timeout is not None else settings.http.timeout
        self.max_in_flight = max_in_flight or settings.http.max_in_flight_per_host
        self.max_retries = max(1, max_retries or settings.http.max_retries)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._host_limits: dict[str, asyncio.Semaphore] = {}

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Human-readable upstream name used in errors and logs."""
        ...

    def _default_headers(self) -> dict[str, str]:
        """Headers sent with every request (credentials go here)."""
        return {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self._default_headers(),
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _host_limit(self, url: httpx.URL) -> asyncio.Semaphore:
        host = url.host or "default"
        if host not in self._host_limits:
            self._host_limits[host] = asyncio.Semaphore(self.max_in_flight)
        return self._host_limits[host]

    def build_url(self, path: str, params: Optional[Mapping[str, Any]] = None) -> httpx.URL:
        """
        Build an absolute request URL.

        ``None`` params are dropped and list values become repeated keys.
        The result doubles as the cache key.
        """
        target = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        clean = {key: value for key, value in (params or {}).items() if value is not None}
        return httpx.URL(target, params=clean) if clean else httpx.URL(target)

    async def _request(
        self,
        method: str,
        url: httpx.URL,
        json: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Make an HTTP request with retries and error mapping.

        Raises:
            ExternalServiceError: If the request fails or returns an error status
        """
        client = await self._get_client()
        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = httpx.Timeout(timeout)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError)),
                reraise=True,
            ):
                with attempt:
                    async with self._host_limit(url):
                        response = await client.request(
                            method,
                            url,
                            json=json,
                            headers=headers,
                            **extra,
                        )
                    if response.status_code in RETRYABLE_STATUS_CODES:
                        response.raise_for_status()

        except httpx.HTTPStatusError as e:
            self._raise_for_status(e.response)
            raise

        except httpx.RequestError as e:
            logger.error(
                "Upstream request error",
                service=self.service_name,
                url=_without_query(url),
                error=str(e),
            )
            raise ExternalServiceError(
                service_name=self.service_name,
                message=f"Request failed: {e}",
                details={"url": _without_query(url)},
            ) from e

        if response.is_error:
            self._raise_for_status(response)
        return response

    def _raise_for_status(self, response: httpx.Response) -> NoReturn:
        """Convert an error response into an ExternalServiceError."""
        logger.error(
            "Upstream request failed",
            service=self.service_name,
            status_code=response.status_code,
            url=_without_query(response.request.url),
            body=response.text[:500],
        )
        raise ExternalServiceError(
            service_name=self.service_name,
            message=f"HTTP {response.status_code}",
            details={"status_code": response.status_code},
        )

    async def _get_json(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        use_cache: bool = True,
    ) -> Any:
        """GET a JSON document, consulting the response cache first."""
        url = self.build_url(path, params)
        key = str(url)

        if use_cache and self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                return cached

        response = await self._request("GET", url)
        data = response.json()

        if use_cache and self.cache is not None:
            await self.cache.set(key, data)

        return data

    async def __aenter__(self) -> "BaseHttpClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
