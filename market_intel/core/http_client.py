"""
Shared async transport for provider adapters.

One BaseAPIClient per adapter: it owns (or borrows) an httpx.AsyncClient,
bounds in-flight requests, spaces requests out when the source asks for
it and retries transient failures. Everything that goes wrong below an
adapter surfaces here as an APIError subclass.
"""
import asyncio
import json
import logging
import random
from abc import ABC
from typing import Any, Dict, Optional

import httpx

from market_intel.core.api_errors import (
    APIError,
    MalformedResponseError,
    RateLimitError,
    RequestTimeoutError,
    RetryableError,
    classify_http_error,
)

logger = logging.getLogger(__name__)


class BaseAPIClient(ABC):
    """
    Transport base for external statistics APIs.

    Subclasses set SOURCE_NAME (and BASE_URL unless one is passed in),
    call get()/post(), and override the hooks they need:
    - _check_api_error() for errors reported inside 200 responses
    - _classify_http_error() for source-specific status quirks
    - _build_headers(), _add_auth_to_params(), _add_auth_to_body()
    """

    SOURCE_NAME: str = "unknown"
    BASE_URL: str = ""

    DEFAULT_MAX_CONCURRENCY: int = 2
    DEFAULT_TIMEOUT: float = 30.0
    DEFAULT_CONNECT_TIMEOUT: float = 10.0
    DEFAULT_MAX_RETRIES: int = 3
    DEFAULT_BACKOFF_FACTOR: float = 2.0
    MAX_BACKOFF_SECONDS: float = 60.0
    JITTER: float = 0.25

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        rate_limit_interval: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            api_key: Credential, if the source takes one
            base_url: Overrides BASE_URL
            max_concurrency: In-flight request bound
            max_retries: Total attempts per request (at least 1)
            backoff_factor: Base of the exponential backoff
            timeout: Read timeout in seconds
            connect_timeout: Connect timeout in seconds
            rate_limit_interval: Minimum spacing between requests, None for none
            http_client: Borrowed client; tests pass one built on a MockTransport
        """
        self.api_key = api_key
        self.base_url = base_url or self.BASE_URL
        self.max_concurrency = max_concurrency
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.rate_limit_interval = rate_limit_interval

        self.semaphore = asyncio.Semaphore(max_concurrency)
        self._pacing_lock = asyncio.Lock()
        self._last_sent_at: float = 0.0

        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

        logger.info(
            f"[{self.SOURCE_NAME}] Client ready: key={'yes' if api_key else 'no'}, "
            f"concurrency={max_concurrency}, attempts={self.max_retries}"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                follow_redirects=True,
                limits=httpx.Limits(
                    max_connections=self.max_concurrency * 2,
                    max_keepalive_connections=self.max_concurrency,
                ),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Release the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            logger.debug(f"[{self.SOURCE_NAME}] HTTP client closed")
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Pacing and backoff
    # ------------------------------------------------------------------

    async def _pace(self) -> None:
        if self.rate_limit_interval is None:
            return
        async with self._pacing_lock:
            loop = asyncio.get_running_loop()
            wait = self.rate_limit_interval - (loop.time() - self._last_sent_at)
            if wait > 0:
                logger.debug(f"[{self.SOURCE_NAME}] Pacing {wait:.2f}s")
                await asyncio.sleep(wait)
            self._last_sent_at = loop.time()

    async def _backoff(self, attempt: int, base_delay: float = 1.0) -> None:
        """Sleep base_delay * factor**attempt (capped), +/- JITTER."""
        delay = min(base_delay * self.backoff_factor ** attempt, self.MAX_BACKOFF_SECONDS)
        delay += delay * self.JITTER * (2 * random.random() - 1)
        delay = max(0.1, delay)
        logger.debug(f"[{self.SOURCE_NAME}] Retrying in {delay:.2f}s (attempt {attempt + 1})")
        await asyncio.sleep(delay)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _check_api_error(self, data: Any, resource_id: str) -> Optional[APIError]:
        """
        Inspect a decoded 200 body for an error the source reports in-band.

        Returns:
            The error to raise, or None when the body is a real answer
        """
        return None

    def _classify_http_error(self, status_code: int, response_text: str) -> APIError:
        return classify_http_error(status_code, response_text, self.SOURCE_NAME)

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": f"MarketIntel/{self.SOURCE_NAME}-client",
        }

    def _add_auth_to_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return params

    def _add_auth_to_body(self, body: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return body

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _decode(self, response: httpx.Response, resource_id: str) -> Any:
        # 204 / empty body is how some sources (Census) say "no rows"
        if response.status_code == 204 or not response.content.strip():
            return None
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            snippet = response.text[:120].replace("\n", " ")
            raise MalformedResponseError(
                f"Response for {resource_id} is not valid JSON: {e}",
                source=self.SOURCE_NAME,
                structure_summary=f"text starting {snippet!r}",
            )

    def _transport_error(self, exc: httpx.HTTPError, resource_id: str) -> APIError:
        """Translate an httpx exception into the APIError hierarchy."""
        if isinstance(exc, httpx.HTTPStatusError):
            response = exc.response
            error = self._classify_http_error(response.status_code, response.text[:500])
            if isinstance(error, RateLimitError):
                retry_after = response.headers.get("Retry-After")
                if retry_after and retry_after.isdigit():
                    error.retry_after = int(retry_after)
            return error
        if isinstance(exc, httpx.TimeoutException):
            return RequestTimeoutError(
                message=f"Timed out fetching {resource_id}: {exc.__class__.__name__}",
                source=self.SOURCE_NAME,
            )
        return RetryableError(
            message=f"Request failed: {str(exc) or exc.__class__.__name__}",
            source=self.SOURCE_NAME,
        )

    async def _send_once(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        params: Dict[str, Any],
        json_body: Optional[Dict[str, Any]],
        headers: Dict[str, str],
        resource_id: str,
    ) -> Any:
        """One attempt. Returns decoded JSON or raises APIError."""
        try:
            response = await client.request(
                method, url, params=params, json=json_body, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._transport_error(e, resource_id) from e

        data = self._decode(response, resource_id)
        in_band = self._check_api_error(data, resource_id)
        if in_band is not None:
            raise in_band
        return data

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Send a request, retrying transient failures.

        Retryable errors (5xx, timeouts, connection failures, retryable
        in-band errors) are retried with backoff until max_retries
        attempts are used. Rate limits are raised at once.

        Args:
            method: HTTP method
            url: Absolute URL, or a path joined onto base_url
            params: Query parameters (auth is added here)
            json_body: JSON body (auth is added here for body-auth sources)
            resource_id: Label for logs and error messages
            extra_headers: Merged over _build_headers()

        Raises:
            APIError: The last error once attempts are exhausted, or the
                first non-retryable one
        """
        if not url.startswith("http"):
            url = f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"

        params = self._add_auth_to_params(dict(params or {}))
        if json_body is not None:
            json_body = self._add_auth_to_body(dict(json_body))
        headers = self._build_headers()
        if extra_headers:
            headers.update(extra_headers)

        async with self.semaphore:
            await self._pace()
            client = await self._get_client()

            attempt = 0
            while True:
                logger.debug(
                    f"[{self.SOURCE_NAME}] {method} {resource_id} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                try:
                    return await self._send_once(
                        client, method.upper(), url, params, json_body, headers, resource_id
                    )
                except RateLimitError as e:
                    logger.warning(
                        f"[{self.SOURCE_NAME}] Rate limited on {resource_id} "
                        f"(retry after {e.retry_after}s)"
                    )
                    raise
                except APIError as e:
                    attempt += 1
                    if not e.retryable or attempt >= self.max_retries:
                        raise
                    logger.warning(
                        f"[{self.SOURCE_NAME}] {e.__class__.__name__} on {resource_id}, "
                        f"retrying: {e}"
                    )
                    await self._backoff(attempt - 1)

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
    ) -> Any:
        return await self._request("GET", url, params=params, resource_id=resource_id)

    async def post(
        self,
        url: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
    ) -> Any:
        return await self._request(
            "POST", url, params=params, json_body=json_body, resource_id=resource_id
        )
