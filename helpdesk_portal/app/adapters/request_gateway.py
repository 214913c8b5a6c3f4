"""
Timeout-bounded, retrying HTTP gateway.
"""

import asyncio
import time
from typing import Any, Optional, Tuple

import httpx

from helpdesk_shared.config import PortalConfig
from helpdesk_shared.errors import TransportFailure, ValidationError
from helpdesk_shared.logging import get_logger, request_context
from helpdesk_shared.metrics import NullMetrics
from helpdesk_shared.retry import RetryConfig, RetryError, retry_async

# Only failures to obtain a response are retried; any received response,
# whatever its status, is handed back to the caller.
TRANSPORT_ERRORS = (httpx.TransportError, asyncio.TimeoutError)


class RequestGateway:
    """Issues requests with a hard per-attempt timeout and fixed-delay retries."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        retry_attempts: int = 3,
        timeout_ms: int = 10000,
        retry_delay_ms: int = 500,
        max_retry_attempts: int = 5,
        max_timeout_ms: int = 60000,
        metrics: Optional[Any] = None,
    ):
        if retry_attempts < 0 or max_retry_attempts < 0:
            raise ValidationError("retry attempts must not be negative")
        if timeout_ms <= 0 or max_timeout_ms <= 0:
            raise ValidationError("timeouts must be positive")
        self.retry_attempts = min(retry_attempts, max_retry_attempts)
        self.timeout_ms = min(timeout_ms, max_timeout_ms)
        self.retry_delay_ms = retry_delay_ms
        self.max_retry_attempts = max_retry_attempts
        self.max_timeout_ms = max_timeout_ms
        self.metrics = metrics if metrics is not None else NullMetrics()
        self.logger = get_logger("portal.request_gateway")

        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: PortalConfig, client: Optional[httpx.AsyncClient] = None,
                    metrics: Optional[Any] = None) -> "RequestGateway":
        return cls(
            client,
            retry_attempts=config.api_retry_attempts,
            timeout_ms=config.api_timeout_ms,
            retry_delay_ms=config.retry_delay_ms,
            max_retry_attempts=config.api_max_retry_attempts,
            max_timeout_ms=config.api_max_timeout_ms,
            metrics=metrics,
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating one on first use."""
        if self._client is None:
            # Per-attempt deadlines are enforced by wait_for; httpx only guards the upper bound.
            self._client = httpx.AsyncClient(timeout=self.max_timeout_ms / 1000)
        return self._client

    def _resolve(self, retries: Optional[int], timeout_ms: Optional[int]) -> Tuple[int, int]:
        """Apply configuration defaults and maxima to per-call overrides."""
        resolved_retries = self.retry_attempts if retries is None else retries
        resolved_timeout = self.timeout_ms if timeout_ms is None else timeout_ms

        if isinstance(resolved_retries, bool) or resolved_retries < 0:
            raise ValidationError("retries must be a non-negative integer", {"retries": retries})
        if resolved_timeout <= 0:
            raise ValidationError("timeout_ms must be positive", {"timeout_ms": timeout_ms})

        if resolved_retries > self.max_retry_attempts:
            self.logger.warning("Clamping retry override", requested=resolved_retries, maximum=self.max_retry_attempts)
            resolved_retries = self.max_retry_attempts
        if resolved_timeout > self.max_timeout_ms:
            self.logger.warning("Clamping timeout override", requested=resolved_timeout, maximum=self.max_timeout_ms)
            resolved_timeout = self.max_timeout_ms

        return resolved_retries, resolved_timeout

    async def request(
        self,
        url: str,
        method: str = "GET",
        *,
        retries: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        **options: Any,
    ) -> httpx.Response:
        """Send a request and return the raw response.

        Makes up to ``retries + 1`` attempts. Raises :class:`TransportFailure`
        when none of them produced a response.
        """
        retries, timeout_ms = self._resolve(retries, timeout_ms)
        client = self._get_client()

        async def _attempt() -> httpx.Response:
            try:
                response = await asyncio.wait_for(
                    client.request(method, url, **options),
                    timeout=timeout_ms / 1000,
                )
            except TRANSPORT_ERRORS:
                self.metrics.increment_counter("portal_http_attempts_total", outcome="transport_error")
                raise
            self.metrics.increment_counter("portal_http_attempts_total", outcome="response")
            return response

        retry_config = RetryConfig(
            max_attempts=retries + 1,
            base_delay=self.retry_delay_ms / 1000,
        )

        start = time.perf_counter()
        with request_context():
            try:
                response = await retry_async(
                    _attempt,
                    exceptions=TRANSPORT_ERRORS,
                    config=retry_config,
                    name="http_request",
                )
            except RetryError as e:
                self.logger.error(
                    "Request failed at transport level",
                    method=method,
                    url=url,
                    attempts=e.attempts,
                    error=repr(e.last_exception),
                )
                raise TransportFailure(url, e.last_exception, e.attempts) from e.last_exception
            finally:
                self.metrics.observe_histogram(
                    "portal_http_request_duration_seconds",
                    time.perf_counter() - start,
                    method=method,
                )

            if response.is_error:
                self.logger.info("Request returned error status", method=method, url=url,
                                 status_code=response.status_code)
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request(url, "GET", **kwargs)

    async def post(self, url: str, json: Any = None, **kwargs: Any) -> httpx.Response:
        return await self.request(url, "POST", json=json, **kwargs)

    async def put(self, url: str, json: Any = None, **kwargs: Any) -> httpx.Response:
        return await self.request(url, "PUT", json=json, **kwargs)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
