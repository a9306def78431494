"""Rate-limited JSON HTTP client using aiohttp."""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

import aiohttp

from screener.collectors.http.rate_control import (
    AdaptiveConcurrencyController,
    EndpointRateTracker,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUSES = (429, 403)
DEFAULT_RATE_LIMIT_RESET = timedelta(minutes=5)
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"


class UpstreamError(Exception):
    """A request failed in a way that is not retried."""

    def __init__(self, message: str, status: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status = status
        self.url = url


class RateLimitError(UpstreamError):
    """Rate-limit retries were exhausted (only when retries are bounded)."""

    def __init__(self, message: str, reset_at: datetime, status: int | None = None, url: str | None = None):
        super().__init__(message, status=status, url=url)
        self.reset_at = reset_at


class RateLimitedClient:
    """Issues GET requests against one provider's base URL.

    Throttles each endpoint before the request is sent, retries 429/403
    responses with multiplicative backoff, and feeds every outcome to the
    shared concurrency controller. Any other failure raises ``UpstreamError``.

    Attributes:
        base_url: Provider base URL, without trailing slash
        api_key_param: Query parameter that carries the API key
        controller: Adaptive concurrency state shared with the importer
        tracker: Per-endpoint window and spacing state
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        api_key_param: str = "apikey",
        controller: AdaptiveConcurrencyController | None = None,
        tracker: EndpointRateTracker | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 15.0,
        max_rate_limit_retries: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_key_param = api_key_param
        self.controller = controller or AdaptiveConcurrencyController()
        self.tracker = tracker or EndpointRateTracker()
        self.timeout = timeout
        self.max_rate_limit_retries = max_rate_limit_retries

        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._now = now

        self.rate_limit_hits = 0
        self.last_rate_limit_reset: datetime | None = None

        logger.debug(
            "INIT: RateLimitedClient initialized",
            extra={
                "extra_data": {
                    "action": "client_init",
                    "base_url": self.base_url,
                    "api_key_param": api_key_param,
                    "has_api_key": api_key is not None,
                    "timeout": timeout,
                }
            },
        )

    async def __aenter__(self) -> "RateLimitedClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Open an owned session if none was injected."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _parse_reset(self, headers: Any) -> datetime:
        raw = headers.get(RATE_LIMIT_RESET_HEADER) if headers else None
        if raw:
            try:
                return datetime.fromtimestamp(float(raw))
            except (TypeError, ValueError, OverflowError, OSError):
                logger.debug(f"Unparseable {RATE_LIMIT_RESET_HEADER} header: {raw!r}")
        return self._now() + DEFAULT_RATE_LIMIT_RESET

    async def _throttle(self, endpoint: str) -> None:
        delay = self.tracker.required_delay(endpoint)
        if delay > 0:
            logger.debug(
                f"THROTTLE: Waiting {delay:.2f}s before {endpoint}",
                extra={
                    "extra_data": {
                        "action": "throttle",
                        "endpoint": endpoint,
                        "rate_class": self.tracker.classify(endpoint).name,
                        "delay": delay,
                    }
                },
            )
            await self._sleep(delay)
        self.tracker.record_request(endpoint)

    async def request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``endpoint`` and return the parsed JSON body.

        Args:
            endpoint: Path relative to the base URL, starting with "/"
            params: Extra query parameters

        Raises:
            UpstreamError: Non-retryable HTTP status, network error or bad JSON
            RateLimitError: Only when ``max_rate_limit_retries`` is set
        """
        if self._session is None:
            await self.start()

        url = f"{self.base_url}{endpoint}"
        query = dict(params or {})
        if self.api_key:
            query[self.api_key_param] = self.api_key

        attempts = 0
        while True:
            await self._throttle(endpoint)
            attempts += 1

            try:
                async with self._session.get(
                    url,
                    params=query,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    status = response.status

                    if status in RATE_LIMIT_STATUSES:
                        reset_at = self._parse_reset(response.headers)
                    elif status >= 400:
                        body = await response.text()
                        self.controller.record_failure()
                        raise UpstreamError(
                            f"HTTP {status} from {endpoint}: {body[:200]}",
                            status=status,
                            url=url,
                        )
                    else:
                        data = await response.json(content_type=None)
                        self.controller.record_success()
                        return data

            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                self.controller.record_failure()
                raise UpstreamError(f"Request to {endpoint} failed: {e}", url=url) from e

            # Rate limited: back off and retry the same request
            self.rate_limit_hits += 1
            self.last_rate_limit_reset = reset_at
            backoff = self.controller.record_rate_limit()

            logger.warning(
                f"HTTP {status} on {endpoint}, retrying in {backoff:.2f}s "
                f"(attempt {attempts}, concurrency {self.controller.concurrency})"
            )

            if self.max_rate_limit_retries is not None and attempts > self.max_rate_limit_retries:
                raise RateLimitError(
                    f"Rate limit retries exhausted for {endpoint}",
                    reset_at=reset_at,
                    status=status,
                    url=url,
                )

            await self._sleep(backoff)
