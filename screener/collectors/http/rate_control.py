"""Endpoint rate tracking and adaptive concurrency control.

All state lives on explicit objects owned by whoever builds the HTTP client,
so independent importers never share counters.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
DEFAULT_CLASS_NAME = "default"


@dataclass
class RateClass:
    """A named rate class, matched by substring against the endpoint path.

    The default class uses ``match=None`` and applies when nothing else does.
    """

    name: str
    requests_per_minute: int
    min_spacing: float = 0.0
    match: str | None = None


DEFAULT_RATE_CLASSES = [
    RateClass(name="profile-bulk", match="profile-bulk", requests_per_minute=1, min_spacing=60.0),
    RateClass(name="etf-bulk", match="etf-bulk", requests_per_minute=1, min_spacing=60.0),
    RateClass(name="bulk", match="bulk", requests_per_minute=6, min_spacing=10.0),
    RateClass(name=DEFAULT_CLASS_NAME, requests_per_minute=750, min_spacing=0.0),
]


@dataclass
class EndpointWindow:
    """Requests seen for one endpoint in the current window."""

    window_start: float
    count: int = 0
    last_request: float | None = None


class EndpointRateTracker:
    """Per-endpoint request counters with a per-minute ceiling and spacing.

    Callers ask for ``required_delay`` before issuing a request, sleep that
    long, then call ``record_request``.
    """

    def __init__(
        self,
        rate_classes: list[RateClass] | None = None,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        classes = list(rate_classes or DEFAULT_RATE_CLASSES)
        self._default = next(
            (c for c in classes if c.match is None),
            RateClass(name=DEFAULT_CLASS_NAME, requests_per_minute=750),
        )
        # Longest pattern first so "profile-bulk" is not swallowed by "bulk"
        self._matchers = sorted(
            (c for c in classes if c.match),
            key=lambda c: len(c.match),
            reverse=True,
        )
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, EndpointWindow] = {}

    def classify(self, endpoint: str) -> RateClass:
        for rate_class in self._matchers:
            if rate_class.match in endpoint:
                return rate_class
        return self._default

    def required_delay(self, endpoint: str) -> float:
        """Seconds to wait before ``endpoint`` may be called again."""
        state = self._windows.get(endpoint)
        if state is None:
            return 0.0

        rate_class = self.classify(endpoint)
        now = self._clock()

        window_wait = 0.0
        window_elapsed = now - state.window_start
        if window_elapsed < self.window_seconds and state.count >= rate_class.requests_per_minute:
            window_wait = self.window_seconds - window_elapsed

        spacing_wait = 0.0
        if rate_class.min_spacing > 0 and state.last_request is not None:
            spacing_wait = max(0.0, rate_class.min_spacing - (now - state.last_request))

        return max(window_wait, spacing_wait)

    def record_request(self, endpoint: str) -> None:
        now = self._clock()
        state = self._windows.get(endpoint)
        if state is None or now - state.window_start >= self.window_seconds:
            state = EndpointWindow(window_start=now)
            self._windows[endpoint] = state

        state.count += 1
        state.last_request = now

    def window(self, endpoint: str) -> EndpointWindow | None:
        return self._windows.get(endpoint)


@dataclass
class ConcurrencySettings:
    """Tuning knobs for the adaptive controller. Delays are in seconds."""

    initial_concurrency: int = 15
    min_concurrency: int = 5
    max_concurrency: int = 30
    step: int = 3
    success_threshold: int = 30
    rate_limit_threshold: int = 2
    initial_backoff: float = 0.2
    max_backoff: float = 3.0
    backoff_factor: float = 1.5


class AdaptiveConcurrencyController:
    """Adjusts concurrency and backoff from consecutive outcomes.

    Concurrency only changes when a streak reaches its threshold, and always
    stays within ``[min_concurrency, max_concurrency]``.
    """

    def __init__(self, settings: ConcurrencySettings | None = None):
        self.settings = settings or ConcurrencySettings()
        s = self.settings
        self.concurrency = max(s.min_concurrency, min(s.max_concurrency, s.initial_concurrency))
        self.backoff = s.initial_backoff

        self.success_streak = 0
        self.rate_limit_streak = 0

        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.rate_limited_requests = 0

    def record_success(self) -> None:
        s = self.settings
        self.total_requests += 1
        self.successful_requests += 1
        self.success_streak += 1
        self.rate_limit_streak = 0

        if self.success_streak >= s.success_threshold and self.concurrency < s.max_concurrency:
            previous = self.concurrency
            self.concurrency = min(self.concurrency + s.step, s.max_concurrency)
            self.backoff = s.initial_backoff
            self.success_streak = 0
            logger.info(f"Raising concurrency {previous} -> {self.concurrency}")

    def record_rate_limit(self) -> float:
        """Register a 429/403 and return the backoff to sleep before retrying."""
        s = self.settings
        self.total_requests += 1
        self.rate_limited_requests += 1
        self.rate_limit_streak += 1
        self.success_streak = 0

        if self.rate_limit_streak >= s.rate_limit_threshold and self.concurrency > s.min_concurrency:
            previous = self.concurrency
            self.concurrency = max(self.concurrency - s.step, s.min_concurrency)
            self.rate_limit_streak = 0
            logger.warning(f"Rate limited, lowering concurrency {previous} -> {self.concurrency}")

        self.backoff = min(self.backoff * s.backoff_factor, s.max_backoff)
        return self.backoff

    def record_failure(self) -> None:
        self.total_requests += 1
        self.failed_requests += 1

    def stats(self) -> dict[str, Any]:
        return {
            "concurrency": self.concurrency,
            "backoff": self.backoff,
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "rateLimitedRequests": self.rate_limited_requests,
        }
