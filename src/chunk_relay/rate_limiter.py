"""
Per-model sliding-window rate limiter.

Each model with a catalog entry gets a RateWindow holding the request
timestamps and (timestamp, tokens) pairs of the trailing 60 seconds.
admit() suspends the caller until the model is below its requests-per-minute
cap; record() books a completed request. Token usage is tracked but only
advisory.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from .models import ModelRegistry

logger = logging.getLogger(__name__)


WINDOW_SECONDS = 60.0


@dataclass
class RateWindow:
    """Sliding-window usage for one model."""
    requests: list[float] = field(default_factory=list)
    tokens: list[tuple[float, int]] = field(default_factory=list)
    throttle_count: int = 0

    def prune(self, now: float) -> None:
        """Drop entries older than the window."""
        cutoff = now - WINDOW_SECONDS
        self.requests = [t for t in self.requests if t > cutoff]
        self.tokens = [(t, count) for t, count in self.tokens if t > cutoff]


class RateLimiter:
    """
    Admission control over a 60 second window, per model.

    Windows are created lazily on first use and never evicted; only their
    entries are pruned. Models missing from the registry are not limited.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self._clock = clock
        self._sleep = sleep
        self._windows: dict[str, RateWindow] = {}

    def _window(self, model_key: str) -> RateWindow:
        window = self._windows.get(model_key)
        if window is None:
            window = RateWindow()
            self._windows[model_key] = window
        return window

    async def admit(self, model_key: str) -> None:
        """Wait until a request slot is available for the model."""
        model = self.registry.lookup(model_key)
        if model is None:
            return

        window = self._window(model_key)
        while True:
            now = self._clock()
            window.prune(now)

            if len(window.requests) < model.rpm:
                return

            wait_time = max(0.0, window.requests[0] + WINDOW_SECONDS - now)
            window.throttle_count += 1
            logger.info(
                f"[RATE LIMIT] {model_key}: {len(window.requests)}/{model.rpm} RPM, "
                f"waiting {wait_time * 1000:.0f}ms"
            )
            if wait_time > 0:
                await self._sleep(wait_time)

    def record(self, model_key: str, input_tokens: float, output_tokens: float) -> None:
        """Book one completed request against the model's window."""
        if self.registry.lookup(model_key) is None:
            return

        now = self._clock()
        total = int(round(input_tokens + output_tokens))
        window = self._window(model_key)
        window.requests.append(now)
        window.tokens.append((now, total))

        logger.debug(
            f"[TRACK] {model_key}: {round(input_tokens)} input + "
            f"{round(output_tokens)} output = {total} tokens"
        )

    def get_stats(self, model_key: str) -> dict[str, Any]:
        """Get current window statistics for a model."""
        model = self.registry.lookup(model_key)
        window = self._windows.get(model_key)
        if window is None:
            return {
                "model": model_key,
                "requests_last_minute": 0,
                "tokens_last_minute": 0,
                "throttle_count": 0,
                "requests_limit": model.rpm if model else None,
                "tokens_limit": model.tpm if model else None,
            }

        window.prune(self._clock())
        return {
            "model": model_key,
            "requests_last_minute": len(window.requests),
            "tokens_last_minute": sum(count for _, count in window.tokens),
            "throttle_count": window.throttle_count,
            "requests_limit": model.rpm if model else None,
            "tokens_limit": model.tpm if model else None,
        }

    def tracked_models(self) -> list[str]:
        return list(self._windows)
