"""Retry classification and capped exponential backoff."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from aws_invoker.domain.anomalies import BUSY, CATEGORY_KEY, INTERRUPTED, UNAVAILABLE

RETRIABLE_CATEGORIES = frozenset({BUSY, INTERRUPTED, UNAVAILABLE})


def default_retriable(anomaly: Mapping[str, Any]) -> bool:
    return anomaly.get(CATEGORY_KEY) in RETRIABLE_CATEGORIES


class RetryPolicy:
    """Decides whether a failed attempt is retried and how long to wait.

    ``retriable_fn(anomaly)`` and ``backoff_fn(attempt)`` replace the
    defaults when given. ``attempt`` counts from 1 for the first failure.
    Delays are in seconds.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.1,
        max_backoff: float = 20.0,
        retriable_fn: Callable[[Mapping[str, Any]], bool] | None = None,
        backoff_fn: Callable[[int], float | None] | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0 or max_backoff < 0:
            raise ValueError("base_delay and max_backoff must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_backoff = max_backoff
        self._retriable_fn = retriable_fn
        self._backoff_fn = backoff_fn

    def retriable(self, anomaly: Mapping[str, Any]) -> bool:
        if self._retriable_fn is not None:
            return bool(self._retriable_fn(anomaly))
        return default_retriable(anomaly)

    def backoff(self, attempt: int) -> float | None:
        if self._backoff_fn is not None:
            return self._backoff_fn(attempt)
        if attempt > self.max_retries:
            return None
        return min(self.max_backoff, self.base_delay * 2 ** (attempt - 1))

    def should_retry(self, attempt: int, anomaly: Mapping[str, Any]) -> float | None:
        """Delay before the next attempt, or None when the invocation should stop."""
        if attempt > self.max_retries or not self.retriable(anomaly):
            return None
        return self.backoff(attempt)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_retries={self.max_retries}, base_delay={self.base_delay}, "
            f"max_backoff={self.max_backoff})"
        )
