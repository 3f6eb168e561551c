"""Retry and backoff policy for idempotent store reads."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .config import Settings, get_settings
from .errors import WorkspaceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_STRATEGIES = ("none", "fixed", "exponential")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff configuration."""

    max_attempts: int = 3
    backoff_strategy: str = "exponential"
    backoff_base_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        if self.backoff_strategy not in BACKOFF_STRATEGIES:
            raise ValueError("backoff_strategy must be one of none, fixed, exponential.")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must be >= 0.")

    @staticmethod
    def from_settings(settings: Optional[Settings] = None) -> "RetryPolicy":
        """Build a retry policy from application settings."""
        settings = settings or get_settings()
        return RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            backoff_strategy=settings.retry_backoff_strategy,
            backoff_base_seconds=settings.retry_backoff_base_seconds,
        )

    def delay_seconds(self, retry_count: int) -> float:
        """Delay before retry number ``retry_count`` (1-based)."""
        if retry_count <= 0:
            raise ValueError("retry_count must be >= 1.")
        if self.backoff_strategy == "none":
            return 0.0
        if self.backoff_strategy == "fixed":
            return self.backoff_base_seconds
        return self.backoff_base_seconds * (2 ** (retry_count - 1))


NO_RETRY = RetryPolicy(max_attempts=1, backoff_strategy="none")


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn``, retrying WorkspaceErrors flagged retryable.

    Non-retryable errors propagate on the first attempt; the last retryable
    error propagates once attempts run out.
    """
    attempt = 1
    while True:
        try:
            return fn()
        except WorkspaceError as e:
            if not e.retryable or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_seconds(attempt)
            logger.warning(
                "Attempt %d/%d failed with %s, retrying in %.2fs",
                attempt,
                policy.max_attempts,
                e.code,
                delay,
            )
            sleep(delay)
            attempt += 1
