"""Exponential backoff with jitter.

``compute_backoff_delay`` is pure apart from the random source, which can be
injected for deterministic tests.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass

from jobnik.core.config import RetryConfig
from jobnik.core.constants import JITTER_MIN_FACTOR, MAX_BACKOFF_EXPONENT


@dataclass
class RetryState:
    """Per-request retry bookkeeping, discarded when the request finishes.

    Attributes:
        attempt: Requests sent so far (1 after the first send).
        delay_ms: Delay computed before the most recent retry.
    """

    attempt: int = 0
    delay_ms: int = 0

    def __post_init__(self) -> None:
        if self.attempt < 0:
            raise ValueError(f"attempt must be >= 0, got {self.attempt}")
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {self.delay_ms}")

    @property
    def retries(self) -> int:
        """Retries performed so far."""
        return max(self.attempt - 1, 0)


def compute_backoff_delay(
    retry_index: int,
    config: RetryConfig,
    rng: random.Random | None = None,
) -> int:
    """Compute the wait before a retry, in whole milliseconds.

    ``delay = min(base * factor ** min(retry_index, 15), max_delay)``. With
    jitter enabled the delay is scaled by a factor drawn uniformly from
    ``[0.5, 0.5 + max_jitter_factor]`` and clamped to ``max_delay`` again.

    Args:
        retry_index: 0 for the first retry, 1 for the second, ...
        config: Retry policy.
        rng: Random source (module ``random`` when None).

    Returns:
        Delay in milliseconds, floored.
    """
    if retry_index < 0:
        raise ValueError(f"retry_index must be >= 0, got {retry_index}")

    exponent = min(retry_index, MAX_BACKOFF_EXPONENT)
    delay = min(
        config.initial_base_retry_delay_ms * config.backoff_factor ** exponent,
        config.max_delay_ms,
    )
    if not config.disable_jitter:
        uniform = (rng or random).uniform
        factor = uniform(JITTER_MIN_FACTOR, JITTER_MIN_FACTOR + config.max_jitter_factor)
        delay = min(delay * factor, config.max_delay_ms)
    return math.floor(delay)
