"""
Retry policy — bounded attempts with a fixed backoff.

Attached explicitly to the phases whose forward action depends on the
network (package index refresh/upgrade). Other phases fail on the
first error.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from src.core.errors import CommandFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry a callable up to ``max_attempts`` times.

    Only CommandFailure is retried; every other error propagates on the
    first occurrence. The last CommandFailure is re-raised once all
    attempts are exhausted.
    """

    max_attempts: int = 3
    delay: float = 10.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    def call(self, fn: Callable[[], T], *, label: str = "") -> tuple[T, int]:
        """Run *fn* under the policy.

        Returns:
            (result, attempts_used)
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn(), attempt
            except CommandFailure as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        "%s failed after %d/%d attempts: %s",
                        label or "operation", attempt, self.max_attempts, e,
                    )
                    raise
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.0fs: %s",
                    label or "operation", attempt, self.max_attempts, self.delay, e,
                )
                self.sleep(self.delay)


NETWORK_RETRY = RetryPolicy(max_attempts=3, delay=10.0)
