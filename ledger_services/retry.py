"""
Fixed-backoff retry for event deliveries.

Each attempt re-runs the whole handler body, which owns its own transaction,
so a failed attempt leaves nothing behind.  The runner never raises the
handler's exception; it reports it in the ``RetryOutcome`` so the bus can
park the event.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from ledger_config.schema import RetryPolicy
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.retry")


@dataclass(frozen=True)
class RetryOutcome:
    value: Any
    attempts: int
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class RetryRunner:
    """
    Run a callable under a ``RetryPolicy``.

    ``sleep`` is injectable so tests do not wait out the backoff.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def run(self, fn: Callable[[], Any]) -> RetryOutcome:
        attempt = 0
        while True:
            attempt += 1
            try:
                return RetryOutcome(value=fn(), attempts=attempt)
            except Exception as exc:
                retryable = self.policy.is_retryable(exc)
                final = attempt >= self.policy.max_attempts or not retryable
                logger.warning(
                    "delivery_attempt_failed",
                    extra={
                        "attempt": attempt,
                        "max_attempts": self.policy.max_attempts,
                        "retryable": retryable,
                        "will_retry": not final,
                        "error": str(exc),
                    },
                    exc_info=True,
                )
                if final:
                    return RetryOutcome(value=None, attempts=attempt, error=exc)
                self._sleep(self.policy.backoff_seconds)
