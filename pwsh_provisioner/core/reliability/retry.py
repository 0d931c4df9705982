"""
Retry policy — bounded re-attempts for transport failures.

An attempt body is re-run while three budgets hold: the attempt count
(``tries``; 0 means unlimited), the wall-clock budget measured from the
first attempt (``start_timeout``), and the external cancellation signal.
Between attempts the policy backs off exponentially with jitter, never
sleeping past the remaining budget. An attempt that is already running
is never interrupted.

Only exceptions listed in ``retry_on`` are retried; anything else
propagates from the failing attempt immediately.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from pwsh_provisioner.core.errors import ProvisioningCancelled, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_START_TIMEOUT = 7 * 60.0
DEFAULT_TRIES = 1


@dataclass
class RetryPolicy:
    """Attempt/time/cancellation bounded retry loop.

    Args:
        tries: Maximum attempts (0 = limited only by ``start_timeout``).
        start_timeout: Seconds after the first attempt during which new
            attempts may still start.
        base_delay: Backoff before the second attempt.
        max_delay: Backoff ceiling.
        retry_on: Exception types that trigger another attempt.
    """

    tries: int = DEFAULT_TRIES
    start_timeout: float = DEFAULT_START_TIMEOUT
    base_delay: float = 1.0
    max_delay: float = 30.0
    retry_on: tuple[type[BaseException], ...] = (TransportError,)

    def backoff(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt, with up to 30% jitter."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * 0.3)

    def run(
        self,
        body: Callable[[int], T],
        cancel: threading.Event | None = None,
    ) -> T:
        """Run ``body(attempt)`` until it succeeds or a budget runs out.

        Returns:
            Whatever the first successful attempt returned.

        Raises:
            ProvisioningCancelled: If cancellation is observed before an attempt.
            Exception: The last retryable error once budgets are exhausted,
                or any non-retryable error straight away.
        """
        waiter = cancel or threading.Event()
        deadline = time.monotonic() + self.start_timeout
        attempt = 0

        while True:
            if waiter.is_set():
                raise ProvisioningCancelled("Provisioning cancelled before attempt started.")

            attempt += 1
            try:
                return body(attempt)
            except self.retry_on as e:
                remaining = deadline - time.monotonic()
                if (self.tries > 0 and attempt >= self.tries) or remaining <= 0:
                    logger.debug("Retry budget exhausted after %d attempt(s): %s", attempt, e)
                    raise

                delay = min(self.backoff(attempt), remaining)
                logger.warning(
                    "Attempt %d failed (%s); retrying in %.1fs", attempt, e, delay
                )
                if waiter.wait(delay):
                    raise ProvisioningCancelled(
                        f"Provisioning cancelled after attempt {attempt}."
                    ) from e
