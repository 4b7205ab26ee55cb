"""Consecutive-failure breaker for the primary transcription provider.

FailoverSTT consults it before every call: after ``failure_threshold``
primary failures in a row the secondary provider takes over until
``cooldown_seconds`` pass, then one probe goes back to the primary.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreaker:
    failure_threshold: int = 3
    cooldown_seconds: float = 60.0
    label: str = "primary STT"
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    consecutive_failures: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False, repr=False)

    @property
    def is_open(self) -> bool:
        return self.consecutive_failures >= self.failure_threshold

    def allows_primary(self) -> bool:
        if not self.is_open:
            return True
        # Half-open: let one probe through once the cooldown has elapsed.
        return self._opened_at is not None and (self.clock() - self._opened_at) >= self.cooldown_seconds

    def record_success(self) -> None:
        if self.is_open:
            logger.info("Circuit for %s closed after successful probe", self.label)
        self.consecutive_failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if not self.is_open:
            return
        if self._opened_at is None:
            logger.warning(
                "Circuit OPENED for %s after %d consecutive failures, using secondary for %.0fs",
                self.label,
                self.consecutive_failures,
                self.cooldown_seconds,
            )
        # A failed half-open probe restarts the cooldown.
        self._opened_at = self.clock()
