from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Bounded attempts with exponential backoff between them.

    Attempts are numbered from 1; ``delay_for(n)`` is the pause before attempt ``n + 1``.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    factor: float = 2.0
    max_delay_seconds: float = 30.0

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        delay = self.base_delay_seconds * (self.factor ** max(0, attempt - 1))
        return max(0.0, min(delay, self.max_delay_seconds))
