from __future__ import annotations

import asyncio
import random


class HumanDelay:
    """Randomized pause around fetches to mimic a person browsing."""

    def __init__(self, min_seconds: float, max_seconds: float) -> None:
        self.min_seconds = max(0.0, min_seconds)
        self.max_seconds = max(self.min_seconds, max_seconds)

    def next_delay(self) -> float:
        return random.uniform(self.min_seconds, self.max_seconds)

    async def wait(self) -> None:
        delay = self.next_delay()
        if delay > 0:
            await asyncio.sleep(delay)
