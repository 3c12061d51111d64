"""Simulated network timing."""

import asyncio
import random


class SimulatedLatency:
    """Delay awaited before each simulated round trip to the backend.

    Each wait lasts ``delay`` plus a uniform random extra of up to ``jitter``
    seconds. Jitter is off by default; with it on, concurrent operations no
    longer resolve in call order. ``round_trips`` counts completed waits.
    """

    def __init__(self, delay: float, jitter: float = 0.0, rng: random.Random | None = None):
        if delay < 0 or jitter < 0:
            raise ValueError("delay and jitter must not be negative")
        self.delay = delay
        self.jitter = jitter
        self.rng = rng or random.Random()
        self.round_trips = 0

    def next_delay(self) -> float:
        if not self.jitter:
            return self.delay
        return self.delay + self.rng.uniform(0, self.jitter)

    async def wait(self) -> None:
        # sleep(0) still yields to the loop
        await asyncio.sleep(self.next_delay())
        self.round_trips += 1

    def reset(self) -> None:
        self.round_trips = 0
