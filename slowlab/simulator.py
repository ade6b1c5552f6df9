"""
Simulated slow downstream operation: random delay, then random failure.
"""

import logging
import random
import time

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = 'Random server error occurred'


class SimulatedFailure(Exception):
    """Transient downstream error; the request may be retried by the caller"""

    def __init__(self, message=FAILURE_MESSAGE, delay_ms=0):
        super().__init__(message)
        self.message = message
        self.delay_ms = delay_ms


class LatencySimulator:
    """
    Blocks the calling thread for a delay drawn uniformly from
    [min_delay_ms, max_delay_ms], then fails with probability failure_rate.

    The random source and the sleep function are injectable so tests can
    force outcomes without waiting on the wall clock.
    """

    def __init__(self, min_delay_ms=500, max_delay_ms=3000, failure_rate=0.2,
                 rng=None, sleep=time.sleep):
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings):
        return cls(
            min_delay_ms=settings.min_delay_ms,
            max_delay_ms=settings.max_delay_ms,
            failure_rate=settings.failure_rate,
        )

    def simulate(self):
        """Run one simulated operation and return its delay in milliseconds"""
        delay_ms = self.rng.randint(self.min_delay_ms, self.max_delay_ms)
        self.sleep(delay_ms / 1000.0)

        # Separate draw so the failure rate does not depend on the delay
        if self.rng.random() < self.failure_rate:
            logger.debug(f'Simulated failure after {delay_ms}ms')
            raise SimulatedFailure(FAILURE_MESSAGE, delay_ms=delay_ms)

        return delay_ms
