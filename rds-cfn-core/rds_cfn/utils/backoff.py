import time
from typing import Optional

from pydantic import Field
from pydantic.dataclasses import dataclass


@dataclass
class ConstantBackoff:
    """
    ConstantBackoff describes a polling profile with a fixed interval between two attempts and an
    overall ceiling for the whole operation.

    Unlike an in-process retry loop, nothing sleeps here: the caller records when polling started
    (usually in a callback context that survives handler re-invocations) and asks the policy whether
    another attempt is still allowed, and how long to wait until then.

    For example, given:
        `delay` = 30
        `timeout` = 1800

    A resource that started stabilizing at t=0 is polled at t=0, 30, 60, ... and the policy reports
    `is_expired()` for any poll after t=1800.

    Note:
        - `timeout` of -1 means the policy never expires
        - `started_at` values are wall clock timestamps (``time.time()``), since they have to stay
          meaningful across processes
    """

    delay: float = Field(30, title="Interval between two attempts in seconds", ge=0)
    timeout: float = Field(-1, title="Max total time in seconds (-1 for unlimited)", ge=-1)

    def next_backoff(self) -> float:
        return self.delay

    def elapsed(self, started_at: float, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return max(now - started_at, 0)

    def is_expired(self, started_at: Optional[float], now: Optional[float] = None) -> bool:
        if started_at is None or self.timeout < 0:
            return False
        return self.elapsed(started_at, now) > self.timeout
