"""Per-connection token bucket for inbound websocket frames."""

import time


class TokenBucket:
    """Allow ``burst`` frames at once, refilled at ``rate`` frames per second.

    ``consume`` returns False when the bucket is empty and the frame should be dropped.
    """

    def __init__(self, rate: float, burst: int, *, clock=time.monotonic) -> None:  # noqa: ANN001
        self._rate = rate
        self._burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._updated_at = clock()

    def consume(self) -> bool:
        now = self._clock()
        self._tokens = min(float(self._burst), self._tokens + (now - self._updated_at) * self._rate)
        self._updated_at = now
        if self._tokens < 1.0:
            return False
        self._tokens -= 1.0
        return True
