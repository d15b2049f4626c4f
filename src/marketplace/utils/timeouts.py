import time
from typing import Callable

from marketplace.core.exceptions import RequestTimeoutError


class Deadline:
    """
    Time budget for one request.

    Long operations call check() between I/O steps; once the budget is
    spent it raises RequestTimeoutError, which unwinds (and rolls back)
    any open transaction.
    """

    def __init__(self, timeout_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._expires_at = clock() + timeout_seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, operation: str) -> None:
        if self.expired:
            raise RequestTimeoutError(operation, self.timeout_seconds)
