"""
Caller-supplied deadlines for read-heavy operations (evaluation, verification).

A Deadline is checked between stages; once expired the operation raises
OperationTimeout instead of returning whatever it has computed so far.
"""
from __future__ import annotations

import time
from typing import Callable, Optional

from factora.core.errors import OperationTimeout


class Deadline:

    def __init__(
        self,
        timeout_ms: Optional[int],
        operation: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_ms = timeout_ms
        self.operation = operation
        self._clock = clock
        self._expires_at = None if timeout_ms is None else clock() + timeout_ms / 1000.0

    @classmethod
    def unbounded(cls, operation: str) -> "Deadline":
        return cls(None, operation)

    def remaining_ms(self) -> Optional[int]:
        if self._expires_at is None:
            return None
        return max(0, int((self._expires_at - self._clock()) * 1000))

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self, stage: str) -> None:
        if self.expired:
            raise OperationTimeout(self.operation, self.timeout_ms, stage)
