"""
Timeout supervision for sandbox sessions.

TimeoutSupervisor races one awaitable against a wall-clock budget and calls
an on-expiry teardown (kill the child, drop the V8 context) before raising
ScriptTimeoutError. arm_soft_alarm() is the in-interpreter variant used by
the Python guest (SIGALRM via setitimer, Unix only).
"""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

_log = logging.getLogger(__name__)

T = TypeVar("T")


class ScriptTimeoutError(TimeoutError):
    """Raised when a script exceeds its time budget."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Script execution timed out after {timeout_ms}ms")


class TimeoutSupervisor:
    """One deadline per session. The deadline starts when run() is entered."""

    def __init__(
        self,
        timeout_ms: int,
        *,
        on_expire: Callable[[], Awaitable[None] | None] | None = None,
    ) -> None:
        self.timeout_ms = timeout_ms
        self._on_expire = on_expire
        self.expired = False

    async def run(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError:
            self.expired = True
            _log.info("script session exceeded %sms budget", self.timeout_ms)
            if self._on_expire is not None:
                res = self._on_expire()
                if asyncio.iscoroutine(res) or isinstance(res, asyncio.Future):
                    await res
            raise ScriptTimeoutError(self.timeout_ms) from None


def soft_budget_ms(timeout_ms: int) -> int:
    """Guest-side alarm fires ahead of the host deadline to leave time for the report."""
    return max(1, int(timeout_ms * 0.85))


@contextmanager
def arm_soft_alarm(timeout_ms: int | None) -> Iterator[None]:
    """Raise ScriptTimeoutError in the main thread after timeout_ms. No-op without setitimer."""
    if not timeout_ms or timeout_ms <= 0 or not hasattr(signal, "setitimer"):
        yield
        return

    def _handler(signum: int, frame: Any) -> None:
        raise ScriptTimeoutError(timeout_ms)

    old = signal.signal(signal.SIGALRM, _handler)
    try:
        signal.setitimer(signal.ITIMER_REAL, timeout_ms / 1000)
        try:
            yield
        finally:
            signal.setitimer(signal.ITIMER_REAL, 0)
    finally:
        signal.signal(signal.SIGALRM, old)
