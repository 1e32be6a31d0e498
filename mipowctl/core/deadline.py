"""Time-bounded scopes that also end on an interrupt signal."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

LOGGER = logging.getLogger(__name__)

DEADLINE = "deadline"
INTERRUPTED = "interrupted"
CANCELLED = "cancelled"


class Scope:
    """Cooperative cancellation scope.

    Everything running inside a scope polls ``done`` or awaits ``wait()``;
    nothing is killed from outside. The first reason to end the scope wins.
    """

    def __init__(self) -> None:
        self._done = asyncio.Event()
        self.reason: str | None = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def expired(self) -> bool:
        return self.reason == DEADLINE

    @property
    def interrupted(self) -> bool:
        return self.reason == INTERRUPTED

    def cancel(self, reason: str = CANCELLED) -> None:
        if self._done.is_set():
            return
        self.reason = reason
        self._done.set()

    async def wait(self) -> None:
        await self._done.wait()


@asynccontextmanager
async def interruptible_deadline(
    timeout_s: float,
    *,
    signals: Iterable[signal.Signals] = (signal.SIGINT,),
) -> AsyncIterator[Scope]:
    """Yield a scope that ends after ``timeout_s`` or on the first of ``signals``.

    The timer and the signal handlers are removed when the block exits, however
    it exits.
    """
    loop = asyncio.get_running_loop()
    scope = Scope()
    timer = loop.call_later(timeout_s, scope.cancel, DEADLINE)

    installed: list[signal.Signals] = []
    for sig in signals:
        try:
            loop.add_signal_handler(sig, scope.cancel, INTERRUPTED)
        except (NotImplementedError, RuntimeError, ValueError) as exc:
            LOGGER.debug("Cannot listen for %s, relying on timeout only: %s", sig, exc)
            continue
        installed.append(sig)

    try:
        yield scope
    finally:
        timer.cancel()
        for sig in installed:
            loop.remove_signal_handler(sig)
        scope.cancel()
