"""Cooperative cancellation: caller-owned tokens and the per-call merged signal."""

import asyncio
from contextlib import suppress
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from .exceptions import RequestAborted


class AbortReason(str, Enum):
    TIMEOUT = 'timeout'
    CANCELLED = 'cancelled'


class CancellationToken:
    """Abort handle owned by the caller.

    A token may be cancelled before or during a call; both are observed the same way.
    Listeners run synchronously, once, at the moment of cancellation.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: Any = None
        self._listeners: List[Callable[[], None]] = []
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: Any = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        if self._event is not None:
            self._event.set()
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener()

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Register ``listener``; it runs immediately if the token already fired."""
        if self._cancelled:
            listener()
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        with suppress(ValueError):
            self._listeners.remove(listener)

    async def wait(self) -> None:
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()


class CancellationController:
    """Merges a per-call deadline and an optional caller token into one signal.

    Built together with the request context, armed when the call starts and
    disarmed when it finishes. The first trigger wins and is kept in ``reason``.
    """

    def __init__(self, timeout: Optional[float] = None, token: Optional[CancellationToken] = None):
        self.timeout = timeout
        self.token = token
        self._signal = CancellationToken()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._armed = False

    @property
    def aborted(self) -> bool:
        return self._signal.cancelled

    @property
    def reason(self) -> Optional[AbortReason]:
        return self._signal.reason

    @property
    def timed_out(self) -> bool:
        """True when the internal deadline fired before the caller's token."""
        return self.reason is AbortReason.TIMEOUT

    def abort(self, reason: AbortReason = AbortReason.CANCELLED) -> None:
        self._signal.cancel(reason)

    def _on_token_cancelled(self) -> None:
        self.abort(AbortReason.CANCELLED)

    def arm(self) -> None:
        if self._armed:
            return
        self._armed = True
        if self.token is not None:
            self.token.add_listener(self._on_token_cancelled)
        if self.timeout is not None and not self.aborted:
            self._timer = asyncio.get_running_loop().call_later(self.timeout, self.abort, AbortReason.TIMEOUT)

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.token is not None:
            self.token.remove_listener(self._on_token_cancelled)

    def __enter__(self) -> 'CancellationController':
        self.arm()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disarm()

    async def run(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless the signal fires first, in which case it is cancelled."""
        if self.aborted:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestAborted(self.reason.value)

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._signal.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RequestAborted(self.reason.value)
