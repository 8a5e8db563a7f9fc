"""Cancellable debounce and throttle timers on the running event loop.

Each timer is an asyncio.Task owned by the Debouncer/Throttler that
created it. cancel() (or leaving the `async with` block) cancels any
pending timer, so no callback fires after the owner is torn down.
Callbacks may be plain functions or coroutine functions.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Callable, Optional


async def _call(callback: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
    result = callback(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class Debouncer:
    """Run callback only after `delay` seconds pass without a new trigger.

    Intermediate triggers are dropped; the last arguments win.
    """

    def __init__(self, delay: float, callback: Callable[..., Any]) -> None:
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self.delay = delay
        self._callback = callback
        self._timer: Optional[asyncio.Task] = None
        self._args: tuple = ()
        self._kwargs: dict = {}

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        """(Re)start the timer with new arguments. Needs a running loop."""
        self._cancel_timer()
        self._args = args
        self._kwargs = kwargs
        self._timer = asyncio.get_running_loop().create_task(self._wait_then_fire())

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        self._cancel_timer()

    async def flush(self) -> Any:
        """Run the pending call now instead of waiting. No-op if idle."""
        if not self.pending:
            return None
        self._cancel_timer()
        return await _call(self._callback, self._args, self._kwargs)

    async def _wait_then_fire(self) -> None:
        await asyncio.sleep(self.delay)
        # Detach before firing so a trigger() from inside the callback
        # does not cancel the callback itself.
        self._timer = None
        await _call(self._callback, self._args, self._kwargs)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def __aenter__(self) -> Debouncer:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.cancel()


class Throttler:
    """Run callback at most once per `interval` seconds.

    The first trigger in a quiet period fires immediately. Triggers
    inside the interval collapse into one trailing call, fired when the
    interval ends, with the latest arguments.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[..., Any],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval < 0:
            raise ValueError(f"interval must be >= 0, got {interval}")
        self.interval = interval
        self._callback = callback
        self._clock = clock
        self._last_fired: Optional[float] = None
        self._trailing: Optional[asyncio.Task] = None
        self._running: set[asyncio.Task] = set()
        self._args: tuple = ()
        self._kwargs: dict = {}

    @property
    def pending(self) -> bool:
        return self._trailing is not None and not self._trailing.done()

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        self._args = args
        self._kwargs = kwargs
        now = self._clock()
        elapsed = None if self._last_fired is None else now - self._last_fired

        if elapsed is None or elapsed >= self.interval:
            self._cancel_trailing()
            self._fire(now)
            return

        if not self.pending:
            remaining = self.interval - elapsed
            self._trailing = asyncio.get_running_loop().create_task(
                self._wait_then_fire(remaining),
            )

    def cancel(self) -> None:
        self._cancel_trailing()
        for task in list(self._running):
            task.cancel()
        self._running.clear()

    def _fire(self, now: float) -> None:
        self._last_fired = now
        result = self._callback(*self._args, **self._kwargs)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def _wait_then_fire(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._trailing = None
        self._last_fired = self._clock()
        await _call(self._callback, self._args, self._kwargs)

    def _cancel_trailing(self) -> None:
        if self._trailing is not None and not self._trailing.done():
            self._trailing.cancel()
        self._trailing = None

    async def __aenter__(self) -> Throttler:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.cancel()
