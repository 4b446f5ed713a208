"""Countdown for a running attempt.

Remaining time is always derived from the attempt's persisted start time
and the wall clock, never from an in-memory counter, so a timer can be
rebuilt at any point (for example after the student reloads the page).
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, matching stored timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def elapsed_seconds(start_time: datetime, now: datetime) -> int:
    return max(0, int((now - start_time).total_seconds()))


def remaining_seconds(
    start_time: datetime, time_limit_minutes: int, now: datetime
) -> int:
    """Seconds left before the time limit, never below zero."""
    return max(0, time_limit_minutes * 60 - elapsed_seconds(start_time, now))


class AttemptTimer:
    """Fires ``on_expire`` exactly once when the time limit is reached.

    ``tick()`` can be called from request handlers on demand, and
    ``start()`` runs it on a recurring schedule in the event loop.
    ``on_expire`` may be a plain function or a coroutine function.
    """

    def __init__(
        self,
        start_time: datetime,
        time_limit_minutes: int,
        on_expire: Callable[[], Optional[Awaitable[None]]],
        clock: Callable[[], datetime] = utcnow,
        interval: float = 1.0,
    ):
        self.start_time = start_time
        self.time_limit_minutes = time_limit_minutes
        self.on_expire = on_expire
        self.clock = clock
        self.interval = interval
        self.fired = False
        self._task: asyncio.Task | None = None

    def remaining(self, now: datetime | None = None) -> int:
        return remaining_seconds(
            self.start_time, self.time_limit_minutes, now or self.clock()
        )

    def elapsed(self, now: datetime | None = None) -> int:
        return elapsed_seconds(self.start_time, now or self.clock())

    @property
    def expired(self) -> bool:
        return self.remaining() == 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self, now: datetime | None = None) -> bool:
        """Check the clock and fire the callback if time is up.

        Returns ``True`` only on the tick that fired.  If the callback
        raises, the timer is re-armed so a later tick tries again.
        """
        if self.fired or self.remaining(now) > 0:
            return False
        self.fired = True
        logger.debug("Timer for attempt started at %s expired", self.start_time)
        try:
            result = self.on_expire()
            if inspect.isawaitable(result):
                await result
        except Exception:
            self.fired = False
            raise
        return True

    def start(self) -> None:
        """Begin ticking every ``interval`` seconds in the running loop."""
        if self.running or self.fired:
            return
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        while not self.fired:
            try:
                await self.tick()
            except Exception:
                logger.exception(
                    "Timer expiry callback failed; retrying in %ss", self.interval
                )
            if self.fired:
                return
            await asyncio.sleep(self.interval)
