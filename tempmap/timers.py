import asyncio
import enum
import numbers
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union

from loguru import logger

from .exceptions import EventLoopRequiredError


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Host scheduling primitive used by expiring entries.

    Notes
    -----
    - `now()` is a monotonic instant in milliseconds.
    - `schedule(delay_ms, action)` runs `action` once after `delay_ms` and
      returns a handle whose `cancel()` prevents it from running.
    """

    def now(self) -> float: ...

    def schedule(self, delay_ms: float, action: Callable[[], None]) -> Cancellable: ...


class LoopScheduler:
    """Scheduler backed by an asyncio event loop.

    Parameters
    ----------
    loop : Optional[asyncio.AbstractEventLoop]
        Loop used for `call_later`. When omitted, the running loop is looked
        up on the first call to `schedule` and kept until it is closed.

    Notes
    -----
    - Times come from `loop.time()`, which is `time.monotonic()` for the
      default loop implementations, so `now()` is usable before a loop is bound.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    def now(self) -> float:
        if self._loop is not None:
            return self._loop.time() * 1000
        return time.monotonic() * 1000

    def schedule(self, delay_ms: float, action: Callable[[], None]) -> asyncio.TimerHandle:
        """Run `action` on the event loop after `delay_ms` milliseconds.

        Raises
        ------
        EventLoopRequiredError
            If no usable loop is bound and none is running.

        Notes
        -----
        - A bound loop that has been closed is replaced by the running loop,
          so a map can outlive one `asyncio.run` call.
        """

        if self._loop is None or self._loop.is_closed():
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                raise EventLoopRequiredError() from None
        return self._loop.call_later(delay_ms / 1000, action)


class ExpiryTimer:
    """A single scheduled expiration owned by one entry.

    Parameters
    ----------
    scheduler : Scheduler
        Where the callback is scheduled.
    timeout : float
        Configured duration in milliseconds, must be positive.
    action : Callable[[], None]
        Callback run when the timer fires.

    Attributes
    ----------
    timeout : float
        The configured duration; never changed by `refresh`.
    timestamp : float
        Scheduler instant (ms) of the last arm or refresh.
    """

    __slots__ = ("timeout", "timestamp", "_scheduler", "_action", "_handle")

    def __init__(self, scheduler: Scheduler, timeout: float, action: Callable[[], None]):
        self.timeout = timeout
        self._scheduler = scheduler
        self._action = action
        self._handle: Optional[Cancellable] = None
        self.timestamp = scheduler.now()
        self._handle = scheduler.schedule(timeout, action)

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def refresh(self) -> None:
        """Restart the countdown for the same `timeout` from now."""

        now = self._scheduler.now()
        handle = self._scheduler.schedule(self.timeout, self._action)
        self.cancel()
        self.timestamp = now
        self._handle = handle

    def remaining(self, requested: bool = True) -> Optional[float]:
        """Return the time left before expiration.

        Parameters
        ----------
        requested : bool
            When false, the configured `timeout` is returned unchanged.

        Returns
        -------
        Optional[float]
            Remaining milliseconds, or `None` once the timer is due.
        """

        if not requested:
            return self.timeout
        left = self.timeout - (self._scheduler.now() - self.timestamp)
        return left if left > 0 else None

    @property
    def due(self) -> bool:
        return self.remaining(True) is None

    def __repr__(self) -> str:
        return f"ExpiryTimer(timeout={self.timeout!r}, remaining={self.remaining(True)!r})"


class _Marker(enum.Enum):
    REFRESH = "REFRESH"

    def __repr__(self) -> str:
        return self.value


# Default for every `timeout` parameter: refresh an existing timer.
REFRESH = _Marker.REFRESH


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class Keep:
    pass


@dataclass(frozen=True)
class SetDuration:
    duration: float


TimeoutInstruction = Union[Refresh, Keep, SetDuration]


def timeout_instruction(timeout) -> TimeoutInstruction:
    """Translate a public `timeout` argument into an explicit instruction.

    Parameters
    ----------
    timeout : REFRESH | None | number | TimeoutInstruction
        `REFRESH` (omitted) refreshes, `None` keeps the current timer and a
        number replaces it (zero or negative removes it).

    Raises
    ------
    TypeError
        For any other type, including `bool`.
    """

    if timeout is REFRESH:
        return Refresh()
    if timeout is None:
        return Keep()
    if isinstance(timeout, (Refresh, Keep, SetDuration)):
        return timeout
    if isinstance(timeout, bool) or not isinstance(timeout, numbers.Real):
        raise TypeError(f"timeout must be a number, None or REFRESH, not {type(timeout).__name__}")
    return SetDuration(timeout)


def transplant_timeout(timer: Optional[ExpiryTimer], refresh_timeout: bool) -> Optional[float]:
    """Duration to give a copy of an entry carrying `timer`.

    Returns
    -------
    Optional[float]
        `0` for an entry without a timer (permanent copy), the full `timeout`
        when refreshing, the remaining time otherwise, or `None` when the
        entry is already due and must not be copied.
    """

    if timer is None:
        return 0
    left = timer.remaining(True)
    if left is None:
        logger.debug("Skipping copy of a due entry (timeout={}ms)", timer.timeout)
        return None
    return timer.timeout if refresh_timeout else left
