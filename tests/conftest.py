"""
Pytest configuration and shared fixtures for tempmap tests.

Most tests run on `ManualScheduler`, a virtual clock that only fires callbacks
when the test advances time, so expirations are deterministic.
"""

import pytest

from tempmap import EventLoopRequiredError, TempMap


class _Handle:
    def __init__(self, when, action):
        self.when = when
        self.action = action
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    def __init__(self):
        self.time = 0.0
        self._queue = []

    def now(self):
        return self.time

    def schedule(self, delay_ms, action):
        handle = _Handle(self.time + delay_ms, action)
        self._queue.append(handle)
        return handle

    @property
    def pending(self):
        return sum(1 for h in self._queue if not h.cancelled)

    def advance(self, ms):
        """Move the clock forward, firing due callbacks in order."""
        target = self.time + ms
        while True:
            due = [h for h in self._queue if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._queue.remove(handle)
            self.time = handle.when
            handle.action()
        self._queue = [h for h in self._queue if not h.cancelled]
        self.time = target

    def skip(self, ms):
        """Move the clock forward without firing anything."""
        self.time += ms


class FailingScheduler(ManualScheduler):
    """Scheduler that raises while `failing` is set."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def schedule(self, delay_ms, action):
        if self.failing:
            raise EventLoopRequiredError()
        return super().schedule(delay_ms, action)


class LeakyScheduler(ManualScheduler):
    """Scheduler whose handles ignore cancellation."""

    def schedule(self, delay_ms, action):
        handle = super().schedule(delay_ms, action)
        handle.cancel = lambda: None
        return handle


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def tmap(scheduler):
    return TempMap(scheduler=scheduler)


@pytest.fixture
def make_map(scheduler):
    def _make(items=None, **kwargs):
        return TempMap(items, scheduler=scheduler, **kwargs)

    return _make


@pytest.fixture
def leaky_scheduler():
    return LeakyScheduler()


@pytest.fixture
def failing_scheduler():
    return FailingScheduler()
