from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeHandle:
    def __init__(self, when: datetime, delay: float, callback, args):
        self.when = when
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.done = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Just enough of an event loop for call_later, driven by a FakeClock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.handles = []

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.clock.now + timedelta(seconds=delay), delay, callback, args)
        self.handles.append(handle)
        return handle

    def live_handles(self):
        return [h for h in self.handles if not h.cancelled and not h.done]

    def advance(self, delta: timedelta) -> None:
        target = self.clock.now + delta
        while True:
            due = sorted((h for h in self.live_handles() if h.when <= target), key=lambda h: h.when)
            if not due:
                break
            handle = due[0]
            self.clock.now = max(self.clock.now, handle.when)
            handle.done = True
            handle.callback(*handle.args)
        self.clock.now = target

    def advance_to(self, when: datetime) -> None:
        self.advance(when - self.clock.now)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def loop(clock) -> FakeLoop:
    return FakeLoop(clock)
