"""Shared fixtures."""

import pytest

from fakes import FakeBus, FakeClock
from mprishub.config import ClockConfig
from mprishub.registry import PlayerRegistry


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def registry(bus: FakeBus, clock: FakeClock):
    reg = PlayerRegistry(bus, ClockConfig(), now=clock)
    yield reg
    reg.destroy()


class Recorder:
    """Collects registry events in order."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def added(self, name):
        self.events.append(("added", name))

    def removed(self, name):
        self.events.append(("removed", name))

    def changed(self, name):
        self.events.append(("changed", name))

    def seeked(self, name, position):
        self.events.append(("seeked", name, position))

    def current_changed(self, name):
        self.events.append(("current", name))

    def of(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
