"""Tests for bus name tracking."""

import dbus
import pytest

from fakes import FakeBus
from mprishub.watcher import BusWatcher


class Events:
    def __init__(self) -> None:
        self.log: list[tuple[str, str]] = []

    def added(self, name):
        self.log.append(("added", name))

    def removed(self, name):
        self.log.append(("removed", name))


@pytest.fixture
def events() -> Events:
    return Events()


@pytest.fixture
def watcher(bus: FakeBus, events: Events) -> BusWatcher:
    w = BusWatcher(bus, events.added, events.removed)
    yield w
    w.stop()


def _name_owner_changed(bus: FakeBus, name: str, old: str, new: str) -> None:
    bus.emit("org.freedesktop.DBus", "org.freedesktop.DBus", "NameOwnerChanged", name, old, new)


class TestStartup:
    def test_existing_players_are_added(self, bus, watcher, events):
        bus.add_player("org.mpris.MediaPlayer2.vlc", announce=False)
        bus.add_player("org.mpris.MediaPlayer2.spotify", announce=False)
        watcher.start()
        assert events.log == [
            ("added", "org.mpris.MediaPlayer2.vlc"),
            ("added", "org.mpris.MediaPlayer2.spotify"),
        ]
        assert watcher.tracked == ["org.mpris.MediaPlayer2.vlc", "org.mpris.MediaPlayer2.spotify"]

    def test_non_mpris_names_are_ignored(self, bus, watcher, events):
        watcher.start()
        _name_owner_changed(bus, "org.gnome.Shell", "", ":1.5")
        assert events.log == []

    def test_subscribes_after_listing(self, bus, watcher):
        watcher.start()
        (match,) = bus.active_matches()
        assert match.signal_name == "NameOwnerChanged"
        assert match.bus_name == "org.freedesktop.DBus"

    def test_list_failure_is_not_fatal(self, bus, watcher, events):
        bus.list_error = dbus.exceptions.DBusException("bus is gone")
        watcher.start()
        bus.add_player("org.mpris.MediaPlayer2.vlc")
        assert events.log == [("added", "org.mpris.MediaPlayer2.vlc")]

    def test_start_twice_subscribes_once(self, bus, watcher):
        watcher.start()
        watcher.start()
        assert len(bus.active_matches()) == 1


class TestOwnerChanges:
    def test_appear_and_vanish(self, bus, watcher, events):
        watcher.start()
        bus.add_player("org.mpris.MediaPlayer2.vlc")
        bus.remove_player("org.mpris.MediaPlayer2.vlc")
        assert events.log == [
            ("added", "org.mpris.MediaPlayer2.vlc"),
            ("removed", "org.mpris.MediaPlayer2.vlc"),
        ]
        assert watcher.tracked == []

    def test_duplicate_add_is_ignored(self, bus, watcher, events):
        bus.add_player("org.mpris.MediaPlayer2.vlc", announce=False)
        watcher.start()
        _name_owner_changed(bus, "org.mpris.MediaPlayer2.vlc", "", ":1.7")
        assert events.log == [("added", "org.mpris.MediaPlayer2.vlc")]

    def test_remove_of_unknown_name_is_ignored(self, bus, watcher, events):
        watcher.start()
        _name_owner_changed(bus, "org.mpris.MediaPlayer2.ghost", ":1.7", "")
        assert events.log == []

    def test_owner_handover_is_not_a_remove(self, bus, watcher, events):
        watcher.start()
        bus.add_player("org.mpris.MediaPlayer2.vlc")
        _name_owner_changed(bus, "org.mpris.MediaPlayer2.vlc", ":1.7", ":1.8")
        assert events.log == [("added", "org.mpris.MediaPlayer2.vlc")]


class TestStop:
    def test_stop_removes_subscription(self, bus, watcher, events):
        watcher.start()
        watcher.stop()
        assert bus.active_matches() == []
        bus.add_player("org.mpris.MediaPlayer2.vlc")
        assert events.log == []
        assert watcher.tracked == []

    def test_stop_from_added_callback_halts_scan(self, bus, events):
        bus.add_player("org.mpris.MediaPlayer2.a", announce=False)
        bus.add_player("org.mpris.MediaPlayer2.b", announce=False)
        w = BusWatcher(bus, lambda name: (events.added(name), w.stop()), events.removed)
        w.start()
        assert events.log == [("added", "org.mpris.MediaPlayer2.a")]
        assert bus.active_matches() == []
