"""Tests for the per-player proxy."""

import dbus
import pytest

from fakes import ROOT_ONLY_XML, FakeBus
from mprishub.errors import PlayerCallError, PlayerConstructionError
from mprishub.proxy import PROPS_IFACE, PlayerProxy

VLC = "org.mpris.MediaPlayer2.vlc"


class Outcome:
    def __init__(self) -> None:
        self.ready: list[PlayerProxy] = []
        self.errors: list[PlayerConstructionError] = []

    def start(self, proxy: PlayerProxy) -> PlayerProxy:
        proxy.start(self.ready.append, self.errors.append)
        return proxy


@pytest.fixture
def outcome() -> Outcome:
    return Outcome()


def _started(bus: FakeBus, outcome: Outcome, name: str = VLC) -> PlayerProxy:
    return outcome.start(PlayerProxy(bus, name))


class TestConstruction:
    def test_loads_properties_and_identity(self, bus, outcome):
        bus.add_player(VLC, announce=False, title="Song A")
        proxy = _started(bus, outcome)
        assert outcome.ready == [proxy]
        assert proxy.ready
        assert proxy.properties["PlaybackStatus"] == "Playing"
        assert proxy.properties["Metadata"]["xesam:title"] == "Song A"
        assert proxy.identity == "VLC media player"
        assert proxy.desktop_entry == "vlc"

    def test_identity_falls_back_to_short_name(self, bus, outcome):
        bus.add_player(VLC, announce=False, identity=None, desktop_entry=None)
        proxy = _started(bus, outcome)
        assert proxy.identity == "vlc"
        assert proxy.desktop_entry is None

    def test_root_interface_failure_is_tolerated(self, bus, outcome):
        player = bus.add_player(VLC, announce=False)
        original = player.get_dbus_method

        def get_dbus_method(method, dbus_interface=None):
            call = original(method, dbus_interface)

            def wrapped(*args, reply_handler, error_handler):
                if method == "GetAll" and args[0] == "org.mpris.MediaPlayer2":
                    error_handler(dbus.exceptions.DBusException("no root"))
                    return
                call(*args, reply_handler=reply_handler, error_handler=error_handler)

            return wrapped

        player.get_dbus_method = get_dbus_method
        proxy = _started(bus, outcome)
        assert outcome.ready == [proxy]
        assert proxy.identity == "vlc"

    def test_unknown_name_fails(self, bus, outcome):
        proxy = _started(bus, outcome, "org.mpris.MediaPlayer2.ghost")
        (error,) = outcome.errors
        assert error.bus_name == "org.mpris.MediaPlayer2.ghost"
        assert outcome.ready == []
        assert proxy.closed

    def test_missing_player_interface_fails(self, bus, outcome):
        bus.add_player(VLC, announce=False, xml=ROOT_ONLY_XML)
        proxy = _started(bus, outcome)
        assert len(outcome.errors) == 1
        assert "does not implement" in str(outcome.errors[0])
        assert proxy.closed
        assert bus.active_matches() == []

    def test_getall_failure_fails(self, bus, outcome):
        player = bus.add_player(VLC, announce=False)
        player.fail_methods.add("GetAll")
        _started(bus, outcome)
        assert len(outcome.errors) == 1
        assert outcome.ready == []

    def test_destroy_before_reply_silences_callbacks(self, outcome):
        bus = FakeBus(auto_reply=False)
        bus.add_player(VLC, announce=False)
        proxy = _started(bus, outcome)
        proxy.destroy()
        bus.flush()
        assert outcome.ready == []
        assert outcome.errors == []


class TestSignals:
    @pytest.fixture
    def wired(self, bus, outcome):
        player = bus.add_player(VLC, announce=False)
        proxy = _started(bus, outcome)
        changes = []
        seeks = []
        proxy.on_changed = changes.append
        proxy.on_seeked = seeks.append
        return player, proxy, changes, seeks

    def test_relevant_change_is_reported(self, wired):
        player, proxy, changes, _ = wired
        player.emit_changed(PlaybackStatus="Paused")
        assert changes == [frozenset({"PlaybackStatus"})]
        assert proxy.properties["PlaybackStatus"] == "Paused"

    def test_irrelevant_change_is_cached_but_silent(self, wired):
        player, proxy, changes, _ = wired
        player.emit_changed(Volume=0.5)
        assert changes == []
        assert proxy.properties["Volume"] == 0.5

    def test_only_relevant_keys_are_reported(self, wired):
        player, _, changes, _ = wired
        player.emit_changed(Volume=0.2, Shuffle=True)
        assert changes == [frozenset({"Shuffle"})]

    def test_invalidated_property_is_fetched(self, wired):
        player, proxy, changes, _ = wired
        player.props["Metadata"] = {"xesam:title": "Song B", "mpris:trackid": "/t/2"}
        player.emit_changed(invalidated=["Metadata"])
        assert changes == [frozenset({"Metadata"})]
        assert proxy.properties["Metadata"]["xesam:title"] == "Song B"
        assert ("org.mpris.MediaPlayer2.Player", "Metadata") in player.method_calls("Get")

    def test_other_interface_is_ignored(self, bus, wired):
        _, _, changes, _ = wired
        bus.emit(VLC, PROPS_IFACE, "PropertiesChanged", "org.mpris.MediaPlayer2", {"Identity": "x"}, [])
        assert changes == []

    def test_seeked_is_forwarded(self, wired):
        player, _, _, seeks = wired
        player.seeked(dbus.Int64(7_000_000))
        assert seeks == [7_000_000]

    def test_signals_from_other_players_are_ignored(self, bus, wired):
        _, _, changes, seeks = wired
        other = bus.add_player("org.mpris.MediaPlayer2.spotify", announce=False)
        other.emit_changed(PlaybackStatus="Paused")
        other.seeked(5)
        assert changes == []
        assert seeks == []

    def test_no_callbacks_after_destroy(self, bus, wired):
        player, proxy, changes, seeks = wired
        proxy.destroy()
        proxy.destroy()
        player.emit_changed(PlaybackStatus="Paused")
        player.seeked(5)
        assert changes == []
        assert seeks == []
        assert bus.active_matches() == []


class TestCalls:
    @pytest.fixture
    def wired(self, bus, outcome):
        player = bus.add_player(VLC, announce=False)
        return player, _started(bus, outcome)

    def test_method_call_succeeds(self, wired):
        player, proxy = wired
        done = []
        proxy.call_method("PlayPause", reply_handler=lambda: done.append(True))
        assert done == [True]
        assert player.method_calls("PlayPause") == [()]

    def test_failure_is_wrapped(self, wired):
        player, proxy = wired
        player.fail_methods.add("Next")
        errors = []
        proxy.call_method("Next", error_handler=errors.append)
        (error,) = errors
        assert isinstance(error, PlayerCallError)
        assert error.method == "Next"
        assert error.bus_name == VLC
        assert "Next rejected" in str(error)

    def test_call_on_closed_proxy_fails(self, wired):
        _, proxy = wired
        proxy.destroy()
        errors = []
        proxy.call_method("Play", error_handler=errors.append)
        assert len(errors) == 1

    def test_set_property_sends_variant(self, wired):
        player, proxy = wired
        proxy.set_property("org.mpris.MediaPlayer2.Player", "Shuffle", True)
        ((iface, name, value),) = player.method_calls("Set")
        assert (iface, name) == ("org.mpris.MediaPlayer2.Player", "Shuffle")
        assert isinstance(value, dbus.Boolean)
        assert value.variant_level == 1

    def test_set_property_failure_is_labelled(self, wired):
        player, proxy = wired
        player.fail_methods.add("Set")
        errors = []
        proxy.set_property("org.mpris.MediaPlayer2.Player", "LoopStatus", "Track", error_handler=errors.append)
        assert errors[0].method == "Set LoopStatus"
