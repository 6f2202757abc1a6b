"""
PlayerRegistry — the aggregation authority for MPRIS players.

Owns one ``PlayerProxy`` and one ``PositionClock`` per tracked bus name,
decides which player is current, and dispatches playback commands.

Usage:

    bus = dbus.SessionBus(mainloop=DBusGMainLoop())
    registry = PlayerRegistry(bus)
    registry.init(RegistryCallbacks(added=..., changed=...))
    ...
    registry.destroy()

Everything runs on the main loop thread.  Commands complete through an
optional ``on_done(ok, error)`` callback.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

import dbus

from mprishub.clock import PositionClock
from mprishub.codec import (
    LOOP_STATUSES,
    PlayerInfo,
    base_app_name,
    decode_loop_status,
    decode_player_info,
    decode_shuffle,
    short_name,
)
from mprishub.config import ClockConfig
from mprishub.errors import (
    MprisError,
    PlayerCallError,
    PlayerConstructionError,
    PlayerNotFoundError,
)
from mprishub.events import EventEmitter, RegistryCallbacks, RegistryEvent
from mprishub.proxy import PLAYER_IFACE, PlayerProxy
from mprishub.selection import SelectionPolicy
from mprishub.watcher import BusWatcher

log = logging.getLogger(__name__)

DoneCallback = Callable[[bool, MprisError | None], None]

_LABEL_TITLE_MAX = 25


@dataclass
class PlayerHandle:
    """Identity of one MPRIS endpoint."""

    bus_name: str
    identity: str
    desktop_entry: str | None = None

    @property
    def base_app_name(self) -> str:
        return base_app_name(self.bus_name)


@dataclass
class _Entry:
    handle: PlayerHandle
    proxy: PlayerProxy
    clock: PositionClock
    info: PlayerInfo | None = None


class PlayerRegistry:
    def __init__(
        self,
        bus: dbus.Bus,
        clock_config: ClockConfig | None = None,
        now: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bus = bus
        self._clock_config = clock_config or ClockConfig()
        self._now = now
        self._entries: dict[str, _Entry] = {}
        self._pending: dict[str, PlayerProxy] = {}
        self._initial: set[str] | None = None
        self._scanning = False
        self._on_ready: Callable[[], None] | None = None
        self._destroyed = False
        self._initialized = False

        self.events = EventEmitter()
        self._selection = SelectionPolicy(
            self.get_players,
            self.get_player_info,
            on_current_changed=self._on_current_changed,
        )
        self._watcher = BusWatcher(bus, self._add_player, self._remove_player)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def init(
        self,
        callbacks: RegistryCallbacks | None = None,
        on_ready: Callable[[], None] | None = None,
    ) -> None:
        """
        Install *callbacks* and scan the bus for players.

        *on_ready* fires once every player found by the initial scan has
        either been added or failed to connect.  Raises ``MprisError`` if
        called twice or after ``destroy()``.
        """
        if self._destroyed:
            raise MprisError("PlayerRegistry has been destroyed")
        if self._initialized:
            raise MprisError("PlayerRegistry is already initialized")
        self._initialized = True
        if callbacks is not None:
            for event, handler in callbacks.items():
                self.events.connect(event, handler)

        self._initial = set()
        self._on_ready = on_ready
        self._scanning = True
        try:
            self._watcher.start()
        finally:
            self._scanning = False
        self._initial_scan_done()

    def _initial_scan_done(self, settled: str | None = None) -> None:
        if self._initial is None:
            return
        if settled is not None:
            self._initial.discard(settled)
        if self._initial or self._scanning:
            return
        self._initial = None
        on_ready, self._on_ready = self._on_ready, None
        log.info("Initial scan complete: %d player(s)", len(self._entries))
        if on_ready:
            on_ready()

    def destroy(self) -> None:
        """Release every proxy and observer.  Safe to call repeatedly or from a callback."""
        if self._destroyed:
            return
        self._destroyed = True
        self.events.disconnect_all()
        self._on_ready = None
        self._initial = None

        try:
            self._watcher.stop()
        except Exception as e:
            log.warning("Failed to stop bus watcher: %s", e)

        for name in list(self._pending):
            proxy = self._pending.pop(name, None)
            if proxy is not None:
                self._destroy_proxy(proxy)
        for name in list(self._entries):
            entry = self._entries.pop(name, None)
            if entry is not None:
                self._destroy_proxy(entry.proxy)
        self._selection.clear()
        log.debug("Registry destroyed")

    @staticmethod
    def _destroy_proxy(proxy: PlayerProxy) -> None:
        try:
            proxy.destroy()
        except Exception as e:
            log.warning("Failed to release proxy for %s: %s", proxy.bus_name, e)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    # ── Player lifecycle ─────────────────────────────────────────────────────

    def _add_player(self, name: str) -> None:
        if self._destroyed or name in self._entries or name in self._pending:
            return
        proxy = PlayerProxy(self._bus, name)
        self._pending[name] = proxy
        if self._initial is not None:
            self._initial.add(name)
        proxy.start(self._on_proxy_ready, self._on_proxy_error)

    def _on_proxy_ready(self, proxy: PlayerProxy) -> None:
        name = proxy.bus_name
        if self._destroyed or self._pending.get(name) is not proxy:
            log.debug("Dropping proxy for %s: no longer wanted", name)
            self._destroy_proxy(proxy)
            return
        del self._pending[name]

        entry = _Entry(
            handle=PlayerHandle(name, proxy.identity, proxy.desktop_entry),
            proxy=proxy,
            clock=PositionClock(self._clock_config, now=self._now),
        )
        entry.info = decode_player_info(proxy.properties)
        if entry.info is not None:
            entry.clock.update(entry.info)
        self._entries[name] = entry
        proxy.on_changed = lambda keys: self._on_player_changed(name, keys)
        proxy.on_seeked = lambda position: self._on_player_seeked(name, position)

        log.info("Player added: %s (%s)", name, entry.handle.identity)
        self._emit(RegistryEvent.ADDED, name)
        self._selection.on_added(name)
        self._initial_scan_done(name)

    def _on_proxy_error(self, error: PlayerConstructionError) -> None:
        name = error.bus_name
        if self._pending.get(name) is None:
            return
        del self._pending[name]
        log.warning("Failed to add player %s: %s", name, error)
        self._initial_scan_done(name)

    def _remove_player(self, name: str) -> None:
        proxy = self._pending.pop(name, None)
        if proxy is not None:
            log.debug("Player %s vanished while connecting", name)
            self._destroy_proxy(proxy)
            self._initial_scan_done(name)
        entry = self._entries.pop(name, None)
        if entry is None:
            return
        self._destroy_proxy(entry.proxy)
        log.info("Player removed: %s", name)
        self._emit(RegistryEvent.REMOVED, name)
        self._selection.on_removed(name)

    def _on_player_changed(self, name: str, keys: frozenset[str]) -> None:
        entry = self._entries.get(name)
        if entry is None or self._destroyed:
            return
        previous = entry.info
        entry.info = decode_player_info(entry.proxy.properties)
        if entry.info is not None:
            entry.clock.update(entry.info)
        else:
            entry.clock.reset()

        # Position is not signalled while playing; re-read it when the
        # playback state or track changes so the clock has a fresh report.
        if "Position" not in keys and ("PlaybackStatus" in keys or "Metadata" in keys):
            if entry.info is not None and (previous is None or _state_changed(previous, entry.info)):
                entry.proxy.refresh_property("Position")

        self._emit(RegistryEvent.CHANGED, name)
        self._selection.on_changed(name)

    def _on_player_seeked(self, name: str, position: int) -> None:
        entry = self._entries.get(name)
        if entry is None or self._destroyed:
            return
        entry.clock.on_seeked(position)
        self._emit(RegistryEvent.SEEKED, name, position)

    def _on_current_changed(self, name: str | None) -> None:
        self._emit(RegistryEvent.CURRENT_CHANGED, name)

    def _emit(self, event: RegistryEvent, *args) -> None:
        if not self._destroyed:
            self.events.emit(event, *args)

    # ── Queries ──────────────────────────────────────────────────────────────

    def get_players(self) -> list[str]:
        return list(self._entries)

    def get_player_info(self, name: str | None) -> PlayerInfo | None:
        if not isinstance(name, str):
            return None
        entry = self._entries.get(name)
        return entry.info if entry else None

    def get_handle(self, name: str) -> PlayerHandle | None:
        entry = self._entries.get(name)
        return entry.handle if entry else None

    def get_player_identity(self, name: str) -> str:
        entry = self._entries.get(name)
        return entry.handle.identity if entry else short_name(name)

    def get_desktop_entry(self, name: str) -> str | None:
        entry = self._entries.get(name)
        return entry.handle.desktop_entry if entry else None

    def get_grouped_players(self) -> dict[str, list[str]]:
        """Group tracked players by bus name minus any instance suffix."""
        groups: dict[str, list[str]] = {}
        for name, entry in self._entries.items():
            groups.setdefault(entry.handle.base_app_name, []).append(name)
        return groups

    def get_player_display_label(self, name: str) -> str:
        """Identity, plus the track title when the app has several instances."""
        identity = self.get_player_identity(name)
        base = base_app_name(name)
        siblings = [n for n in self._entries if base_app_name(n) == base]
        if len(siblings) <= 1:
            return identity
        info = self.get_player_info(name)
        if info is None or not info.title:
            return identity
        title = info.title
        if len(title) > _LABEL_TITLE_MAX:
            title = title[:_LABEL_TITLE_MAX] + "..."
        return f"{identity}: {title}"

    @property
    def current_player(self) -> str | None:
        return self._selection.current

    def set_current_player(self, name: str) -> bool:
        return self._selection.select(name)

    # ── Position ─────────────────────────────────────────────────────────────

    def position_at(self, name: str, t: float | None = None) -> int:
        """Interpolated position of *name* in microseconds (0 if untracked)."""
        entry = self._entries.get(name)
        return entry.clock.position_at(t) if entry else 0

    def begin_seek_drag(self, name: str) -> None:
        entry = self._entries.get(name)
        if entry:
            entry.clock.begin_drag()

    def cancel_seek_drag(self, name: str) -> None:
        entry = self._entries.get(name)
        if entry:
            entry.clock.cancel_drag()

    # ── Commands ─────────────────────────────────────────────────────────────

    def _command(self, name: str, on_done: DoneCallback | None) -> _Entry | None:
        entry = self._entries.get(name)
        if entry is None:
            error = PlayerNotFoundError(name)
            log.warning("%s", error)
            if on_done:
                on_done(False, error)
        return entry

    @staticmethod
    def _unavailable(name: str, prop: str, on_done: DoneCallback | None) -> None:
        error = PlayerCallError(f"Set {prop}", name, f"{prop} is not exposed by the player")
        log.warning("%s", error)
        if on_done:
            on_done(False, error)

    @staticmethod
    def _handlers(on_done: DoneCallback | None) -> dict:
        def _ok() -> None:
            if on_done:
                on_done(True, None)

        def _failed(error: MprisError) -> None:
            if on_done:
                on_done(False, error)

        return {"reply_handler": _ok, "error_handler": _failed}

    def call_method(self, name: str, method: str, *args, on_done: DoneCallback | None = None) -> None:
        entry = self._command(name, on_done)
        if entry is not None:
            entry.proxy.call_method(method, *args, **self._handlers(on_done))

    def play_pause(self, name: str, on_done: DoneCallback | None = None) -> None:
        self.call_method(name, "PlayPause", on_done=on_done)

    def next(self, name: str, on_done: DoneCallback | None = None) -> None:
        self.call_method(name, "Next", on_done=on_done)

    def previous(self, name: str, on_done: DoneCallback | None = None) -> None:
        self.call_method(name, "Previous", on_done=on_done)

    def set_position(
        self,
        name: str,
        track_id: str,
        seconds: float,
        on_done: DoneCallback | None = None,
    ) -> None:
        """Seek to *seconds*; the clock moves immediately, before the player confirms."""
        entry = self._command(name, on_done)
        if entry is None:
            return
        position = max(0, math.floor(seconds * 1_000_000))
        try:
            track_path = dbus.ObjectPath(track_id)
        except (TypeError, ValueError) as e:
            error = PlayerCallError("SetPosition", name, e)
            log.warning("%s", error)
            if on_done:
                on_done(False, error)
            return
        entry.clock.seek(position)
        entry.proxy.call_method(
            "SetPosition",
            track_path,
            dbus.Int64(position),
            **self._handlers(on_done),
        )

    def toggle_shuffle(self, name: str, on_done: DoneCallback | None = None) -> None:
        """Flip Shuffle.  Reads the cached value first, so two quick calls can race."""
        entry = self._command(name, on_done)
        if entry is None:
            return
        shuffle = decode_shuffle(entry.proxy.properties)
        if shuffle is None:
            self._unavailable(name, "Shuffle", on_done)
            return
        entry.proxy.set_property(PLAYER_IFACE, "Shuffle", not shuffle, **self._handlers(on_done))

    def cycle_loop_status(self, name: str, on_done: DoneCallback | None = None) -> None:
        """Advance LoopStatus None → Track → Playlist → None (read-then-write, not atomic)."""
        entry = self._command(name, on_done)
        if entry is None:
            return
        current = decode_loop_status(entry.proxy.properties)
        if current is None:
            self._unavailable(name, "LoopStatus", on_done)
            return
        following = LOOP_STATUSES[(LOOP_STATUSES.index(current) + 1) % len(LOOP_STATUSES)]
        entry.proxy.set_property(PLAYER_IFACE, "LoopStatus", following, **self._handlers(on_done))


def _state_changed(old: PlayerInfo, new: PlayerInfo) -> bool:
    return (
        old.status != new.status
        or old.track_id != new.track_id
        or old.title != new.title
    )
