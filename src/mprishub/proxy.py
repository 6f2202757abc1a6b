"""Asynchronous proxy for one MPRIS2 player on the session bus."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable
from typing import Any

import dbus

from mprishub.codec import RELEVANT_PROPERTIES, short_name
from mprishub.errors import PlayerCallError, PlayerConstructionError

log = logging.getLogger(__name__)

MPRIS_PATH = "/org/mpris/MediaPlayer2"
ROOT_IFACE = "org.mpris.MediaPlayer2"
PLAYER_IFACE = "org.mpris.MediaPlayer2.Player"
PROPS_IFACE = "org.freedesktop.DBus.Properties"
INTROSPECTABLE_IFACE = "org.freedesktop.DBus.Introspectable"


def _as_variant(value: Any) -> Any:
    """Wrap a plain Python value so dbus-python sends it as a variant."""
    if isinstance(value, bool):
        return dbus.Boolean(value, variant_level=1)
    if isinstance(value, int):
        return dbus.Int64(value, variant_level=1)
    if isinstance(value, float):
        return dbus.Double(value, variant_level=1)
    if isinstance(value, str):
        return dbus.String(value, variant_level=1)
    return value


def _has_interface(xml: str, interface: str) -> bool:
    try:
        root = ET.fromstring(xml)
    except ET.ParseError:
        return False
    return any(node.get("name") == interface for node in root.iter("interface"))


class PlayerProxy:
    """
    Cached view of one player's ``org.mpris.MediaPlayer2.Player`` interface.

    Construction is asynchronous: ``start()`` introspects the object, loads
    every Player property, then the root interface's ``Identity`` and
    ``DesktopEntry``.  It ends with exactly one call to *on_ready* or
    *on_error*, unless the proxy is destroyed first.

    After ``destroy()`` no ``on_changed`` / ``on_seeked`` callback fires.
    """

    def __init__(self, bus: dbus.Bus, bus_name: str) -> None:
        self.bus_name = bus_name
        self.identity: str = short_name(bus_name)
        self.desktop_entry: str | None = None
        self.properties: dict[str, Any] = {}
        self.on_changed: Callable[[frozenset[str]], None] | None = None
        self.on_seeked: Callable[[int], None] | None = None

        self._bus = bus
        self._obj = None
        self._matches: list = []
        self._ready = False
        self._closed = False
        self._on_ready: Callable[[PlayerProxy], None] | None = None
        self._on_error: Callable[[PlayerConstructionError], None] | None = None

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Construction ─────────────────────────────────────────────────────────

    def start(
        self,
        on_ready: Callable[[PlayerProxy], None],
        on_error: Callable[[PlayerConstructionError], None],
    ) -> None:
        self._on_ready = on_ready
        self._on_error = on_error
        try:
            self._obj = self._bus.get_object(self.bus_name, MPRIS_PATH, introspect=False)
            self._subscribe()
            self._obj.get_dbus_method("Introspect", INTROSPECTABLE_IFACE)(
                reply_handler=self._on_introspected,
                error_handler=self._fail,
            )
        except dbus.exceptions.DBusException as e:
            self._fail(e)

    def _subscribe(self) -> None:
        self._matches.append(
            self._bus.add_signal_receiver(
                self._on_properties_changed,
                signal_name="PropertiesChanged",
                dbus_interface=PROPS_IFACE,
                bus_name=self.bus_name,
                path=MPRIS_PATH,
            )
        )
        self._matches.append(
            self._bus.add_signal_receiver(
                self._on_seeked_signal,
                signal_name="Seeked",
                dbus_interface=PLAYER_IFACE,
                bus_name=self.bus_name,
                path=MPRIS_PATH,
            )
        )

    def _on_introspected(self, xml) -> None:
        if self._closed:
            return
        if not _has_interface(str(xml), PLAYER_IFACE):
            self._fail(f"{MPRIS_PATH} does not implement {PLAYER_IFACE}")
            return
        self._props_method("GetAll")(
            PLAYER_IFACE,
            reply_handler=self._on_player_props,
            error_handler=self._fail,
        )

    def _on_player_props(self, props) -> None:
        if self._closed:
            return
        self.properties.update(props)
        self._props_method("GetAll")(
            ROOT_IFACE,
            reply_handler=self._on_root_props,
            error_handler=self._on_root_props_error,
        )

    def _on_root_props(self, props) -> None:
        if self._closed:
            return
        identity = props.get("Identity")
        if identity:
            self.identity = str(identity)
        desktop_entry = props.get("DesktopEntry")
        if desktop_entry:
            self.desktop_entry = str(desktop_entry)
        self._finish()

    def _on_root_props_error(self, error) -> None:
        # Identity and DesktopEntry are optional
        log.debug("No root properties for %s: %s", self.bus_name, error)
        if not self._closed:
            self._finish()

    def _finish(self) -> None:
        self._ready = True
        on_ready, self._on_ready, self._on_error = self._on_ready, None, None
        if on_ready:
            on_ready(self)

    def _fail(self, cause) -> None:
        if self._closed:
            return
        on_error, self._on_ready, self._on_error = self._on_error, None, None
        self.destroy()
        if on_error:
            on_error(PlayerConstructionError(self.bus_name, cause))

    # ── Signals ──────────────────────────────────────────────────────────────

    def _on_properties_changed(self, interface, changed, invalidated) -> None:
        if self._closed or str(interface) != PLAYER_IFACE:
            return
        self.properties.update(changed)
        keys = {str(k) for k in changed} & RELEVANT_PROPERTIES
        for prop in invalidated:
            prop = str(prop)
            if prop in RELEVANT_PROPERTIES:
                self.properties.pop(prop, None)
                self.refresh_property(prop)
        if keys and self._ready and self.on_changed:
            self.on_changed(frozenset(keys))

    def _on_seeked_signal(self, position) -> None:
        if self._closed or not self._ready:
            return
        if self.on_seeked:
            self.on_seeked(int(position))

    # ── Calls ────────────────────────────────────────────────────────────────

    def _props_method(self, method: str):
        return self._obj.get_dbus_method(method, PROPS_IFACE)

    def refresh_property(self, name: str) -> None:
        """Re-read one Player property; ``on_changed`` fires when it arrives."""
        if self._closed or self._obj is None:
            return

        def _on_reply(value) -> None:
            if self._closed:
                return
            self.properties[name] = value
            if self._ready and self.on_changed and name in RELEVANT_PROPERTIES:
                self.on_changed(frozenset({name}))

        def _on_error(error) -> None:
            log.debug("Failed to refresh %s on %s: %s", name, self.bus_name, error)

        try:
            self._props_method("Get")(
                PLAYER_IFACE, name, reply_handler=_on_reply, error_handler=_on_error
            )
        except dbus.exceptions.DBusException as e:
            _on_error(e)

    def call_method(
        self,
        method: str,
        *args: Any,
        interface: str = PLAYER_IFACE,
        label: str | None = None,
        reply_handler: Callable[[], None] | None = None,
        error_handler: Callable[[PlayerCallError], None] | None = None,
    ) -> None:
        """Call *method* asynchronously; failures reach *error_handler* as ``PlayerCallError``."""

        def _on_reply(*_result) -> None:
            if reply_handler:
                reply_handler()

        def _on_error(cause) -> None:
            error = PlayerCallError(label or method, self.bus_name, cause)
            log.warning("%s", error)
            if error_handler:
                error_handler(error)

        if self._closed or self._obj is None:
            _on_error("player proxy is closed")
            return
        try:
            self._obj.get_dbus_method(method, interface)(
                *args, reply_handler=_on_reply, error_handler=_on_error
            )
        except dbus.exceptions.DBusException as e:
            _on_error(e)

    def set_property(
        self,
        interface: str,
        name: str,
        value: Any,
        reply_handler: Callable[[], None] | None = None,
        error_handler: Callable[[PlayerCallError], None] | None = None,
    ) -> None:
        """Write a property through ``org.freedesktop.DBus.Properties.Set``."""
        self.call_method(
            "Set",
            interface,
            name,
            _as_variant(value),
            interface=PROPS_IFACE,
            label=f"Set {name}",
            reply_handler=reply_handler,
            error_handler=error_handler,
        )

    # ── Teardown ─────────────────────────────────────────────────────────────

    def destroy(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.on_changed = None
        self.on_seeked = None
        self._on_ready = None
        self._on_error = None
        matches, self._matches = self._matches, []
        for match in matches:
            try:
                match.remove()
            except Exception as e:
                log.warning("Failed to remove signal match for %s: %s", self.bus_name, e)
        self._obj = None
