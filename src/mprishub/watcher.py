"""Turn session bus name ownership changes into player add/remove events."""

from __future__ import annotations

import logging
from collections.abc import Callable

import dbus

from mprishub.codec import MPRIS_PREFIX

log = logging.getLogger(__name__)

DBUS_NAME = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
DBUS_IFACE = "org.freedesktop.DBus"


class BusWatcher:
    """
    Watch for bus names starting with *prefix*.

    ``start()`` lists the names that already exist before subscribing to
    ``NameOwnerChanged`` so players running before the watcher are seen.
    Adds of tracked names and removes of unknown names are ignored.
    """

    def __init__(
        self,
        bus: dbus.Bus,
        on_added: Callable[[str], None],
        on_removed: Callable[[str], None],
        prefix: str = MPRIS_PREFIX,
    ) -> None:
        self._bus = bus
        self._on_added = on_added
        self._on_removed = on_removed
        self._prefix = prefix
        self._names: dict[str, None] = {}
        self._match = None
        self._running = False

    @property
    def tracked(self) -> list[str]:
        return list(self._names)

    def start(self) -> None:
        if self._running:
            return
        self._running = True

        try:
            names = [str(n) for n in self._bus.list_names()]
        except dbus.exceptions.DBusException as e:
            log.error("Failed to list bus names: %s", e)
            names = []

        for name in names:
            if not self._running:
                return
            if name.startswith(self._prefix):
                self._add(name)

        if not self._running:
            return
        try:
            self._match = self._bus.add_signal_receiver(
                self._on_name_owner_changed,
                signal_name="NameOwnerChanged",
                dbus_interface=DBUS_IFACE,
                bus_name=DBUS_NAME,
                path=DBUS_PATH,
            )
        except dbus.exceptions.DBusException as e:
            log.error("Failed to subscribe to NameOwnerChanged: %s", e)

    def stop(self) -> None:
        self._running = False
        match, self._match = self._match, None
        if match is not None:
            try:
                match.remove()
            except Exception as e:
                log.warning("Failed to remove NameOwnerChanged match: %s", e)
        self._names.clear()

    def _on_name_owner_changed(self, name, old_owner, new_owner) -> None:
        if not self._running:
            return
        name = str(name)
        if not name.startswith(self._prefix):
            return
        if not old_owner and new_owner:
            self._add(name)
        elif old_owner and not new_owner:
            self._remove(name)

    def _add(self, name: str) -> None:
        if name in self._names:
            return
        self._names[name] = None
        log.debug("Bus name appeared: %s", name)
        self._on_added(name)

    def _remove(self, name: str) -> None:
        if name not in self._names:
            return
        del self._names[name]
        log.debug("Bus name vanished: %s", name)
        self._on_removed(name)
