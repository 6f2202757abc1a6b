"""Typed event emitter used by the registry to notify its consumers."""

from __future__ import annotations

import enum
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

log = logging.getLogger(__name__)


class RegistryEvent(enum.Enum):
    ADDED = "added"  # (name)
    REMOVED = "removed"  # (name)
    CHANGED = "changed"  # (name)
    SEEKED = "seeked"  # (name, position_us)
    CURRENT_CHANGED = "current-changed"  # (name | None)


@dataclass
class RegistryCallbacks:
    """Observer set installed by ``PlayerRegistry.init``."""

    added: Callable[[str], None] | None = None
    removed: Callable[[str], None] | None = None
    changed: Callable[[str], None] | None = None
    seeked: Callable[[str, int], None] | None = None
    current_changed: Callable[[str | None], None] | None = None

    def items(self) -> list[tuple[RegistryEvent, Callable[..., None]]]:
        pairs = [
            (RegistryEvent.ADDED, self.added),
            (RegistryEvent.REMOVED, self.removed),
            (RegistryEvent.CHANGED, self.changed),
            (RegistryEvent.SEEKED, self.seeked),
            (RegistryEvent.CURRENT_CHANGED, self.current_changed),
        ]
        return [(event, cb) for event, cb in pairs if cb is not None]


class EventEmitter:
    """
    Synchronous event dispatch with explicit handler ids.

    Handlers run in connection order.  Emission works on a snapshot of the
    handler table, so a handler may connect or disconnect (including
    ``disconnect_all``) while an event is being delivered; a handler removed
    mid-emission is not called afterwards.
    """

    def __init__(self) -> None:
        self._handlers: dict[int, tuple[RegistryEvent, Callable[..., None]]] = {}
        self._ids = itertools.count(1)

    def connect(self, event: RegistryEvent, handler: Callable[..., None]) -> int:
        handler_id = next(self._ids)
        self._handlers[handler_id] = (event, handler)
        return handler_id

    def disconnect(self, handler_id: int) -> None:
        self._handlers.pop(handler_id, None)

    def disconnect_all(self) -> None:
        self._handlers.clear()

    def handler_count(self, event: RegistryEvent | None = None) -> int:
        if event is None:
            return len(self._handlers)
        return sum(1 for ev, _ in self._handlers.values() if ev is event)

    def emit(self, event: RegistryEvent, *args: Any) -> None:
        for handler_id, (ev, handler) in list(self._handlers.items()):
            if ev is not event or handler_id not in self._handlers:
                continue
            try:
                handler(*args)
            except Exception:
                log.exception("Handler for %s raised", event.value)
