"""Decide which tracked player is the "current" one."""

from __future__ import annotations

import logging
from collections.abc import Callable

from mprishub.codec import PlayerInfo

log = logging.getLogger(__name__)


class SelectionPolicy:
    """
    Keeps ``current`` pointing at the player a user most likely cares about.

    A player that starts playing takes over; when the current player goes
    away, another playing player is preferred, then any player at all.
    Candidates are considered in the order returned by *get_players*.
    """

    def __init__(
        self,
        get_players: Callable[[], list[str]],
        get_info: Callable[[str], PlayerInfo | None],
        on_current_changed: Callable[[str | None], None] | None = None,
    ) -> None:
        self._get_players = get_players
        self._get_info = get_info
        self._on_current_changed = on_current_changed
        self._current: str | None = None

    @property
    def current(self) -> str | None:
        return self._current

    def _is_playing(self, name: str) -> bool:
        info = self._get_info(name)
        return info is not None and info.is_playing

    def _set(self, name: str | None) -> None:
        if name == self._current:
            return
        log.debug("Current player: %s -> %s", self._current, name)
        self._current = name
        if self._on_current_changed:
            self._on_current_changed(name)

    def select(self, name: str) -> bool:
        """Make *name* current on explicit user request."""
        if name not in self._get_players():
            return False
        self._set(name)
        return True

    def on_added(self, name: str) -> None:
        if name not in self._get_players():
            return
        if self._current is None or self._is_playing(name):
            self._set(name)

    def on_removed(self, name: str) -> None:
        if name != self._current:
            return
        players = [p for p in self._get_players() if p != name]
        for candidate in players:
            if self._is_playing(candidate):
                self._set(candidate)
                return
        self._set(players[0] if players else None)

    def on_changed(self, name: str) -> None:
        if name != self._current and name in self._get_players() and self._is_playing(name):
            self._set(name)

    def clear(self) -> None:
        self._current = None
