"""Exceptions raised or reported by mprishub."""

from __future__ import annotations


class MprisError(Exception):
    """Base class for mprishub errors."""


class PlayerNotFoundError(MprisError):
    def __init__(self, bus_name: str) -> None:
        super().__init__(f"No player tracked for {bus_name}")
        self.bus_name = bus_name


class PlayerCallError(MprisError):
    """A method call or property write on a player failed."""

    def __init__(self, method: str, bus_name: str, cause: Exception | str | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Method {method} failed on {bus_name}{detail}")
        self.method = method
        self.bus_name = bus_name
        self.cause = cause


class PlayerConstructionError(MprisError):
    """The proxy for a player could not be built (e.g. the name vanished)."""

    def __init__(self, bus_name: str, cause: Exception | str | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Could not connect to {bus_name}{detail}")
        self.bus_name = bus_name
        self.cause = cause


class ConfigError(MprisError):
    pass
