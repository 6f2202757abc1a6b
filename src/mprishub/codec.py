"""Decode raw MPRIS2 property values into typed snapshots."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

log = logging.getLogger(__name__)

MPRIS_PREFIX = "org.mpris.MediaPlayer2."

PLAYING = "Playing"
PAUSED = "Paused"
STOPPED = "Stopped"
PLAYBACK_STATUSES = (PLAYING, PAUSED, STOPPED)

LOOP_NONE = "None"
LOOP_TRACK = "Track"
LOOP_PLAYLIST = "Playlist"
LOOP_STATUSES = (LOOP_NONE, LOOP_TRACK, LOOP_PLAYLIST)

# Properties of the Player interface that affect a snapshot
RELEVANT_PROPERTIES = frozenset(
    {"Metadata", "PlaybackStatus", "Shuffle", "LoopStatus", "Position"}
)

_INSTANCE_SUFFIX = re.compile(r"\.instance_\d+_\d+$")

T = TypeVar("T")


@dataclass(frozen=True)
class PlayerInfo:
    """Snapshot of one player's state at a point in time."""

    title: str | None
    artists: tuple[str, ...] | None
    album: str | None
    art_url: str | None
    track_id: str
    status: str
    position: int  # microseconds
    length: int  # microseconds, 0 if unknown
    shuffle: bool
    loop_status: str
    track_number: int | None = None
    disc_number: int | None = None
    genres: tuple[str, ...] | None = None
    content_created: str | None = None

    @property
    def is_playing(self) -> bool:
        return self.status == PLAYING

    @property
    def position_s(self) -> float:
        return self.position / 1_000_000

    @property
    def length_s(self) -> float:
        return self.length / 1_000_000

    @property
    def artist(self) -> str:
        return ", ".join(self.artists) if self.artists else ""


# ── Name helpers ─────────────────────────────────────────────────────────────

def short_name(bus_name: str) -> str:
    """Strip the MPRIS prefix, e.g. ``org.mpris.MediaPlayer2.vlc`` -> ``vlc``."""
    return bus_name.removeprefix(MPRIS_PREFIX)


def base_app_name(bus_name: str) -> str:
    """Remove an ``.instance_<pid>_<serial>`` suffix used by multi-window apps."""
    return _INSTANCE_SUFFIX.sub("", bus_name)


# ── Typed extraction ─────────────────────────────────────────────────────────
#
# dbus-python hands out subclasses of the builtin types (dbus.String is a
# str, dbus.Int64 an int, dbus.Array a list), so plain isinstance checks
# cover both real bus values and plain Python test data.

def _get_string(value: Any) -> str | None:
    if isinstance(value, str):
        return str(value) or None
    return None


def _get_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return int(value)


def _get_bool(value: Any) -> bool | None:
    if isinstance(value, (bool, int)):
        return bool(value)
    return None


def _get_strings(value: Any) -> tuple[str, ...] | None:
    if isinstance(value, str):
        return (str(value),)
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value if isinstance(v, str))
    return None


def _get_status(props: Mapping[str, Any]) -> str | None:
    # Absent means the player never set it; anything present must be valid
    if "PlaybackStatus" not in props:
        return STOPPED
    value = props["PlaybackStatus"]
    return str(value) if isinstance(value, str) else None


def _field(name: str, extract: Callable[[], T | None], default: T | None = None) -> T | None:
    try:
        result = extract()
    except Exception as e:
        log.debug("Could not decode %s: %s", name, e)
        return default
    return default if result is None else result


# ── Decoder ──────────────────────────────────────────────────────────────────

def decode_shuffle(props: Mapping[str, Any]) -> bool | None:
    """``Shuffle`` from the cached properties, ``None`` if absent or malformed."""
    return _field("Shuffle", lambda: _get_bool(props.get("Shuffle")))


def decode_loop_status(props: Mapping[str, Any]) -> str | None:
    """``LoopStatus`` as reported, ``None`` if absent; unknown values read as ``"None"``."""
    value = _field("LoopStatus", lambda: _get_string(props.get("LoopStatus")))
    if value is None:
        return None
    return value if value in LOOP_STATUSES else LOOP_NONE


def decode_player_info(props: Mapping[str, Any]) -> PlayerInfo | None:
    """
    Build a ``PlayerInfo`` from the Player interface's property values.

    Returns ``None`` when the player has no metadata yet or reports a
    playback status outside Playing/Paused/Stopped.  Every other field is
    decoded on its own and falls back to a default when malformed.
    """
    status = _field("PlaybackStatus", lambda: _get_status(props))
    if status not in PLAYBACK_STATUSES:
        return None

    meta = props.get("Metadata")
    if not isinstance(meta, Mapping) or not meta:
        return None

    length = _field("mpris:length", lambda: _get_int(meta.get("mpris:length")), 0)
    position = _field("Position", lambda: _get_int(props.get("Position")), 0)

    return PlayerInfo(
        title=_field("xesam:title", lambda: _get_string(meta.get("xesam:title"))),
        artists=_field("xesam:artist", lambda: _get_strings(meta.get("xesam:artist"))),
        album=_field("xesam:album", lambda: _get_string(meta.get("xesam:album"))),
        art_url=_field("mpris:artUrl", lambda: _get_string(meta.get("mpris:artUrl"))),
        track_id=_field("mpris:trackid", lambda: _get_string(meta.get("mpris:trackid")), "/"),
        status=status,
        position=max(0, position),
        length=max(0, length),
        shuffle=bool(decode_shuffle(props)),
        loop_status=decode_loop_status(props) or LOOP_NONE,
        track_number=_field("xesam:trackNumber", lambda: _get_int(meta.get("xesam:trackNumber"))),
        disc_number=_field("xesam:discNumber", lambda: _get_int(meta.get("xesam:discNumber"))),
        genres=_field("xesam:genre", lambda: _get_strings(meta.get("xesam:genre"))),
        content_created=_field(
            "xesam:contentCreated", lambda: _get_string(meta.get("xesam:contentCreated"))
        ),
    )
