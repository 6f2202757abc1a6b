"""
Interpolated playback position for one player.

MPRIS players do not signal ``Position`` as it advances; it only changes
on seeks, track changes and whatever the player decides to emit.  The
clock keeps a base position plus the monotonic time it was taken and
extrapolates from there while playing.

Transitions, driven by snapshots, seeks and ``Seeked`` signals:

  • first snapshot        → start tracking at the reported position
  • Playing → Paused      → freeze at the interpolated position
  • Paused  → Playing     → restart the timer from the frozen position
                            (the reported value is often stale on resume)
  • Playing → Playing     → resync only on real drift, rate limited
  • track change          → restart at 0 unless the report moved, then
                            take the first moved report unconditionally
  • user seek             → optimistic jump, position reports suppressed
  • ``Seeked`` signal     → authoritative, unless the user is dragging
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from mprishub.codec import PlayerInfo
from mprishub.config import ClockConfig

_US = 1_000_000


@dataclass
class ClockState:
    base_position: int  # microseconds at base_timestamp
    base_timestamp: float  # monotonic seconds
    is_playing: bool
    track_length: int  # microseconds, 0 if unknown
    last_resync: float
    last_reported_position: int
    track_key: tuple[str, str | None]
    suppress_until: float | None = None
    resume_guard_until: float | None = None
    dragging: bool = False
    track_sync_pending: bool = False  # waiting for the new track's first real Position


def _clamp(position: float, length: int) -> int:
    position = max(0, int(position))
    if length > 0:
        position = min(position, length)
    return position


class PositionClock:
    def __init__(
        self,
        config: ClockConfig | None = None,
        now: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or ClockConfig()
        self._now = now
        self._state: ClockState | None = None

    @property
    def state(self) -> ClockState | None:
        return self._state

    @property
    def is_tracking(self) -> bool:
        return self._state is not None

    @property
    def is_dragging(self) -> bool:
        return self._state is not None and self._state.dragging

    def reset(self) -> None:
        self._state = None

    # ── Queries ──────────────────────────────────────────────────────────────

    def position_at(self, t: float | None = None) -> int:
        """Return the position in microseconds at monotonic time *t* (default: now)."""
        s = self._state
        if s is None:
            return 0
        if t is None:
            t = self._now()
        position = s.base_position
        if s.is_playing:
            position += max(0.0, t - s.base_timestamp) * _US
        return _clamp(position, s.track_length)

    def _suppressed(self, now: float) -> bool:
        s = self._state
        return (s.suppress_until is not None and now < s.suppress_until) or (
            s.resume_guard_until is not None and now < s.resume_guard_until
        )

    def _rebase(self, position: int, now: float) -> None:
        s = self._state
        s.base_position = _clamp(position, s.track_length)
        s.base_timestamp = now
        s.last_resync = now

    # ── Inputs ───────────────────────────────────────────────────────────────

    def update(self, info: PlayerInfo) -> None:
        """Feed a freshly decoded snapshot."""
        now = self._now()
        key = (info.track_id, info.title)
        s = self._state

        if s is None:
            self._state = ClockState(
                base_position=_clamp(info.position, info.length),
                base_timestamp=now,
                is_playing=info.is_playing,
                track_length=info.length,
                last_resync=now,
                last_reported_position=info.position,
                track_key=key,
            )
            return

        # A cached Position that did not move since the last snapshot is
        # stale and says nothing about where playback is now.
        fresh = info.position != s.last_reported_position
        s.last_reported_position = info.position
        was_playing = s.is_playing
        playing = info.is_playing

        if key != s.track_key:
            s.track_key = key
            s.track_length = info.length
            s.is_playing = playing
            if not s.dragging:
                # An unchanged Position is left over from the previous track
                self._rebase(info.position if fresh else 0, now)
                s.suppress_until = None
                s.resume_guard_until = None
                s.track_sync_pending = not fresh
            return

        if s.track_sync_pending and fresh and not s.dragging:
            s.track_sync_pending = False
            s.is_playing = playing
            s.track_length = info.length
            self._rebase(info.position, now)
            return

        if was_playing and not playing:
            s.base_position = self.position_at(now)
            s.base_timestamp = now
            s.is_playing = False
            s.track_length = info.length
            if fresh and not s.dragging and not self._suppressed(now):
                self._rebase(info.position, now)
            return

        s.track_length = info.length

        if playing and not was_playing:
            s.base_timestamp = now
            s.is_playing = True
            s.resume_guard_until = now + self._config.resume_guard
            return

        if not fresh or s.dragging or self._suppressed(now):
            return

        if playing:
            if now - s.last_resync < self._config.resync_interval:
                return
            drift = abs(self.position_at(now) - info.position)
            if drift > self._config.drift_threshold * _US:
                self._rebase(info.position, now)
        else:
            self._rebase(info.position, now)

    def seek(self, position: int) -> None:
        """Apply a seek requested by this client before the player confirms it."""
        s = self._state
        if s is None:
            return
        now = self._now()
        s.dragging = False
        self._rebase(position, now)
        s.suppress_until = now + self._config.seek_suppress
        s.resume_guard_until = None
        s.track_sync_pending = False

    def on_seeked(self, position: int) -> bool:
        """Apply the player's ``Seeked`` signal.  Returns False if it was ignored."""
        s = self._state
        if s is None or s.dragging:
            return False
        self._rebase(position, self._now())
        s.suppress_until = None
        s.resume_guard_until = None
        s.track_sync_pending = False
        return True

    def begin_drag(self) -> None:
        if self._state is not None:
            self._state.dragging = True

    def cancel_drag(self) -> None:
        if self._state is not None:
            self._state.dragging = False
