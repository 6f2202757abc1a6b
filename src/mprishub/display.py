"""Render the current player in the terminal using ANSI escape codes.

Text-only rendering with:
  • One data-driven frame builder fed by a ``PlayerView``
  • Synchronized output (\033[?2026h / l) for flicker-free updates
  • Differential updates — only changed lines redrawn
  • Raw terminal mode (no echo) with single-key playback controls
"""

from __future__ import annotations

import io
import logging
import os
import signal
import sys
import termios
import tty
from dataclasses import dataclass

from gi.repository import GLib

from mprishub.codec import LOOP_NONE, LOOP_PLAYLIST, LOOP_TRACK, PAUSED, PLAYING
from mprishub.config import UIConfig
from mprishub.errors import MprisError
from mprishub.events import RegistryCallbacks
from mprishub.registry import PlayerRegistry

log = logging.getLogger(__name__)

# ── ANSI escape helpers ──────────────────────────────────────────────────────

_ESC = "\033["
_RESET = f"{_ESC}0m"
_BOLD = f"{_ESC}1m"
_DIM = f"{_ESC}2m"

_HIDE_CURSOR = f"{_ESC}?25l"
_SHOW_CURSOR = f"{_ESC}?25h"
_CLEAR = f"{_ESC}2J{_ESC}H"
_EL = f"{_ESC}K"  # erase to end of line

_SYNC_START = "\033[?2026h"
_SYNC_END = "\033[?2026l"

_FG_YELLOW = f"{_ESC}33m"
_FG_GREEN = f"{_ESC}32m"
_FG_MAGENTA = f"{_ESC}35m"
_FG_CYAN = f"{_ESC}36m"
_FG_BR_BLACK = f"{_ESC}90m"
_FG_BR_WHITE = f"{_ESC}97m"
_BG_BLUE = f"{_ESC}44m"

_STATUS_ICONS = {PLAYING: "▶", PAUSED: "⏸"}
_LOOP_LABELS = {LOOP_NONE: "repeat off", LOOP_TRACK: "repeat track", LOOP_PLAYLIST: "repeat all"}

_HELP = "space play/pause · n/p next/prev · ←/→ seek · s shuffle · r repeat · tab player · q quit"


# ── View model ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PlayerView:
    """Everything the renderer needs to draw one player."""

    label: str
    title: str
    artist: str
    album: str
    status: str
    position_us: int
    length_us: int
    shuffle: bool
    loop_status: str
    tabs: tuple[str, ...] = ()
    active_tab: int = 0


def view_for(registry: PlayerRegistry, name: str | None, t: float | None = None) -> PlayerView | None:
    info = registry.get_player_info(name)
    if name is None or info is None:
        return None
    players = registry.get_players()
    return PlayerView(
        label=registry.get_player_display_label(name),
        title=info.title or "Unknown title",
        artist=info.artist,
        album=info.album or "",
        status=info.status,
        position_us=registry.position_at(name, t),
        length_us=info.length,
        shuffle=info.shuffle,
        loop_status=info.loop_status,
        tabs=tuple(registry.get_player_identity(p) for p in players),
        active_tab=players.index(name) if name in players else 0,
    )


# ── Helpers ──────────────────────────────────────────────────────────────────

def _move(row: int, col: int) -> str:
    return f"{_ESC}{row};{col}H"


def _term_size() -> tuple[int, int]:
    """Return (columns, lines)."""
    try:
        sz = os.get_terminal_size()
        return sz.columns, sz.lines
    except OSError:
        return 80, 24


def format_time(microseconds: int) -> str:
    m, s = divmod(int(microseconds // 1_000_000), 60)
    return f"{m}:{s:02d}"


def _center(text: str, width: int) -> str:
    if len(text) >= width:
        return text[:width]
    return " " * ((width - len(text)) // 2) + text


def _progress_bar(view: PlayerView, width: int) -> str:
    if width <= 0:
        return ""
    if view.length_us <= 0:
        return "─" * width
    filled = int(width * min(1.0, view.position_us / view.length_us))
    return "━" * filled + "─" * (width - filled)


# ── Frame builders ───────────────────────────────────────────────────────────

def build_frame(view: PlayerView, w: int, h: int, colors: bool = True) -> list[str]:
    """Lay out one player as *h* terminal rows of width *w*."""

    def paint(style: str, text: str) -> str:
        return f"{style}{text}{_RESET}" if colors else text

    rows: list[str] = []

    if view.tabs:
        tabs = []
        for idx, tab in enumerate(view.tabs):
            text = f" {tab} "
            tabs.append(paint(f"{_BOLD}{_BG_BLUE}{_FG_BR_WHITE}", text) if idx == view.active_tab else paint(_FG_BR_BLACK, text))
        rows.append(" ".join(tabs) + _EL)
    else:
        rows.append(_EL)
    rows.append(_EL)

    icon = _STATUS_ICONS.get(view.status, "■")
    rows.append(paint(_FG_BR_BLACK, _center(f"{icon} {view.label}", w)) + _EL)
    rows.append(paint(f"{_BOLD}{_FG_MAGENTA}", _center(view.title, w)) + _EL)
    rows.append(paint(_FG_CYAN, _center(view.artist, w)) + _EL)
    rows.append(paint(_DIM, _center(view.album, w)) + _EL)
    rows.append(_EL)

    pos_str = format_time(view.position_us)
    dur_str = format_time(view.length_us) if view.length_us > 0 else "?:??"
    bar_width = max(0, w - len(pos_str) - len(dur_str) - 4)
    rows.append(
        f" {paint(_FG_YELLOW, pos_str)} {_progress_bar(view, bar_width)} {paint(_FG_YELLOW, dur_str)}{_EL}"
    )

    modes = [
        paint(_FG_GREEN, "shuffle on") if view.shuffle else paint(_FG_BR_BLACK, "shuffle off"),
        paint(_FG_GREEN if view.loop_status != LOOP_NONE else _FG_BR_BLACK,
              _LOOP_LABELS.get(view.loop_status, _LOOP_LABELS[LOOP_NONE])),
    ]
    rows.append(" " + "  ".join(modes) + _EL)

    while len(rows) < h - 1:
        rows.append(_EL)
    rows.append(paint(_FG_BR_BLACK, _center(_HELP, w)) + _EL)

    return rows[:h]


def build_status(message: str, w: int, h: int, colors: bool = True) -> list[str]:
    rows: list[str] = [_EL, _EL]
    available = max(0, h - 3)
    mid = available // 2
    for i in range(available):
        if i == mid:
            text = _center(message, w)
            rows.append((f"{_FG_BR_BLACK}{text}{_RESET}" if colors else text) + _EL)
        else:
            rows.append(_EL)
    while len(rows) < h:
        rows.append(_EL)
    return rows[:h]


def format_pipe_line(view: PlayerView) -> str:
    """One plain line describing the track, for ``--pipe`` mode."""
    artist = f" — {view.artist}" if view.artist else ""
    return f"[{view.status}] {view.title}{artist} ({view.label})"


# ── Differential writer ─────────────────────────────────────────────────────

def _write_diff(out, prev: list[str], cur: list[str], force: bool = False) -> None:
    buf = io.StringIO()
    buf.write(_SYNC_START)
    changed = False

    for row_idx, line in enumerate(cur):
        if force or row_idx >= len(prev) or prev[row_idx] != line:
            buf.write(_move(row_idx + 1, 1))
            buf.write(line)
            changed = True

    buf.write(_SYNC_END)

    if changed:
        out.write(buf.getvalue())
        out.flush()


# ── Live display ─────────────────────────────────────────────────────────────

_KEY_LEFT = "\x1b[D"
_KEY_RIGHT = "\x1b[C"


class LiveDisplay:
    """Full-screen view of the current player, redrawn on the GLib main loop."""

    def __init__(
        self,
        registry: PlayerRegistry,
        loop: GLib.MainLoop,
        config: UIConfig | None = None,
        pinned_player: str | None = None,
        out=None,
    ) -> None:
        self._registry = registry
        self._loop = loop
        self._config = config or UIConfig()
        self._pinned = pinned_player
        self._out = out or sys.stdout
        self._prev_frame: list[str] = []
        self._needs_redraw = True
        self._sources: list[int] = []

    def _name(self) -> str | None:
        return self._registry.current_player

    def _on_current_changed(self, name: str | None) -> None:
        if self._pinned and name != self._pinned and self._pinned in self._registry.get_players():
            self._registry.set_current_player(self._pinned)
        self._needs_redraw = True

    def _on_added(self, name: str) -> None:
        if name == self._pinned:
            self._registry.set_current_player(name)
        self._needs_redraw = True

    def refresh(self) -> None:
        self._needs_redraw = True

    def callbacks(self) -> RegistryCallbacks:
        return RegistryCallbacks(
            added=self._on_added,
            current_changed=self._on_current_changed,
        )

    def render(self) -> list[str]:
        w, h = _term_size()
        view = view_for(self._registry, self._name())
        if view is None:
            if self._registry.get_players():
                return build_status("Nothing loaded in the current player.", w, h, self._config.use_colors)
            return build_status("No media player detected.", w, h, self._config.use_colors)
        return build_frame(view, w, h, self._config.use_colors)

    def _tick(self) -> bool:
        frame = self.render()
        _write_diff(self._out, self._prev_frame, frame, self._needs_redraw)
        self._prev_frame = frame
        self._needs_redraw = False
        return GLib.SOURCE_CONTINUE

    def _report(self, ok: bool, error: MprisError | None) -> None:
        if not ok:
            log.info("Command failed: %s", error)

    def handle_key(self, key: str) -> None:
        name = self._name()
        if key in ("q", "\x03"):
            self._loop.quit()
            return
        if name is None:
            return
        if key == " ":
            self._registry.play_pause(name, on_done=self._report)
        elif key == "n":
            self._registry.next(name, on_done=self._report)
        elif key == "p":
            self._registry.previous(name, on_done=self._report)
        elif key == "s":
            self._registry.toggle_shuffle(name, on_done=self._report)
        elif key == "r":
            self._registry.cycle_loop_status(name, on_done=self._report)
        elif key in (_KEY_LEFT, _KEY_RIGHT):
            info = self._registry.get_player_info(name)
            if info is None:
                return
            step = self._config.seek_step if key == _KEY_RIGHT else -self._config.seek_step
            target = self._registry.position_at(name) / 1_000_000 + step
            if info.length > 0:
                target = min(target, info.length_s)
            self._registry.set_position(name, info.track_id, max(0.0, target), on_done=self._report)
        elif key == "\t":
            players = self._registry.get_players()
            if players:
                idx = players.index(name) if name in players else -1
                self._pinned = players[(idx + 1) % len(players)]
                self._registry.set_current_player(self._pinned)
        self._needs_redraw = True

    def _on_stdin(self, fd, condition) -> bool:
        try:
            data = os.read(fd, 16).decode(errors="ignore")
        except OSError:
            return GLib.SOURCE_REMOVE
        if data.startswith("\x1b"):
            self.handle_key(data)
        else:
            for key in data:
                self.handle_key(key)
        return GLib.SOURCE_CONTINUE

    def _on_winch(self) -> bool:
        self._needs_redraw = True
        return GLib.SOURCE_CONTINUE

    def _on_sigint(self) -> bool:
        self._loop.quit()
        return GLib.SOURCE_REMOVE

    def run(self) -> None:
        fd = sys.stdin.fileno()
        try:
            old_termios = termios.tcgetattr(fd)
            has_termios = True
        except termios.error:
            has_termios = False

        try:
            if has_termios:
                tty.setcbreak(fd)
                self._sources.append(GLib.io_add_watch(fd, GLib.PRIORITY_DEFAULT, GLib.IO_IN, self._on_stdin))

            self._out.write(_HIDE_CURSOR)
            self._out.write(_CLEAR)
            self._out.flush()

            interval = max(1, 1000 // self._config.refresh_hz)
            self._sources.append(GLib.timeout_add(interval, self._tick))
            self._sources.append(GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signal.SIGWINCH, self._on_winch))
            self._sources.append(GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signal.SIGINT, self._on_sigint))
            self._loop.run()
        finally:
            for source in self._sources:
                GLib.source_remove(source)
            self._sources.clear()
            self._out.write(_SHOW_CURSOR)
            self._out.write(_CLEAR)
            self._out.flush()
            if has_termios:
                termios.tcsetattr(fd, termios.TCSADRAIN, old_termios)


# ── Pipe mode ────────────────────────────────────────────────────────────────

class PipePrinter:
    """Print one line whenever the current player's track or status changes."""

    def __init__(self, registry: PlayerRegistry, pinned_player: str | None = None, out=None) -> None:
        self._registry = registry
        self._pinned = pinned_player
        self._out = out or sys.stdout
        self._last: str | None = None

    def callbacks(self) -> RegistryCallbacks:
        return RegistryCallbacks(
            added=self._on_added,
            changed=self._on_event,
            current_changed=self._on_current_changed,
        )

    def _on_added(self, name: str) -> None:
        if name == self._pinned:
            self._registry.set_current_player(name)
        self.refresh()

    def _on_event(self, name: str) -> None:
        self.refresh()

    def _on_current_changed(self, name: str | None) -> None:
        if self._pinned and name != self._pinned and self._pinned in self._registry.get_players():
            self._registry.set_current_player(self._pinned)
            return
        self.refresh()

    def refresh(self) -> None:
        view = view_for(self._registry, self._registry.current_player)
        line = format_pipe_line(view) if view else "[Idle] No media player detected."
        if line != self._last:
            print(line, file=self._out, flush=True)
            self._last = line
