# src/stackreview/playback.py
"""
Stack Playback
==============

Ordered navigation and cine-style autoplay over a stack of images.

Display order is fixed at construction by a stable sort on
sequence_order (ties keep input order). All indexing afterwards is
0-based into that sorted list.

State machine:
    {Stopped, Playing} x fullscreen flag (orthogonal)

- Autoplay never runs with fewer than two items.
- Next/previous wrap around and do not stop playback.
- reset_to_first() always stops.
- Changing the interval while playing restarts the timer, so no tick is
  ever delivered at the stale interval.

The autoplay timer is the only recurring work in the system. close()
cancels it and removes the key listener.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Protocol, Sequence

from .config import PlaybackConfig, clamp

logger = logging.getLogger(__name__)

IndexListener = Callable[[int], None]


# ═══════════════════════════════════════════════════════════════════════════════
# DATA MODEL
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class StackItem:
    """
    Single displayable image in the stack.

    sequence_order is used only for display ordering; values need not be
    contiguous or unique.
    """
    id: str
    image: Any                      # bytes, path or URI (caller-defined)
    sequence_order: int
    caption: Optional[str] = None


@dataclass
class PlaybackState:
    current_index: int = 0
    is_playing: bool = False
    interval_ms: int = 500
    is_fullscreen: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# TIMER SEAM
# ═══════════════════════════════════════════════════════════════════════════════

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with asyncio-style call_later (asyncio loops qualify)."""
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedules on the given loop, or the running loop at call time."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


# ═══════════════════════════════════════════════════════════════════════════════
# KEYBOARD SEAM
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class KeyEvent:
    key: str
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


KeyListener = Callable[[KeyEvent], None]


class KeyEventHub:
    """
    Explicit key listener registry.

    The window/host owns one hub and dispatches raw key presses into it;
    controllers subscribe on construction and unsubscribe on close().
    """

    def __init__(self):
        self._listeners: List[KeyListener] = []

    def add_listener(self, listener: KeyListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: KeyListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispatch(self, key: str) -> KeyEvent:
        event = KeyEvent(key=key)
        for listener in list(self._listeners):
            listener(event)
        return event


PREVIOUS_KEYS = frozenset({'ArrowUp', 'ArrowLeft'})
NEXT_KEYS = frozenset({'ArrowDown', 'ArrowRight'})
PLAY_PAUSE_KEYS = frozenset({' ', 'Space', 'Spacebar'})
EXIT_FULLSCREEN_KEYS = frozenset({'Escape', 'Esc'})


# ═══════════════════════════════════════════════════════════════════════════════
# CONTROLLER
# ═══════════════════════════════════════════════════════════════════════════════

class StackPlaybackController:
    """
    Navigation/autoplay engine over an ordered image stack.

    Args:
        items: StackItems in any order
        scheduler: Timer source for autoplay (defaults to the running asyncio loop)
        key_source: Optional KeyEventHub to listen on while alive
        on_index_change: Optional first index listener
        release_item: Optional hook called per item on close() to free
            transient handles (object URIs, temp files)
        config: Interval bounds and default
    """

    def __init__(
        self,
        items: Sequence[StackItem],
        *,
        scheduler: Optional[Scheduler] = None,
        key_source: Optional[KeyEventHub] = None,
        on_index_change: Optional[IndexListener] = None,
        release_item: Optional[Callable[[StackItem], None]] = None,
        config: Optional[PlaybackConfig] = None,
    ):
        self.config = config or PlaybackConfig()
        self.items: List[StackItem] = sorted(items, key=lambda item: item.sequence_order)
        self._state = PlaybackState(interval_ms=self.config.default_interval_ms)

        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._timer: Optional[TimerHandle] = None
        self._listeners: List[IndexListener] = []
        self._release_item = release_item
        self._closed = False

        if on_index_change is not None:
            self._listeners.append(on_index_change)

        self._key_source = key_source
        if key_source is not None:
            key_source.add_listener(self.handle_key)

        logger.debug(f"Stack playback created with {len(self.items)} items")

    # ─── Queries ───────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.items)

    @property
    def length(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def state(self) -> PlaybackState:
        """Snapshot of the playback state."""
        return replace(self._state)

    @property
    def current_index(self) -> int:
        return self._state.current_index

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    @property
    def is_fullscreen(self) -> bool:
        return self._state.is_fullscreen

    @property
    def interval_ms(self) -> int:
        return self._state.interval_ms

    @property
    def current_item(self) -> Optional[StackItem]:
        if self.is_empty:
            return None
        return self.items[self._state.current_index]

    @property
    def navigation_enabled(self) -> bool:
        return len(self.items) > 1 and not self._closed

    @property
    def position_label(self) -> str:
        """'3 / 10' style position; empty stacks read '0 / 0'."""
        if self.is_empty:
            return "0 / 0"
        return f"{self._state.current_index + 1} / {len(self.items)}"

    @property
    def progress_fraction(self) -> float:
        if self.is_empty:
            return 0.0
        return (self._state.current_index + 1) / len(self.items)

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    # ─── Observers ─────────────────────────────────────────────────────────────

    def add_index_listener(self, listener: IndexListener) -> None:
        self._listeners.append(listener)

    def remove_index_listener(self, listener: IndexListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set_index(self, index: int) -> None:
        self._state.current_index = index
        for listener in list(self._listeners):
            listener(index)

    # ─── Navigation ────────────────────────────────────────────────────────────

    def go_to_next(self) -> int:
        """Advance one item, wrapping from last to first."""
        if self.is_empty:
            return 0
        self._set_index((self._state.current_index + 1) % len(self.items))
        return self._state.current_index

    def go_to_previous(self) -> int:
        """Step back one item, wrapping from first to last."""
        if self.is_empty:
            return 0
        idx = self._state.current_index
        self._set_index(len(self.items) - 1 if idx == 0 else idx - 1)
        return self._state.current_index

    def go_to(self, index: int) -> int:
        """Jump to index, clamped into the stack."""
        if self.is_empty:
            return 0
        self._set_index(int(clamp(index, (0, len(self.items) - 1))))
        return self._state.current_index

    def reset_to_first(self) -> None:
        """Return to the first item and stop playback."""
        self._stop()
        if not self.is_empty:
            self._set_index(0)

    # ─── Playback ──────────────────────────────────────────────────────────────

    def toggle_play_pause(self) -> bool:
        """Flip Stopped/Playing. Never starts with fewer than two items."""
        if self._state.is_playing:
            self._stop()
        else:
            self._play()
        return self._state.is_playing

    def play(self) -> bool:
        if not self._state.is_playing:
            self._play()
        return self._state.is_playing

    def pause(self) -> None:
        self._stop()

    def set_interval_ms(self, value: float) -> int:
        """Clamp and apply a new autoplay period; restarts an active timer."""
        self._state.interval_ms = int(clamp(value, self.config.interval_range))
        if self._state.is_playing:
            self._stop()
            self._play()
        return self._state.interval_ms

    def _play(self) -> None:
        if self._closed or len(self.items) <= 1:
            return
        # Stays Stopped if the scheduler cannot take the timer
        self._schedule_tick()
        self._state.is_playing = True
        logger.debug(f"Autoplay started at {self._state.interval_ms}ms")

    def _stop(self) -> None:
        self._state.is_playing = False
        self._cancel_timer()

    def _schedule_tick(self) -> None:
        self._timer = self._scheduler.call_later(self._state.interval_ms / 1000.0, self._on_tick)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tick(self) -> None:
        self._timer = None
        if not self._state.is_playing or len(self.items) <= 1:
            self._state.is_playing = False
            return
        self.go_to_next()
        # a listener may have stopped playback during go_to_next()
        if self._state.is_playing and self._timer is None:
            self._schedule_tick()

    # ─── Fullscreen & keyboard ─────────────────────────────────────────────────

    def enter_fullscreen(self) -> None:
        self._state.is_fullscreen = True

    def exit_fullscreen(self) -> None:
        self._state.is_fullscreen = False

    def toggle_fullscreen(self) -> bool:
        self._state.is_fullscreen = not self._state.is_fullscreen
        return self._state.is_fullscreen

    def handle_key(self, event: KeyEvent) -> bool:
        """
        Keyboard contract, active only in fullscreen.

        Handled keys call prevent_default(). Returns True if handled.
        """
        if not self._state.is_fullscreen or self._closed:
            return False

        key = event.key
        if key in PREVIOUS_KEYS:
            self.go_to_previous()
        elif key in NEXT_KEYS:
            self.go_to_next()
        elif key in PLAY_PAUSE_KEYS:
            self.toggle_play_pause()
        elif key in EXIT_FULLSCREEN_KEYS:
            self.exit_fullscreen()
        else:
            return False

        event.prevent_default()
        return True

    # ─── Teardown ──────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Cancel autoplay, drop the key listener and release item handles. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._stop()
        if self._key_source is not None:
            self._key_source.remove_listener(self.handle_key)
            self._key_source = None
        self._listeners.clear()
        if self._release_item is not None:
            for item in self.items:
                self._release_item(item)
        logger.debug("Stack playback closed")

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __enter__(self) -> 'StackPlaybackController':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
