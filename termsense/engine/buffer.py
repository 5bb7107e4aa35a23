"""Per-session chunk buffering with debounced flush, plus the timer schedulers."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional, Protocol

from termsense.logging_config import get_logger

logger = get_logger(__name__)

TimerCallback = Callable[[float], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Timer source shared by the chunk buffer and the git trigger.

    Callbacks receive the time at which they fire and always run on the
    caller's thread.
    """

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle: ...

    def advance(self, now: float) -> None: ...


# ── Schedulers ──────────────────────────────────────────────


@dataclass(order=True)
class ManualTimer:
    """A pending timer on a ManualScheduler."""

    when: float
    seq: int
    callback: TimerCallback = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Virtual-clock scheduler.

    Nothing fires on its own: ``advance(now)`` runs every timer due at or
    before ``now`` in due-time order, passing each callback its due time.
    Used when the host hands in timestamps (tests, replays).
    """

    def __init__(self, now: float = 0.0):
        self.now = now
        self._timers: list[ManualTimer] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: TimerCallback) -> ManualTimer:
        timer = ManualTimer(when=self.now + max(delay, 0.0), seq=next(self._seq), callback=callback)
        heapq.heappush(self._timers, timer)
        return timer

    def advance(self, now: float) -> None:
        try:
            while self._timers and self._timers[0].when <= now:
                timer = heapq.heappop(self._timers)
                if timer.cancelled:
                    continue
                self.now = max(self.now, timer.when)
                timer.callback(timer.when)
        finally:
            self.now = max(self.now, now)

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for t in self._timers if not t.cancelled)


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._loop = loop
        self._clock = clock

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: TimerCallback) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay, 0.0), lambda: callback(self._clock()))

    def advance(self, now: float) -> None:
        # The event loop fires timers itself.
        return None


# ── Chunk buffer ────────────────────────────────────────────


@dataclass
class BufferEntry:
    """Accumulated text for one session plus its pending flush timer."""

    text: str = ""
    timer: Optional[TimerHandle] = None


class ChunkBuffer:
    """
    Assembles multi-fragment prompt text before cwd extraction runs.

    Prompts, especially colorized ones, often arrive as several chunks within
    milliseconds. Every append restarts a debounce timer; once input pauses
    for ``debounce_seconds`` the whole buffer is handed to ``on_flush`` and
    cleared. The buffer is capped at ``max_chars``, dropping the oldest text.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_flush: Callable[[str, str, float], None],
        debounce_seconds: float = 0.15,
        max_chars: int = 4096,
    ):
        self.scheduler = scheduler
        self.on_flush = on_flush
        self.debounce_seconds = debounce_seconds
        self.max_chars = max_chars
        self._entries: dict[str, BufferEntry] = {}

    def append(self, session_id: str, text: str) -> None:
        """Add text to a session's buffer and restart its debounce timer."""
        if not text:
            return

        entry = self._entries.setdefault(session_id, BufferEntry())
        entry.text += text
        if len(entry.text) > self.max_chars:
            entry.text = entry.text[-self.max_chars:]

        if entry.timer is not None:
            entry.timer.cancel()
        entry.timer = self.scheduler.call_later(
            self.debounce_seconds,
            lambda now, sid=session_id: self.flush(sid, now),
        )

    def flush(self, session_id: str, now: float) -> None:
        """Hand the buffered text to ``on_flush`` and clear it."""
        entry = self._entries.pop(session_id, None)
        if entry is None:
            return
        if entry.timer is not None:
            entry.timer.cancel()
        if entry.text:
            self.on_flush(session_id, entry.text, now)

    def cancel(self, session_id: str) -> None:
        """Drop a session's buffer without flushing it."""
        entry = self._entries.pop(session_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()

    def peek(self, session_id: str) -> str:
        """Current buffered text for a session."""
        entry = self._entries.get(session_id)
        return entry.text if entry else ""

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
