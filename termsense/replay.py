"""Recorded terminal output — loading and replaying through a SessionEngine."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from termsense.engine.detector import StateChange
from termsense.engine.engine import SessionEngine
from termsense.logging_config import TermSenseError, get_logger

logger = get_logger(__name__)

DEFAULT_SESSION = "replay"


class RecordingError(TermSenseError):
    """A recording file could not be parsed."""

    pass


@dataclass
class RecordedEvent:
    """One event from a recording, relative to the start of the recording."""

    t: float
    data: str = ""
    session_id: str = DEFAULT_SESSION
    kind: str = "o"  # "o" output, "t" title


@dataclass
class ReplayResult:
    """What happened during a replay."""

    session_ids: list[str] = field(default_factory=list)
    state_changes: list[StateChange] = field(default_factory=list)
    cwd_changes: list[tuple[float, str, str]] = field(default_factory=list)
    duration: float = 0.0


def load_recording(path: Path) -> list[RecordedEvent]:
    """Load an asciinema v2 cast or a JSONL recording.

    JSONL lines look like ``{"t": 0.12, "data": "...", "session": "a"}``;
    ``"title"`` may replace ``"data"`` to record a title change.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise RecordingError(f"Cannot read recording {path}: {e}") from e

    lines = [line for line in lines if line.strip()]
    if not lines:
        return []

    try:
        first = json.loads(lines[0])
    except json.JSONDecodeError as e:
        raise RecordingError(f"{path}:1: invalid JSON: {e}") from e

    if isinstance(first, dict) and "version" in first:
        return _parse_cast(path, lines[1:])
    return _parse_jsonl(path, lines)


def _parse_cast(path: Path, lines: list[str]) -> list[RecordedEvent]:
    events = []
    for lineno, line in enumerate(lines, start=2):
        try:
            t, kind, data = json.loads(line)
        except (json.JSONDecodeError, ValueError) as e:
            raise RecordingError(f"{path}:{lineno}: invalid cast event: {e}") from e
        if kind == "o":
            events.append(RecordedEvent(t=float(t), data=data))
    return events


def _parse_jsonl(path: Path, lines: list[str]) -> list[RecordedEvent]:
    events = []
    for lineno, line in enumerate(lines, start=1):
        try:
            raw = json.loads(line)
            session_id = str(raw.get("session", DEFAULT_SESSION))
            if "title" in raw:
                events.append(RecordedEvent(float(raw["t"]), raw["title"], session_id, "t"))
            else:
                events.append(RecordedEvent(float(raw["t"]), raw["data"], session_id, "o"))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise RecordingError(f"{path}:{lineno}: invalid event: {e}") from e
    return events


def replay(
    engine: SessionEngine,
    events: list[RecordedEvent],
    tick: float = 0.5,
    start: float = 0.0,
    settle: Optional[float] = None,
) -> ReplayResult:
    """Feed recorded events through ``engine`` on its own clock.

    ``on_tick`` runs every ``tick`` seconds of recording time. After the
    last event the replay keeps ticking for ``settle`` seconds (defaults to
    one tick) so pending buffers flush.
    """
    result = ReplayResult()
    previous_state_cb = engine.detector.on_state_change
    previous_cwd_cb = engine.on_cwd_change

    def on_state(change: StateChange) -> None:
        result.state_changes.append(change)
        if previous_state_cb is not None:
            previous_state_cb(change)

    def on_cwd(session_id: str, path: str, now: float) -> None:
        result.cwd_changes.append((now, session_id, path))
        if previous_cwd_cb is not None:
            previous_cwd_cb(session_id, path, now)

    engine.detector.on_state_change = on_state
    engine.on_cwd_change = on_cwd
    try:
        next_tick = start + tick
        last_t = start
        for event in sorted(events, key=lambda e: e.t):
            now = start + event.t
            while tick > 0 and next_tick <= now:
                engine.on_tick(next_tick)
                next_tick += tick

            if event.session_id not in engine:
                engine.on_session_start(event.session_id, now=now)
                result.session_ids.append(event.session_id)

            if event.kind == "t":
                engine.on_title(event.session_id, event.data, now)
            else:
                engine.on_chunk(event.session_id, event.data, now)
            last_t = now

        end = last_t + (tick if settle is None else settle)
        while tick > 0 and next_tick <= end:
            engine.on_tick(next_tick)
            next_tick += tick
        engine.on_tick(end)
        result.duration = end - start
    finally:
        engine.detector.on_state_change = previous_state_cb
        engine.on_cwd_change = previous_cwd_cb

    logger.debug(
        f"Replayed {len(events)} events over {result.duration:.2f}s "
        f"({len(result.state_changes)} state changes)"
    )
    return result
