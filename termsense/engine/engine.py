"""Session engine — orchestrates buffering, extraction, activity and assistant detection."""

from __future__ import annotations

import time
from collections.abc import Callable
from functools import partial
from typing import Optional

from termsense.config import TermSenseConfig, load_config
from termsense.engine.activity import ActivityClassifier
from termsense.engine.assistants import AssistantRegistry, load_assistants
from termsense.engine.buffer import ChunkBuffer, ManualScheduler, Scheduler
from termsense.engine.cwd import CwdExtractor
from termsense.engine.detector import AssistantDetector, StateChange
from termsense.engine.git import GitQuery, GitTrigger, lookup_process_cwd, query_git_status
from termsense.engine.sweeper import DecaySweeper
from termsense.engine.view import build_session_view
from termsense.logging_config import SessionError, get_logger
from termsense.models import GitInfo, SessionRecord, SessionView

logger = get_logger(__name__)


class SessionEngine:
    """
    Classifies streaming output for many terminal sessions.

    Owns the session store. Every chunk is buffered for cwd extraction and,
    synchronously, run through the activity classifier and the assistant
    detector. Timers (buffer flush, git debounce) come from ``scheduler``;
    ``on_tick`` drives the decay sweeper. All calls are expected on one
    thread; hosts with worker threads must serialize calls per session.
    """

    def __init__(
        self,
        config: Optional[TermSenseConfig] = None,
        assistants: Optional[AssistantRegistry] = None,
        scheduler: Optional[Scheduler] = None,
        git_query: Optional[GitQuery] = None,
        cwd_lookup: Optional[Callable[[Optional[int]], str]] = None,
        clock: Callable[[], float] = time.time,
        on_state_change: Optional[Callable[[StateChange], None]] = None,
        on_cwd_change: Optional[Callable[[str, str, float], None]] = None,
    ):
        self.config = config or load_config()
        if assistants is None:
            assistants = load_assistants(self.config.detection.timing)
        self.assistants = assistants
        self.clock = clock
        self.scheduler = scheduler or ManualScheduler()
        self.on_cwd_change = on_cwd_change

        self._sessions: dict[str, SessionRecord] = {}
        self._foreground: Optional[str] = None

        if cwd_lookup is None and self.config.detection.process_cwd_lookup:
            cwd_lookup = lookup_process_cwd
        self._cwd_lookup = cwd_lookup

        self.extractor = CwdExtractor()
        self.activity = ActivityClassifier(self.config.activity)
        self.detector = AssistantDetector(self.assistants, on_state_change=on_state_change)
        self.sweeper = DecaySweeper(self.detector, self.config.activity, self.config.decay)
        self.buffer = ChunkBuffer(
            self.scheduler,
            on_flush=self._handle_flush,
            debounce_seconds=self.config.buffer.debounce_seconds,
            max_chars=self.config.buffer.max_chars,
        )

        self.git: Optional[GitTrigger] = None
        if self.config.git.enabled:
            self.git = GitTrigger(
                self.scheduler,
                query=git_query or partial(query_git_status, timeout=self.config.git.timeout_seconds),
                on_result=self._handle_git_result,
                debounce_seconds=self.config.git.debounce_seconds,
            )

    # ── Lifecycle ────────────────────────────────────────────

    def on_session_start(
        self,
        session_id: str,
        pid: Optional[int] = None,
        shell: str = "",
        title: str = "",
        now: Optional[float] = None,
    ) -> SessionRecord:
        """Create the record for a new session."""
        if session_id in self._sessions:
            raise SessionError(f"Session already exists: {session_id}")

        now = self._now(now)
        record = SessionRecord(session_id=session_id, pid=pid, shell=shell, title=title, started_at=now)
        self._sessions[session_id] = record
        logger.info(f"Session started {session_id} (pid={pid}, shell={shell or '?'})")

        if title and self.config.detection.enable_assistant_detection:
            self.detector.bind(record, "", now)
        self._lookup_cwd(record, now)
        return record

    def on_session_end(self, session_id: str) -> bool:
        """Drop a session and cancel every timer it owns."""
        self.buffer.cancel(session_id)
        if self.git is not None:
            self.git.cancel(session_id)
        if self._foreground == session_id:
            self._foreground = None

        record = self._sessions.pop(session_id, None)
        if record is None:
            logger.warning(f"Cannot end session {session_id}: not found")
            return False
        logger.info(f"Session ended {session_id}")
        return True

    def set_foreground(self, session_id: Optional[str], now: Optional[float] = None) -> None:
        """Mark a session as the one the user is looking at."""
        self._foreground = session_id
        record = self._sessions.get(session_id) if session_id else None
        if record is None:
            return
        record.has_activity = False
        self._lookup_cwd(record, self._now(now))

    @property
    def foreground(self) -> Optional[str]:
        return self._foreground

    # ── Input ────────────────────────────────────────────────

    def on_chunk(self, session_id: str, text: str, now: Optional[float] = None) -> bool:
        """Feed one raw output chunk. Returns True if the record changed."""
        now = self._now(now)
        self.scheduler.advance(now)

        record = self._sessions.get(session_id)
        if record is None:
            logger.debug(f"Ignoring output for unknown session {session_id}")
            return False
        if not text:
            return False

        try:
            return self._process_chunk(record, text, now)
        except Exception:
            logger.exception(f"Failed to process output for session {session_id}")
            return False

    def _process_chunk(self, record: SessionRecord, text: str, now: float) -> bool:
        if len(text) > 5:
            preview = text[:150].replace("\r", "\\r").replace("\n", "\\n").replace("\x1b", "<ESC>")
            logger.debug(f"output {record.session_id}: len={len(text)} {preview}")

        record.last_output = text
        self.buffer.append(record.session_id, text)

        dirty = self.activity.classify(
            record, text, now, foreground=record.session_id == self._foreground
        )
        if self.config.detection.enable_assistant_detection:
            if self.detector.update(record, text, now):
                dirty = True
        return dirty

    def on_title(self, session_id: str, title: str, now: Optional[float] = None) -> bool:
        """Record a terminal title change; may bind the session to an assistant."""
        now = self._now(now)
        record = self._sessions.get(session_id)
        if record is None:
            return False
        record.title = title
        if self.config.detection.enable_assistant_detection:
            self.detector.bind(record, "", now)
        return True

    def on_tick(self, now: Optional[float] = None) -> list[str]:
        """Run due timers and the decay sweeper. Returns ids of changed sessions."""
        now = self._now(now)
        self.scheduler.advance(now)
        return self.sweeper.sweep(list(self._sessions.values()), now)

    def flush(self, session_id: str, now: Optional[float] = None) -> None:
        """Run cwd extraction on whatever is buffered, without waiting."""
        self.buffer.flush(session_id, self._now(now))

    # ── Output ───────────────────────────────────────────────

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[SessionRecord]:
        return list(self._sessions.values())

    def get_session_view(self, session_id: str) -> Optional[SessionView]:
        """Snapshot for rendering. Does not mutate any state."""
        record = self._sessions.get(session_id)
        if record is None:
            return None
        return build_session_view(record, self.assistants, foreground=session_id == self._foreground)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # ── Internals ────────────────────────────────────────────

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    def _handle_flush(self, session_id: str, text: str, now: float) -> None:
        record = self._sessions.get(session_id)
        if record is None:
            return
        try:
            candidate = self.extractor.extract(text)
            if candidate is not None:
                self._apply_cwd(record, candidate.path, candidate.pattern_name, now)
        except Exception:
            logger.exception(f"cwd update failed for session {session_id}")

    def _apply_cwd(self, record: SessionRecord, path: str, source: str, now: float) -> bool:
        if not path or path == record.cwd:
            return False
        logger.info(f"cwd detected [{source}] {record.session_id}: {path}")
        record.cwd = path
        if self.git is not None:
            self.git.request(record.session_id, path)
        if self.on_cwd_change is not None:
            self.on_cwd_change(record.session_id, path, now)
        return True

    def _handle_git_result(self, session_id: str, path: str, info: GitInfo) -> None:
        try:
            record = self._sessions.get(session_id)
            if record is None or record.cwd != path:
                return
            record.git = info
        except Exception:
            logger.exception(f"git update failed for session {session_id}")

    def _lookup_cwd(self, record: SessionRecord, now: float) -> None:
        if self._cwd_lookup is None or not record.pid:
            return
        try:
            path = self._cwd_lookup(record.pid)
        except Exception as e:
            logger.debug(f"cwd lookup failed for pid {record.pid}: {e}")
            return
        if not path:
            return
        try:
            self._apply_cwd(record, path, "process", now)
        except Exception:
            logger.exception(f"cwd update failed for session {record.session_id}")
