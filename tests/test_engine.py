"""Tests for the session engine."""

from unittest.mock import MagicMock

import pytest

from termsense.config import TermSenseConfig
from termsense.engine.assistants import load_assistants
from termsense.engine.buffer import ManualScheduler
from termsense.engine.engine import SessionEngine
from termsense.logging_config import SessionError
from termsense.models import ActivityType, GitInfo

PROMPT = "me@box:/srv/app$ "

# ── Helpers ─────────────────────────────────────────────────


class Harness:
    """Engine wired to a virtual clock, a fake git query and change recorders."""

    def __init__(self, config=None, **kwargs):
        self.state_changes = []
        self.cwd_changes = []
        self.git_query = MagicMock(return_value=GitInfo(branch="main", dirty=2))
        self.scheduler = ManualScheduler()
        self.engine = SessionEngine(
            config=config or TermSenseConfig(),
            assistants=load_assistants(user_path=None),
            scheduler=self.scheduler,
            git_query=self.git_query,
            clock=lambda: 0.0,
            on_state_change=self.state_changes.append,
            on_cwd_change=lambda sid, path, now: self.cwd_changes.append((sid, path, now)),
            **kwargs,
        )


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def engine(harness):
    return harness.engine


# ── Tests: lifecycle ────────────────────────────────────────


class TestLifecycle:
    def test_start_creates_record(self, engine):
        record = engine.on_session_start("s1", pid=42, shell="/bin/bash", now=1.0)
        assert record.started_at == 1.0
        assert engine.get_session("s1") is record
        assert "s1" in engine
        assert len(engine) == 1

    def test_duplicate_start_rejected(self, engine):
        engine.on_session_start("s1", now=0.0)
        with pytest.raises(SessionError):
            engine.on_session_start("s1", now=1.0)

    def test_end_removes_record(self, engine):
        engine.on_session_start("s1", now=0.0)
        assert engine.on_session_end("s1") is True
        assert engine.get_session("s1") is None
        assert engine.on_session_end("s1") is False

    def test_unknown_session_output_ignored(self, engine):
        assert engine.on_chunk("ghost", "hello world", 1.0) is False
        assert engine.list_sessions() == []

    def test_title_at_start_binds_assistant(self, engine):
        record = engine.on_session_start("s1", title="claude", now=0.0)
        assert record.ai_assistant_id == "claude_code"


# ── Tests: cwd and git ──────────────────────────────────────


class TestCwdFlow:
    def test_prompt_sets_cwd_after_debounce(self, harness, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", PROMPT, 0.0)
        assert engine.get_session("s1").cwd == ""

        engine.on_tick(0.2)
        assert engine.get_session("s1").cwd == "/srv/app"
        assert harness.cwd_changes == [("s1", "/srv/app", 0.15)]

    def test_fragmented_prompt(self, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", "me@box:", 0.0)
        engine.on_chunk("s1", "/srv/app$ ", 0.05)
        engine.on_tick(0.5)
        assert engine.get_session("s1").cwd == "/srv/app"

    def test_git_refreshed_after_cwd_change(self, harness, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", PROMPT, 0.0)
        engine.on_tick(0.2)
        harness.git_query.assert_not_called()

        engine.on_tick(1.0)
        harness.git_query.assert_called_once_with("/srv/app")
        assert engine.get_session("s1").git == GitInfo(branch="main", dirty=2)

    def test_same_cwd_does_not_refresh_git(self, harness, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", PROMPT, 0.0)
        engine.on_tick(1.0)
        engine.on_chunk("s1", "ls\r\nREADME.md\r\n" + PROMPT, 2.0)
        engine.on_tick(3.0)
        assert harness.git_query.call_count == 1
        assert len(harness.cwd_changes) == 1

    def test_repeated_chunk_is_idempotent(self, harness, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", PROMPT, 0.0)
        engine.on_tick(1.0)
        engine.on_chunk("s1", PROMPT, 2.0)
        engine.on_tick(3.0)
        assert harness.git_query.call_count == 1
        assert harness.cwd_changes == [("s1", "/srv/app", 0.15)]

    def test_explicit_flush(self, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", "PS C:\\Users\\me> ", 0.0)
        engine.flush("s1", 0.01)
        assert engine.get_session("s1").cwd == "C:\\Users\\me"

    def test_end_cancels_pending_timers(self, harness, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", PROMPT, 0.0)
        engine.on_session_end("s1")
        assert harness.scheduler.pending == 0
        engine.on_tick(5.0)
        assert harness.cwd_changes == []

    def test_end_cancels_git_refresh(self, harness, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", PROMPT, 0.0)
        engine.on_tick(0.2)
        engine.on_session_end("s1")
        engine.on_tick(5.0)
        harness.git_query.assert_not_called()

    def test_git_disabled(self):
        config = TermSenseConfig()
        config.git.enabled = False
        harness = Harness(config)
        engine = harness.engine
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", PROMPT, 0.0)
        engine.on_tick(2.0)
        assert engine.get_session("s1").cwd == "/srv/app"
        assert engine.git is None
        harness.git_query.assert_not_called()

    def test_process_cwd_lookup(self):
        harness = Harness(cwd_lookup=lambda pid: f"/proc-cwd/{pid}")
        record = harness.engine.on_session_start("s1", pid=42, now=0.0)
        assert record.cwd == "/proc-cwd/42"
        assert harness.cwd_changes == [("s1", "/proc-cwd/42", 0.0)]

    def test_failing_process_lookup_ignored(self):
        def lookup(pid):
            raise PermissionError("nope")

        harness = Harness(cwd_lookup=lookup)
        record = harness.engine.on_session_start("s1", pid=42, now=0.0)
        assert record.cwd == ""


# ── Tests: activity ─────────────────────────────────────────


class TestActivity:
    def test_output_classified(self, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", "\x1b[31mError: build failed\x1b[0m\r\n", 1.0)
        record = engine.get_session("s1")
        assert record.activity_type == ActivityType.OUTPUT
        assert record.last_output_type.value == "error"
        assert record.last_output.startswith("\x1b[31m")

    def test_background_activity_flag(self, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_session_start("s2", now=0.0)
        engine.set_foreground("s2", now=0.0)
        engine.on_chunk("s1", "building target 1 of 9\r\n", 1.0)
        engine.on_chunk("s2", "building target 1 of 9\r\n", 1.0)
        assert engine.get_session("s1").has_activity is True
        assert engine.get_session("s2").has_activity is False

        engine.set_foreground("s1", now=1.5)
        assert engine.foreground == "s1"
        assert engine.get_session("s1").has_activity is False

    def test_tick_reports_changed_sessions(self, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", "building target 1 of 9\r\n", 0.0)
        assert engine.on_tick(4.0) == ["s1"]
        record = engine.get_session("s1")
        assert record.has_activity is False
        assert record.last_output_type is None


# ── Tests: assistants ───────────────────────────────────────


class TestAssistants:
    def test_spinner_chunk(self, harness, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", "⠋ Running Bash tool", 0.0)
        record = engine.get_session("s1")
        assert record.ai_assistant_id == "claude_code"
        assert record.assistant_state == "working"
        assert record.spinner_phase == 0
        assert [c.new_state for c in harness.state_changes] == ["working"]

    def test_silence_moves_to_idle_once(self, harness, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", "⠋ Running Bash tool", 0.0)
        for now in range(1, 40):
            engine.on_tick(float(now))
        assert [(c.new_state, c.reason) for c in harness.state_changes] == [
            ("working", "spinner"),
            ("waiting", "spinner_timeout"),
            ("idle", "idle_timeout"),
        ]

    def test_title_change_binds(self, engine):
        engine.on_session_start("s1", now=0.0)
        assert engine.on_title("s1", "gemini", 1.0) is True
        assert engine.get_session("s1").ai_assistant_id == "gemini_cli"
        assert engine.on_title("ghost", "gemini", 1.0) is False

    def test_detection_disabled(self):
        config = TermSenseConfig()
        config.detection.enable_assistant_detection = False
        engine = Harness(config).engine
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", "⠋ Running Bash tool", 0.0)
        assert engine.get_session("s1").ai_assistant_id is None


# ── Tests: robustness ───────────────────────────────────────


class TestIsolation:
    def test_failure_in_one_session_does_not_affect_others(self, engine):
        engine.on_session_start("bad", now=0.0)
        engine.on_session_start("good", now=0.0)
        classify = engine.activity.classify

        def flaky(record, chunk, now, foreground=True):
            if record.session_id == "bad":
                raise ValueError("corrupt chunk")
            return classify(record, chunk, now, foreground=foreground)

        engine.activity.classify = flaky
        assert engine.on_chunk("bad", "some output here", 1.0) is False
        assert engine.on_chunk("good", "some output here", 1.0) is True
        assert engine.get_session("good").activity_type == ActivityType.OUTPUT

    def test_failing_cwd_callback_does_not_leak_into_other_sessions(self):
        def on_cwd_change(sid, path, now):
            if sid == "a":
                raise RuntimeError("host callback failed")

        harness = Harness()
        engine = harness.engine
        engine.on_cwd_change = on_cwd_change
        engine.on_session_start("a", now=0.0)
        engine.on_session_start("b", now=0.0)

        engine.on_chunk("a", PROMPT, 0.0)
        assert engine.on_chunk("b", "some program output", 1.0) is True
        assert engine.get_session("b").activity_type == ActivityType.OUTPUT
        assert engine.get_session("a").cwd == "/srv/app"
        assert harness.scheduler.now == 1.0


# ── Tests: views ────────────────────────────────────────────


class TestViews:
    def test_view_does_not_mutate(self, engine):
        engine.on_session_start("s1", shell="/bin/zsh", now=0.0)
        engine.on_chunk("s1", "⠋ Running Bash tool", 0.0)
        before = engine.get_session("s1").model_dump()
        engine.get_session_view("s1")
        engine.get_session_view("s1")
        assert engine.get_session("s1").model_dump() == before

    def test_assistant_view(self, engine):
        engine.on_session_start("s1", now=0.0)
        engine.on_chunk("s1", "⠋ Running Bash tool", 0.0)
        view = engine.get_session_view("s1")
        assert view.assistant_name == "Claude Code"
        assert view.assistant_state == "working"
        assert view.assistant_label == "Working"
        assert view.spinner_phase == 0
        assert view.status_text == "Claude Code: Working"

    def test_unknown_view(self, engine):
        assert engine.get_session_view("ghost") is None
