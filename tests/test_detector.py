"""Tests for the assistant detection engine."""

import pytest

from termsense.engine.assistants import load_assistants
from termsense.engine.detector import AssistantDetector, StateChange, detect_spinner_phase
from termsense.models import SessionRecord

# ── Helpers ─────────────────────────────────────────────────


@pytest.fixture
def changes():
    return []


@pytest.fixture
def detector(changes):
    return AssistantDetector(load_assistants(user_path=None), on_state_change=changes.append)


def make_record(**kwargs) -> SessionRecord:
    return SessionRecord(session_id="s1", started_at=0.0, **kwargs)


def bound_record(detector, assistant_id="claude_code", now=0.0) -> SessionRecord:
    record = make_record()
    record.bind_assistant(assistant_id, now)
    return record


# ── Tests: binding ──────────────────────────────────────────


class TestBinding:
    def test_bind_from_chunk(self, detector):
        record = make_record()
        assert detector.bind(record, "✻ Welcome to Claude Code!", 1.0) is True
        assert record.ai_assistant_id == "claude_code"
        assert record.assistant_state == "idle"
        assert record.last_activity_time == 1.0
        assert record.last_state_change_time is None

    def test_bind_from_title(self, detector):
        record = make_record(title="codex")
        assert detector.bind(record, "", 1.0) is True
        assert record.ai_assistant_id == "codex"

    def test_no_match_leaves_unbound(self, detector, changes):
        record = make_record()
        assert detector.update(record, "ls -la\r\n", 1.0) is False
        assert record.ai_assistant_id is None
        assert record.assistant_state == "idle"
        assert changes == []

    def test_binding_is_permanent(self, detector):
        record = bound_record(detector)
        assert detector.bind(record, "◐ OpenAI Codex", 1.0) is False
        detector.update(record, "◐ OpenAI Codex", 1.0)
        assert record.ai_assistant_id == "claude_code"


# ── Tests: spinner ──────────────────────────────────────────


class TestSpinner:
    def test_spinner_chunk_binds_and_works(self, detector, changes):
        record = make_record()
        assert detector.update(record, "⠋ Running Bash tool", 0.0) is True
        assert record.ai_assistant_id == "claude_code"
        assert record.assistant_state == "working"
        assert record.spinner_phase == 0
        assert changes == [
            StateChange(
                session_id="s1",
                assistant_id="claude_code",
                old_state="idle",
                new_state="working",
                reason="spinner",
                timestamp=0.0,
            )
        ]

    def test_spinner_beats_state_patterns(self, detector):
        record = bound_record(detector)
        detector.update(record, "⠙ Thinking… (esc to interrupt)", 1.0)
        assert record.assistant_state == "working"
        assert record.spinner_phase == 1

    def test_phase_advances_while_debounced(self, detector, changes):
        record = make_record()
        detector.update(record, "⠋ Running", 0.0)
        assert detector.update(record, "⠙ Running", 0.1) is True
        assert record.spinner_phase == 1
        assert record.last_state_change_time == 0.0
        assert len(changes) == 1

    def test_detect_spinner_phase(self, detector):
        codex = detector.registry.get("codex")
        assert detect_spinner_phase(codex, "◑ exec") == 2
        assert detect_spinner_phase(codex, "no glyph") is None


# ── Tests: state patterns ───────────────────────────────────


class TestStatePatterns:
    def test_thinking(self, detector):
        record = bound_record(detector)
        detector.update(record, "✻ Thinking… (esc to interrupt)", 1.0)
        assert record.assistant_state == "thinking"
        assert record.spinner_phase is None

    def test_custom_state(self, detector):
        record = bound_record(detector)
        detector.update(record, "Compacting conversation…", 1.0)
        assert record.assistant_state == "compacting"

    def test_declared_order_wins(self, detector):
        record = bound_record(detector)
        # Matches both thinking and working; thinking is declared first
        detector.update(record, "thinking while processing", 1.0)
        assert record.assistant_state == "thinking"

    def test_waiting(self, detector):
        record = bound_record(detector)
        detector.update(record, "Do you want to proceed?\r\n❯ 1. Yes", 1.0)
        assert record.assistant_state == "waiting"


# ── Tests: debounce ─────────────────────────────────────────


class TestDebounce:
    def test_second_change_within_window_dropped(self, detector, changes):
        record = make_record()
        detector.update(record, "⠋ Running", 0.0)
        assert detector.update(record, "Do you want to proceed?", 0.2) is False
        assert record.assistant_state == "working"
        assert len(changes) == 1

    def test_change_after_window_accepted(self, detector, changes):
        record = make_record()
        detector.update(record, "⠋ Running", 0.0)
        detector.update(record, "Do you want to proceed?", 0.8)
        assert record.assistant_state == "waiting"
        assert record.spinner_phase is None
        assert [c.new_state for c in changes] == ["working", "waiting"]

    def test_same_state_does_not_notify(self, detector, changes):
        record = make_record()
        detector.update(record, "⠋ Running", 0.0)
        assert detector.update(record, "⠹ Running", 1.0) is True
        assert record.spinner_phase == 2
        assert record.last_state_change_time == 1.0
        assert len(changes) == 1


# ── Tests: timeouts ─────────────────────────────────────────


class TestTimeouts:
    def test_working_goes_waiting_after_silence(self, detector, changes):
        record = make_record()
        detector.update(record, "⠋ Running", 0.0)
        detector.update(record, "some plain output", 6.0)
        assert record.assistant_state == "waiting"
        assert changes[-1].reason == "spinner_timeout"

    def test_silence_is_measured_from_last_chunk(self, detector):
        record = make_record()
        detector.update(record, "⠋ Running", 0.0)
        detector.update(record, "plain output", 4.0)
        detector.update(record, "plain output", 8.0)
        assert record.assistant_state == "working"
        assert record.last_activity_time == 8.0

    def test_idle_timeout(self, detector):
        record = bound_record(detector)
        record.assistant_state = "waiting"
        assistant = detector.registry.get("claude_code")
        transition = detector.timeout_transition(assistant, record, 31.0)
        assert transition.state == "idle"
        assert transition.reason == "idle_timeout"

    def test_idle_stays_idle(self, detector):
        record = bound_record(detector)
        assistant = detector.registry.get("claude_code")
        assert detector.timeout_transition(assistant, record, 100.0) is None

    def test_no_activity_yet(self, detector):
        record = make_record(ai_assistant_id="claude_code", assistant_state="working")
        assistant = detector.registry.get("claude_code")
        assert detector.timeout_transition(assistant, record, 100.0) is None

    def test_per_assistant_timeout(self, detector):
        record = bound_record(detector, "aider")
        record.assistant_state = "working"
        aider = detector.registry.get("aider")
        assert detector.timeout_transition(aider, record, 6.0) is None
        assert detector.timeout_transition(aider, record, 9.0).state == "waiting"
