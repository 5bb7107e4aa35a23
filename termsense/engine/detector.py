"""Assistant detection engine — binds sessions to assistants and tracks their state."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from termsense.engine.assistants import AssistantDefinition, AssistantRegistry
from termsense.logging_config import get_logger
from termsense.models import AssistantState, SessionRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class StateChange:
    """Emitted when an accepted transition changes a session's assistant state."""

    session_id: str
    assistant_id: str
    old_state: str
    new_state: str
    reason: str  # "spinner" | "pattern" | "spinner_timeout" | "idle_timeout"
    timestamp: float


@dataclass(frozen=True)
class Transition:
    """A proposed state transition, before debouncing."""

    state: str
    reason: str
    spinner_phase: Optional[int] = None


def detect_spinner_phase(assistant: AssistantDefinition, text: str) -> Optional[int]:
    """Spinner phase for ``text`` under ``assistant``'s glyph set, or None."""
    return assistant.spinner_phase(text)


class AssistantDetector:
    """
    Per-session assistant state machine.

    For a bound session every chunk is evaluated in precedence order:
    spinner glyph (forces working), then the assistant's state patterns in
    declared order, then the silence timeouts. Any resulting transition is
    dropped if it comes less than ``state_debounce`` after the previous
    accepted one.
    """

    def __init__(
        self,
        registry: AssistantRegistry,
        on_state_change: Optional[Callable[[StateChange], None]] = None,
    ):
        self.registry = registry
        self.on_state_change = on_state_change

    # ── Binding ──────────────────────────────────────────────

    def bind(self, record: SessionRecord, chunk: str, now: float) -> bool:
        """Bind an unbound session if any assistant recognizes the chunk or title."""
        if record.ai_assistant_id is not None:
            return False

        assistant_id = self.registry.match_chunk(chunk) if chunk else None
        if assistant_id is None:
            assistant_id = self.registry.match_title(record.title)
        if assistant_id is None:
            return False

        record.bind_assistant(assistant_id, now)
        logger.info(
            f"Session {record.session_id} bound to {self.registry.get_name(assistant_id)}"
        )
        return True

    # ── Per-chunk update ─────────────────────────────────────

    def update(self, record: SessionRecord, chunk: str, now: float) -> bool:
        """Feed one chunk. Returns True if the record changed."""
        if not chunk:
            return False

        dirty = False
        if record.ai_assistant_id is None:
            if not self.bind(record, chunk, now):
                return False
            dirty = True

        assistant = self.registry.get(record.ai_assistant_id)
        if assistant is None:
            logger.warning(
                f"Session {record.session_id} bound to unknown assistant {record.ai_assistant_id}"
            )
            return dirty

        transition = self.evaluate(assistant, record, chunk, now)
        if transition is not None and self.apply(assistant, record, transition, now):
            dirty = True

        # Silence is measured from the last chunk, whether or not it changed state
        record.last_activity_time = now
        return dirty

    def evaluate(
        self,
        assistant: AssistantDefinition,
        record: SessionRecord,
        chunk: str,
        now: float,
    ) -> Optional[Transition]:
        """Work out which transition (if any) a chunk asks for."""
        phase = assistant.spinner_phase(chunk)
        if phase is not None:
            return Transition(AssistantState.WORKING.value, "spinner", phase)

        for state in assistant.active_states():
            if state.matches(chunk):
                return Transition(state.name, "pattern")

        return self.timeout_transition(assistant, record, now)

    def timeout_transition(
        self,
        assistant: AssistantDefinition,
        record: SessionRecord,
        now: float,
    ) -> Optional[Transition]:
        """Transition implied by silence alone (shared with the decay sweeper)."""
        if record.last_activity_time is None:
            return None

        silence = now - record.last_activity_time
        timing = assistant.timing

        if (
            record.assistant_state == AssistantState.WORKING.value
            and silence > timing.spinner_idle_timeout
        ):
            return Transition(AssistantState.WAITING.value, "spinner_timeout")

        if silence > timing.idle_timeout and record.assistant_state != AssistantState.IDLE.value:
            return Transition(AssistantState.IDLE.value, "idle_timeout")

        return None

    # ── Applying transitions ─────────────────────────────────

    def apply(
        self,
        assistant: AssistantDefinition,
        record: SessionRecord,
        transition: Transition,
        now: float,
    ) -> bool:
        """Accept a transition unless debounced. Returns True if the record changed."""
        last_change = record.last_state_change_time
        if last_change is not None and now - last_change < assistant.timing.state_debounce:
            # Spinner animation still advances while the state is held
            if (
                transition.spinner_phase is not None
                and record.assistant_state == AssistantState.WORKING.value
                and record.spinner_phase != transition.spinner_phase
            ):
                record.spinner_phase = transition.spinner_phase
                return True
            return False

        old_state = record.assistant_state
        record.assistant_state = transition.state
        if transition.spinner_phase is not None:
            record.spinner_phase = transition.spinner_phase
        elif transition.state != AssistantState.WORKING.value:
            record.spinner_phase = None
        record.last_state_change_time = now

        if old_state != transition.state:
            logger.debug(
                f"{assistant.name} state {record.session_id}: "
                f"{old_state} -> {transition.state} ({transition.reason})"
            )
            if self.on_state_change is not None:
                self.on_state_change(
                    StateChange(
                        session_id=record.session_id,
                        assistant_id=assistant.id,
                        old_state=old_state,
                        new_state=transition.state,
                        reason=transition.reason,
                        timestamp=now,
                    )
                )
        return True
