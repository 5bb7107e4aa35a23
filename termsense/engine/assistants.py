"""AI assistant definitions — loading and lookup."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from termsense.config import (
    BUILTIN_ASSISTANTS_FILE,
    USER_ASSISTANTS_FILE,
    TimingConfig,
    load_yaml,
)
from termsense.engine.patterns import compile_patterns
from termsense.logging_config import AssistantDefinitionError, get_logger
from termsense.models import AssistantState

logger = get_logger(__name__)

# Display metadata for the core states when an assistant does not override it
_CORE_STATE_DISPLAY: dict[str, dict[str, Any]] = {
    AssistantState.IDLE.value: {"label": "Idle", "color": "#6c7086", "animation": None},
    AssistantState.WORKING.value: {
        "label": "Working",
        "color": "#a6e3a1",
        "animation": "glyph-pulse",
    },
    AssistantState.THINKING.value: {
        "label": "Thinking",
        "color": "#cba6f7",
        "animation": "glyph-pulse-slow",
    },
    AssistantState.WAITING.value: {"label": "Waiting", "color": "#f9e2af", "animation": None},
}

DEFAULT_ICON = "✦"


@dataclass
class StateDefinition:
    """A named assistant state with its patterns and display metadata."""

    name: str
    label: str
    color: str
    icon: str = DEFAULT_ICON
    animation: str | None = None
    patterns: list[re.Pattern] = field(default_factory=list)

    def matches(self, text: str) -> bool:
        """Check if text matches any of this state's patterns."""
        return any(p.search(text) for p in self.patterns)


@dataclass
class AssistantDefinition:
    """Everything needed to recognize one assistant and track its state."""

    id: str
    name: str
    color: str = "#f5a623"
    icon: str = DEFAULT_ICON
    spinner: str = ""
    text_patterns: list[re.Pattern] = field(default_factory=list)
    title_patterns: list[re.Pattern] = field(default_factory=list)
    ui_patterns: list[re.Pattern] = field(default_factory=list)
    tool_patterns: list[re.Pattern] = field(default_factory=list)
    states: dict[str, StateDefinition] = field(default_factory=dict)
    timing: TimingConfig = field(default_factory=TimingConfig)

    def __post_init__(self) -> None:
        for name in AssistantState:
            if name.value not in self.states:
                self.states[name.value] = _default_state(name.value, self.icon)

    def spinner_phase(self, text: str) -> int | None:
        """Index of the most recent spinner glyph in ``text``, or None."""
        if not self.spinner:
            return None
        for ch in reversed(text):
            idx = self.spinner.find(ch)
            if idx != -1:
                return idx
        return None

    def matches(self, text: str) -> bool:
        """Check chunk text against spinner, text, UI and tool patterns."""
        if self.spinner_phase(text) is not None:
            return True
        return any(
            p.search(text)
            for p in (*self.text_patterns, *self.ui_patterns, *self.tool_patterns)
        )

    def matches_title(self, title: str) -> bool:
        return bool(title) and any(p.search(title) for p in self.title_patterns)

    def active_states(self) -> list[StateDefinition]:
        """States that can be entered by pattern, in declared order."""
        return [s for s in self.states.values() if s.name != AssistantState.IDLE.value]

    def state_info(self, state: str | None) -> StateDefinition:
        """Display metadata for a state. Unknown names fall back to idle."""
        if state and state in self.states:
            return self.states[state]
        return self.states[AssistantState.IDLE.value]

    @classmethod
    def from_dict(
        cls,
        assistant_id: str,
        data: dict[str, Any],
        default_timing: TimingConfig | None = None,
    ) -> AssistantDefinition:
        """Build a definition from its YAML mapping."""
        if not isinstance(data, dict):
            raise AssistantDefinitionError(f"Assistant {assistant_id!r} must be a mapping")

        icon = str(data.get("icon", DEFAULT_ICON))
        spinner = data.get("spinner") or ""
        if not isinstance(spinner, str):
            raise AssistantDefinitionError(f"Assistant {assistant_id!r}: spinner must be a string")

        raw_states = data.get("states") or {}
        if not isinstance(raw_states, dict):
            raise AssistantDefinitionError(f"Assistant {assistant_id!r}: states must be a mapping")

        states: dict[str, StateDefinition] = {}
        for state_name, state_data in raw_states.items():
            state_data = state_data or {}
            if not isinstance(state_data, dict):
                raise AssistantDefinitionError(
                    f"Assistant {assistant_id!r}: state {state_name!r} must be a mapping"
                )
            base = _default_state(str(state_name), icon)
            states[str(state_name)] = StateDefinition(
                name=str(state_name),
                label=str(state_data.get("label", base.label)),
                color=str(state_data.get("color", base.color)),
                icon=str(state_data.get("icon", icon)),
                animation=state_data.get("animation", base.animation),
                patterns=compile_patterns(_as_list(state_data.get("patterns"))),
            )

        try:
            timing = _merge_timing(default_timing or TimingConfig(), data.get("timing"))
        except (TypeError, ValidationError) as e:
            raise AssistantDefinitionError(
                f"Assistant {assistant_id!r}: invalid timing: {e}"
            ) from e

        return cls(
            id=assistant_id,
            name=str(data.get("name", assistant_id)),
            color=str(data.get("color", "#f5a623")),
            icon=icon,
            spinner=spinner,
            text_patterns=compile_patterns(_as_list(data.get("text_patterns"))),
            title_patterns=compile_patterns(_as_list(data.get("title_patterns"))),
            ui_patterns=compile_patterns(_as_list(data.get("ui_patterns"))),
            tool_patterns=compile_patterns(_as_list(data.get("tool_patterns"))),
            states=states,
            timing=timing,
        )


@dataclass
class AssistantRegistry:
    """Registry of all loaded assistants, in detection order."""

    assistants: dict[str, AssistantDefinition] = field(default_factory=dict)

    def add(self, definition: AssistantDefinition) -> None:
        self.assistants[definition.id] = definition

    def get(self, assistant_id: str | None) -> AssistantDefinition | None:
        if assistant_id is None:
            return None
        return self.assistants.get(assistant_id)

    def match_chunk(self, text: str) -> str | None:
        """First assistant whose chunk patterns match. Returns its id or None."""
        for key, assistant in self.assistants.items():
            if assistant.matches(text):
                return key
        return None

    def match_title(self, title: str) -> str | None:
        """First assistant whose title patterns match. Returns its id or None."""
        for key, assistant in self.assistants.items():
            if assistant.matches_title(title):
                return key
        return None

    def get_name(self, assistant_id: str) -> str:
        """Get the display name for an assistant id."""
        if assistant_id in self.assistants:
            return self.assistants[assistant_id].name
        return assistant_id

    def __len__(self) -> int:
        return len(self.assistants)

    def __iter__(self):
        return iter(self.assistants.values())


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _default_state(name: str, icon: str = DEFAULT_ICON) -> StateDefinition:
    display = _CORE_STATE_DISPLAY.get(
        name, {"label": name.replace("_", " ").title(), "color": "#6c7086", "animation": None}
    )
    return StateDefinition(name=name, icon=icon, **display)


def _merge_timing(base: TimingConfig, raw: dict[str, Any] | None) -> TimingConfig:
    if not raw:
        return base
    return TimingConfig(**{**base.model_dump(), **raw})


def load_assistants(
    default_timing: TimingConfig | None = None,
    builtin_path: Path = BUILTIN_ASSISTANTS_FILE,
    user_path: Path | None = USER_ASSISTANTS_FILE,
) -> AssistantRegistry:
    """Load assistants from the built-in definitions and user overrides.

    Built-in definitions must be valid. A broken user definition is logged
    and skipped so the rest of the registry still loads.
    """
    registry = AssistantRegistry()

    builtin = load_yaml(builtin_path)
    user = load_yaml(user_path) if user_path is not None else {}

    # builtin defaults < config.yaml timing < user overrides
    timing = _merge_timing(TimingConfig(), (builtin.get("defaults") or {}).get("timing"))
    if default_timing is not None:
        timing = _merge_timing(timing, default_timing.model_dump(exclude_unset=True))
    try:
        timing = _merge_timing(timing, (user.get("overrides") or {}).get("timing"))
    except (AttributeError, TypeError, ValidationError) as e:
        logger.warning(f"Ignoring invalid timing overrides in {user_path}: {e}")

    for key, data in (builtin.get("assistants") or {}).items():
        registry.add(AssistantDefinition.from_dict(str(key), data, timing))

    for key, data in (user.get("custom_assistants") or {}).items():
        try:
            registry.add(AssistantDefinition.from_dict(str(key), data, timing))
        except AssistantDefinitionError as e:
            logger.warning(f"Skipping user assistant {key!r}: {e}")

    logger.debug(f"Loaded {len(registry)} assistant definitions")
    return registry
