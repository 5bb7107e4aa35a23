"""Shared data models for termsense."""

from __future__ import annotations

import time
from enum import Enum

from pydantic import BaseModel, Field

from termsense.logging_config import SessionError


class ActivityType(str, Enum):
    """What a session's output currently looks like."""

    IDLE = "idle"
    TYPING = "typing"
    OUTPUT = "output"
    COMMAND = "command"


class OutputType(str, Enum):
    """Content category of the most recent output chunk."""

    ERROR = "error"
    WARNING = "warning"
    SUCCESS = "success"
    PROGRESS = "progress"


class AssistantState(str, Enum):
    """Core assistant states. Assistants may declare more."""

    IDLE = "idle"
    WORKING = "working"
    THINKING = "thinking"
    WAITING = "waiting"


class GitInfo(BaseModel):
    """Result of a git status query. The default value is the neutral result."""

    branch: str = ""
    dirty: int = 0


class CwdCandidate(BaseModel):
    """A working directory extracted from terminal text."""

    path: str
    pattern_name: str
    priority: int = 0


class SessionRecord(BaseModel):
    """Mutable classification state for one live terminal session."""

    session_id: str
    pid: int | None = None
    shell: str = ""
    title: str = ""
    cwd: str = ""
    last_output: str = ""
    git: GitInfo = Field(default_factory=GitInfo)
    started_at: float = Field(default_factory=time.time)

    # Unseen activity on background sessions
    has_activity: bool = False
    activity_time: float | None = None

    # Activity
    activity_type: ActivityType = ActivityType.IDLE
    activity_intensity: int = 0
    last_output_time: float | None = None
    output_burst_count: int = 0
    last_output_type: OutputType | None = None
    last_output_type_time: float | None = None

    # Assistant
    ai_assistant_id: str | None = None
    assistant_state: str = AssistantState.IDLE.value
    spinner_phase: int | None = None
    last_activity_time: float | None = None
    last_state_change_time: float | None = None

    @property
    def is_assistant_session(self) -> bool:
        return self.ai_assistant_id is not None

    def bind_assistant(self, assistant_id: str, now: float) -> None:
        """Bind this session to an assistant. The first binding is permanent."""
        if self.ai_assistant_id is not None:
            raise SessionError(
                f"Session {self.session_id} is already bound to {self.ai_assistant_id}"
            )
        self.ai_assistant_id = assistant_id
        self.assistant_state = AssistantState.IDLE.value
        self.spinner_phase = None
        self.last_activity_time = now
        self.last_state_change_time = None


class SessionView(BaseModel):
    """Read-only projection of a session for renderers."""

    session_id: str
    pid: int | None = None
    process_name: str = "shell"
    shell_icon: str = ""
    shell_color: str = ""
    cwd: str = ""
    short_cwd: str = ""
    git_branch: str = ""
    git_dirty: int = 0
    has_activity: bool = False
    activity_type: ActivityType = ActivityType.IDLE
    activity_label: str = "Idle"
    activity_color: str = ""
    activity_intensity: int = 0
    output_type: OutputType | None = None
    output_label: str | None = None
    assistant_id: str | None = None
    assistant_name: str | None = None
    assistant_state: str | None = None
    assistant_label: str | None = None
    assistant_color: str | None = None
    assistant_icon: str | None = None
    assistant_animation: str | None = None
    spinner_phase: int | None = None
    status_text: str = ""
