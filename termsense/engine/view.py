"""Read-only projection of session records for renderers."""

from __future__ import annotations

import ntpath
import re

from termsense.engine.assistants import AssistantRegistry
from termsense.engine.cwd import extract_path_from_title
from termsense.models import ActivityType, OutputType, SessionRecord, SessionView

ROBOT_ICON = "\ueb99"  # nerd-font robot

SHELL_ICONS: dict[str, dict[str, str]] = {
    "powershell": {"icon": "svg:terminal", "color": "#5391FE"},
    "pwsh": {"icon": "svg:terminal", "color": "#5391FE"},
    "bash": {"icon": "svg:terminal", "color": "#89e051"},
    "zsh": {"icon": "svg:terminal", "color": "#89e051"},
    "fish": {"icon": "svg:terminal", "color": "#fab387"},
    "cmd": {"icon": "svg:terminal-square", "color": "#cdd6f4"},
    "node": {"icon": "svg:hexagon", "color": "#8CC84B"},
    "python": {"icon": "svg:code", "color": "#FFD43B"},
    "ruby": {"icon": "svg:gem", "color": "#CC342D"},
    "default": {"icon": "svg:terminal", "color": "#89b4fa"},
}

# Checked in order against the shell path
_SHELL_KEYS = ["powershell", "pwsh", "bash", "zsh", "fish", "cmd", "node", "python"]

# Checked in order against the title: (substrings, icon key)
_TITLE_HINTS = [
    (("node",), "node"),
    (("python", "pip"), "python"),
    (("ruby", "gem"), "ruby"),
]

ACTIVITY_TYPE_INFO: dict[ActivityType, dict[str, str]] = {
    ActivityType.COMMAND: {"label": "Running", "color": "#a6e3a1"},
    ActivityType.OUTPUT: {"label": "Output", "color": "#94e2d5"},
    ActivityType.TYPING: {"label": "Typing", "color": "#89b4fa"},
    ActivityType.IDLE: {"label": "Idle", "color": "#6c7086"},
}

OUTPUT_TYPE_LABELS: dict[OutputType, str] = {
    OutputType.ERROR: "Error",
    OutputType.WARNING: "Warning",
    OutputType.SUCCESS: "Success",
    OutputType.PROGRESS: "In Progress",
}

_WINDOWS_ROOT_RE = re.compile(r"^[A-Za-z]:/?$")
_DRIVE_RE = re.compile(r"^[A-Za-z]:$")


def shorten_path(full_path: str) -> str:
    """Leaf directory, prefixed with ``../`` when it has a parent. Roots stay as-is."""
    if not full_path:
        return ""

    normalized = full_path.replace("\\", "/")
    if _WINDOWS_ROOT_RE.match(normalized) or full_path == "/":
        return full_path

    parts = [p for p in normalized.split("/") if p and not _DRIVE_RE.match(p)]
    leaf = parts[-1] if parts else full_path
    if len(parts) > 1:
        return "../" + leaf
    return leaf


def get_process_name(record: SessionRecord) -> str:
    """Title up to ``" - "``, else the shell's basename without ``.exe``."""
    if record.title:
        if " - " in record.title:
            return record.title.split(" - ")[0].strip()
        return record.title
    if record.shell:
        name = ntpath.basename(record.shell.replace("/", "\\"))
        if name.lower().endswith(".exe"):
            name = name[:-4]
        return name
    return "shell"


def get_shell_info(record: SessionRecord, assistant_color: str | None = None) -> dict[str, str]:
    """Icon and color for the session's shell; assistant sessions get the robot."""
    if record.ai_assistant_id is not None:
        return {"icon": ROBOT_ICON, "color": assistant_color or "#f5a623"}

    shell = record.shell.lower()
    for key in _SHELL_KEYS:
        if key in shell:
            return SHELL_ICONS[key]

    title = record.title.lower()
    for hints, key in _TITLE_HINTS:
        if any(h in title for h in hints):
            return SHELL_ICONS[key]

    return SHELL_ICONS["default"]


def build_session_view(
    record: SessionRecord,
    registry: AssistantRegistry,
    foreground: bool = False,
) -> SessionView:
    """Project a record into a SessionView. Never mutates ``record``."""
    cwd = record.cwd or extract_path_from_title(record.title)
    activity = ACTIVITY_TYPE_INFO.get(record.activity_type, ACTIVITY_TYPE_INFO[ActivityType.IDLE])

    view = SessionView(
        session_id=record.session_id,
        pid=record.pid,
        process_name=get_process_name(record),
        cwd=cwd,
        short_cwd=shorten_path(cwd),
        git_branch=record.git.branch,
        git_dirty=record.git.dirty,
        has_activity=record.has_activity and not foreground,
        activity_type=record.activity_type,
        activity_label=activity["label"],
        activity_color=activity["color"],
        activity_intensity=record.activity_intensity,
        output_type=record.last_output_type,
        output_label=(
            OUTPUT_TYPE_LABELS[record.last_output_type] if record.last_output_type else None
        ),
    )

    assistant = registry.get(record.ai_assistant_id)
    if record.ai_assistant_id is not None:
        if assistant is not None:
            info = assistant.state_info(record.assistant_state)
            view.assistant_name = assistant.name
            view.assistant_label = info.label
            view.assistant_color = info.color
            view.assistant_icon = info.icon
            view.assistant_animation = info.animation
        else:
            view.assistant_name = record.ai_assistant_id
            view.assistant_label = "Idle"
        view.assistant_id = record.ai_assistant_id
        view.assistant_state = record.assistant_state
        view.spinner_phase = record.spinner_phase
        view.status_text = f"{view.assistant_name}: {view.assistant_label}"
    elif record.activity_type != ActivityType.IDLE:
        view.status_text = record.activity_type.value

    shell = get_shell_info(record, assistant.color if assistant else None)
    view.shell_icon = shell["icon"]
    view.shell_color = shell["color"]
    return view
