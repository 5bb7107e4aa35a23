"""Pattern registries for cwd extraction and output-type classification."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from urllib.parse import unquote

from termsense.logging_config import get_logger
from termsense.models import OutputType

logger = get_logger(__name__)

# Regex to strip ANSI escape codes from terminal output
_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]|\x1b\].*?(?:\x07|\x1b\\)|\x1b\[.*?[@-~]")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    return _ANSI_RE.sub("", text)


def compile_patterns(raw_patterns: Iterable[str], flags: int = 0) -> list[re.Pattern]:
    """Compile a list of regex strings, skipping invalid ones."""
    compiled = []
    for pat_str in raw_patterns:
        try:
            compiled.append(re.compile(pat_str, flags))
        except re.error as e:
            logger.warning(f"Skipping invalid pattern {pat_str!r}: {e}")
    return compiled


# ── CWD patterns ────────────────────────────────────────────


@dataclass(frozen=True)
class CwdPattern:
    """One way of spotting a working directory in terminal text.

    The regex must have exactly one capture group holding the candidate path.
    ``transform`` normalizes the candidate, ``skip`` rejects the normalized
    path. Higher ``priority`` wins when several patterns match.
    """

    name: str
    regex: re.Pattern
    priority: int
    description: str = ""
    transform: Callable[[str], str] | None = None
    skip: Callable[[str], bool] | None = None


_SYSTEM_DIR_RE = re.compile(r"\\windows\\|\\system32\\|\\program files", re.IGNORECASE)
_DRIVE_PATH_RE = re.compile(r"^/([a-z])(?:/|$)", re.IGNORECASE)
_URL_DRIVE_PATH_RE = re.compile(r"^/([a-z]):(?:/|$)", re.IGNORECASE)

# One SGR colour/attribute sequence, e.g. \x1b[0m or \x1b[01;34m
_SGR = r"(?:\x1b\[[0-9;]*m)"


def resolve_home() -> str:
    """Home directory as the shell sees it (USERPROFILE first, then HOME)."""
    return os.environ.get("USERPROFILE") or os.environ.get("HOME") or ""


def _is_windows_style(path: str) -> bool:
    return "\\" in path or re.match(r"^[A-Za-z]:", path) is not None


def drive_path_to_native(path: str) -> str:
    """Convert a POSIX-style drive path (``/c/Users``) to ``C:\\Users``."""
    m = _DRIVE_PATH_RE.match(path)
    if not m:
        return path
    rest = path[2:] or "/"
    return m.group(1).upper() + ":" + rest.replace("/", "\\")


def expand_home(path: str) -> str:
    """Replace a leading ``~`` with the home directory in the home's own style."""
    home = resolve_home()
    if path.startswith("~"):
        expanded = home + path[1:]
    else:
        expanded = path
    if _is_windows_style(home):
        return expanded.replace("/", "\\")
    return expanded.replace("\\", "/")


def osc7_to_path(path: str) -> str:
    """Decode an OSC 7 ``file://`` path and convert drive forms to native."""
    path = unquote(path)
    m = _URL_DRIVE_PATH_RE.match(path)
    if m:
        rest = path[3:] or "/"
        return m.group(1).upper() + ":" + rest.replace("/", "\\")
    return drive_path_to_native(path)


def is_system_dir(path: str) -> bool:
    """True for paths that look like a shell installation rather than a cwd."""
    return _SYSTEM_DIR_RE.search(path) is not None


CWD_PATTERNS: list[CwdPattern] = [
    CwdPattern(
        name="OSC 7",
        description="Standard terminal cwd escape sequence",
        regex=re.compile(r"\x1b\]7;file://[^/\x07\x1b]*([^\x07\x1b]+)(?:\x07|\x1b\\)"),
        priority=100,
        transform=osc7_to_path,
    ),
    CwdPattern(
        name="OSC 9;9",
        description="Windows Terminal cwd escape sequence",
        regex=re.compile(r"\x1b\]9;9;\"?([^\x07\x1b\"]+)\"?(?:\x07|\x1b\\)"),
        priority=95,
    ),
    CwdPattern(
        name="PS Prompt",
        description='PowerShell "PS path>" prompt',
        regex=re.compile(r"PS\s+([A-Za-z]:\\[^\r\n>]*)>"),
        priority=90,
    ),
    CwdPattern(
        name="MINGW",
        description="Git Bash MINGW prompt with path",
        regex=re.compile(r"MINGW\d*\s+(/[a-z](?:/[^\s$]*)?)", re.IGNORECASE),
        priority=85,
        transform=drive_path_to_native,
    ),
    CwdPattern(
        name="CMD Prompt",
        description='CMD "path>" prompt',
        regex=re.compile(r"^([A-Za-z]:\\[^\r\n>]*)>", re.MULTILINE),
        priority=80,
        skip=is_system_dir,
    ),
    CwdPattern(
        name="Directory Output",
        description='PowerShell Get-ChildItem "Directory:" header',
        regex=re.compile(r"Directory:\s*([A-Za-z]:\\[^\r\n\x1b]+)"),
        priority=70,
    ),
    CwdPattern(
        name="POSIX Prompt",
        description="bash/zsh user@host:path$ prompt",
        regex=re.compile(
            rf"[\w.-]+{_SGR}*@{_SGR}*[\w.-]+{_SGR}*:{_SGR}*((?:~|/)[^\s\x1b$#]*){_SGR}*[$#]"
        ),
        priority=65,
        transform=expand_home,
    ),
    CwdPattern(
        name="Tilde Prompt",
        description="Colored prompt segment with a ~ path (Oh My Posh, Starship)",
        regex=re.compile(r"\x1b\[[0-9;]*m\s*(~(?:[\\/][^\s\x1b❯>$#]*)?)\s*\x1b"),
        priority=60,
        transform=expand_home,
    ),
    CwdPattern(
        name="Full Windows Path",
        description="Colored prompt segment with a full Windows path",
        regex=re.compile(r"\x1b\[[0-9;]*m\s*([A-Za-z]:\\[^\s\x1b❯>$#]*)"),
        priority=50,
        skip=is_system_dir,
    ),
    CwdPattern(
        name="Unix Drive Path",
        description="Git Bash /c/path style path",
        regex=re.compile(
            r"(?:^|\s|\x1b\[[0-9;]*m)(/[a-z]/[^\s\x1b❯>$#]*)",
            re.IGNORECASE | re.MULTILINE,
        ),
        priority=40,
        transform=drive_path_to_native,
    ),
]


# ── Output-type patterns ────────────────────────────────────


@dataclass
class OutputTypePattern:
    """Compiled patterns for one output category."""

    output_type: OutputType
    label: str
    color: str
    patterns: list[re.Pattern] = field(default_factory=list)

    def matches(self, text: str) -> bool:
        """Check if text matches any of this category's patterns."""
        return any(p.search(text) for p in self.patterns)


# Ordered: the first matching category wins.
OUTPUT_TYPE_PATTERNS: list[OutputTypePattern] = [
    OutputTypePattern(
        output_type=OutputType.ERROR,
        label="Error",
        color="#f38ba8",
        patterns=compile_patterns([
            r"\x1b\[(?:[0-9;]*;)?(?:31|91)m",  # red foreground
            r"(?i)\b(?:error|fatal|exception|traceback)\b",
            r"(?i)\bfailed\b|\bfailure\b",
            r"(?i)command not found|no such file or directory|permission denied",
        ]),
    ),
    OutputTypePattern(
        output_type=OutputType.WARNING,
        label="Warning",
        color="#f9e2af",
        patterns=compile_patterns([
            r"\x1b\[(?:[0-9;]*;)?(?:33|93)m",  # yellow foreground
            r"(?i)\bwarn(?:ing)?\b",
            r"(?i)\bdeprecat(?:ed|ion)\b",
        ]),
    ),
    OutputTypePattern(
        output_type=OutputType.SUCCESS,
        label="Success",
        color="#a6e3a1",
        patterns=compile_patterns([
            r"\x1b\[(?:[0-9;]*;)?(?:32|92)m",  # green foreground
            r"(?i)\b(?:success(?:ful(?:ly)?)?|passed|completed?|done)\b",
            r"✓|✔",
        ]),
    ),
    OutputTypePattern(
        output_type=OutputType.PROGRESS,
        label="In Progress",
        color="#89b4fa",
        patterns=compile_patterns([
            r"\b\d{1,3}(?:\.\d+)?%",
            r"\[[=#>\- ]{3,}\]",
            r"[█▓▒░]{2,}",
            r"(?i)\b(?:downloading|installing|building|compiling|loading)\b",
        ]),
    ),
]
