"""CWD extraction — finds the most trustworthy working directory in buffered text."""

from __future__ import annotations

import re
from collections.abc import Sequence

from termsense.engine.patterns import CWD_PATTERNS, CwdPattern, is_system_dir
from termsense.logging_config import get_logger
from termsense.models import CwdCandidate

logger = get_logger(__name__)

_EXECUTABLE_RE = re.compile(r"\.(exe|cmd|bat|com|ps1)$", re.IGNORECASE)
_TITLE_MINGW_RE = re.compile(r"MINGW\d*:?\s*(/[a-z](?:/\S*)?)", re.IGNORECASE)
_TITLE_WINDOWS_RE = re.compile(r"([A-Za-z]:\\[^\r\n]*)")
_TITLE_UNIX_RE = re.compile(r"(/\S+)")
_TITLE_SYSTEM_RE = re.compile(
    r"\\windows\\|\\program files|\\windowspowershell\\|\\system32\\|\\git\\bin"
    r"|\\appdata\\local\\programs\\",
    re.IGNORECASE,
)


class CwdExtractor:
    """
    Applies the cwd pattern registry to buffered terminal text.

    Every pattern is tried against the whole text. Each pattern contributes at
    most one candidate (its last match, i.e. the most recent prompt). The
    surviving candidate with the highest priority wins; ties keep registry
    order.
    """

    def __init__(self, patterns: Sequence[CwdPattern] | None = None):
        self.patterns = list(CWD_PATTERNS if patterns is None else patterns)

    def candidates(self, text: str) -> list[CwdCandidate]:
        """All non-skipped candidates, best first."""
        if not text:
            return []

        found: list[CwdCandidate] = []
        for pattern in self.patterns:
            candidate = self._match(pattern, text)
            if candidate is not None:
                found.append(candidate)

        # sorted() is stable, so equal priorities keep registry order
        return sorted(found, key=lambda c: c.priority, reverse=True)

    def extract(self, text: str) -> CwdCandidate | None:
        """Return the best cwd candidate in ``text``, or None."""
        found = self.candidates(text)
        if not found:
            return None
        best = found[0]
        logger.debug(f"cwd candidate [{best.pattern_name}]: {best.path}")
        return best

    def _match(self, pattern: CwdPattern, text: str) -> CwdCandidate | None:
        last = None
        for last in pattern.regex.finditer(text):
            pass
        if last is None:
            return None

        raw = (last.group(1) or "").strip()
        if not raw:
            return None

        path = pattern.transform(raw) if pattern.transform else raw
        if not path:
            return None
        if pattern.skip and pattern.skip(path):
            logger.debug(f"cwd candidate [{pattern.name}] skipped: {path}")
            return None

        return CwdCandidate(path=path, pattern_name=pattern.name, priority=pattern.priority)


def extract_path_from_title(title: str) -> str:
    """
    Pull a directory out of a terminal title, or return "".

    Git Bash titles (``MINGW64:/c/Users/name``) carry the real cwd. Windows
    paths are only trusted when they do not point at an executable or a
    system/program directory. Otherwise any absolute POSIX path except ``/``.
    """
    if not title:
        return ""

    m = _TITLE_MINGW_RE.search(title)
    if m:
        unix_path = m.group(1)
        return unix_path[1].upper() + ":" + (unix_path[2:] or "/")

    m = _TITLE_WINDOWS_RE.search(title)
    if m:
        path = m.group(1).strip()
        if _EXECUTABLE_RE.search(path) or _TITLE_SYSTEM_RE.search(path) or is_system_dir(path):
            return ""
        return path

    m = _TITLE_UNIX_RE.search(title)
    if m and m.group(1) != "/":
        return m.group(1)

    return ""
