"""Git status trigger and the optional system collaborators (git, process cwd)."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from termsense.engine.buffer import Scheduler, TimerHandle
from termsense.logging_config import get_logger
from termsense.models import GitInfo

logger = get_logger(__name__)

GitQuery = Callable[[str], GitInfo]


def _run_git(args: list[str], cwd: str, timeout: float) -> Optional[str]:
    """Run a git command, returning stdout or None on any failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"git {args[0]} timed out in {cwd}")
        return None
    except OSError as e:
        logger.debug(f"Could not run git in {cwd}: {e}")
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def query_git_status(path: str, timeout: float = 5.0) -> GitInfo:
    """Branch and dirty-file count for ``path``. Non-repos give ``GitInfo()``."""
    if not path or not os.path.isdir(path):
        return GitInfo()

    if _run_git(["rev-parse", "--is-inside-work-tree"], path, timeout) is None:
        return GitInfo()

    branch = _run_git(["symbolic-ref", "--short", "HEAD"], path, timeout)
    if branch is None:
        branch = _run_git(["rev-parse", "--short", "HEAD"], path, timeout)

    status = _run_git(
        ["status", "--porcelain", "--ignore-submodules", "-uno"], path, timeout
    )
    dirty = len(status.strip().splitlines()) if status and status.strip() else 0

    return GitInfo(branch=(branch or "").strip(), dirty=dirty)


def lookup_process_cwd(pid: Optional[int], timeout: float = 2.0) -> str:
    """Current directory of a process, or "" when it can't be determined."""
    if not pid:
        return ""

    proc_link = Path(f"/proc/{pid}/cwd")
    try:
        return os.readlink(proc_link)
    except OSError:
        pass

    try:
        result = subprocess.run(
            ["lsof", "-a", "-p", str(pid), "-d", "cwd", "-Fn"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Could not look up cwd for pid {pid}: {e}")
        return ""

    for line in result.stdout.splitlines():
        if line.startswith("n"):
            return line[1:].strip()
    return ""


class GitTrigger:
    """
    Debounced, per-session git status refresh.

    ``request`` (re)starts the session's timer; when it fires the query runs
    once and ``on_result`` receives its answer. A failing query reports the
    neutral ``GitInfo()`` instead of raising.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        query: GitQuery,
        on_result: Callable[[str, str, GitInfo], None],
        debounce_seconds: float = 0.5,
    ):
        self.scheduler = scheduler
        self.query = query
        self.on_result = on_result
        self.debounce_seconds = debounce_seconds
        self._timers: dict[str, TimerHandle] = {}

    def request(self, session_id: str, path: str) -> None:
        if not path:
            return
        self.cancel(session_id)
        self._timers[session_id] = self.scheduler.call_later(
            self.debounce_seconds,
            lambda now, sid=session_id, p=path: self._fire(sid, p),
        )

    def cancel(self, session_id: str) -> None:
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def pending(self, session_id: str) -> bool:
        return session_id in self._timers

    def _fire(self, session_id: str, path: str) -> None:
        self._timers.pop(session_id, None)
        try:
            info = self.query(path)
        except Exception as e:
            logger.warning(f"git query failed for {path}: {e}")
            info = GitInfo()
        if not isinstance(info, GitInfo):
            info = GitInfo()
        self.on_result(session_id, path, info)
