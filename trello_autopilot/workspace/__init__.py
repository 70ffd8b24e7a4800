"""
Version control adapter.

Every operation here is optional from the orchestrator's point of view:
each one raises WorkspaceError on failure and the caller decides whether
that matters. All commands run against the single checkout at repo_path,
which is why cards are processed one at a time.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import Protocol

from loguru import logger

from trello_autopilot.config_loader import GitConfig
from trello_autopilot.models import BugRecord

# path/to/file.ext, optionally followed by :line
_PATH_PATTERN = re.compile(r"(?<![\w/.-])((?:[\w.-]+/)*[\w.-]+\.[A-Za-z0-9]{1,8})(?::\d+)?")


class WorkspaceError(Exception):
    pass


class VersionControl(Protocol):
    def create_branch(self, name: str) -> None: ...

    def get_diff(self) -> str: ...

    def commit_and_push(self, branch: str, message: str) -> None: ...

    def create_pr(self, branch: str, title: str, body: str) -> str: ...

    def blame(self, paths: list[str]) -> str: ...


class GitWorkspace:
    """
    git / gh operations on one repository checkout.
    """

    def __init__(self, repo_path: Path, remote: str = "origin", timeout: float = 60.0):
        self.repo_path = repo_path.resolve()
        self.remote = remote
        self.timeout = timeout
        self.base_ref: str | None = None

    @classmethod
    def from_config(cls, repo_path: Path, config: GitConfig) -> "GitWorkspace":
        return cls(repo_path, remote=config.remote, timeout=config.timeout)

    def create_branch(self, name: str) -> None:
        """
        Create and check out a new branch; fails if it already exists.
        Remembers the commit it started from so get_diff() covers only
        work done on the branch.
        """
        self.base_ref = None
        base = self._git("rev-parse", "HEAD", capture=True).strip()
        self._git("checkout", "-b", name)
        self.base_ref = base
        logger.info(f"[WORKSPACE] Created branch {name}")

    def get_diff(self) -> str:
        """Diff stat of the changes made since the fix branch was created."""
        if self.base_ref is None:
            # No fix branch: report tracked changes without touching the index
            return self._git("diff", "--stat", "HEAD", capture=True, check=False).strip()

        self._git("add", "-A", check=False)
        # Index against the base also covers commits the agent made itself
        return self._git("diff", "--cached", "--stat", self.base_ref, capture=True, check=False).strip()

    def commit_and_push(self, branch: str, message: str) -> None:
        self._git("add", "-A")

        status = self._git("status", "--porcelain", capture=True)
        if status.strip():
            self._git("commit", "-m", message)
        else:
            logger.info("[WORKSPACE] Nothing to commit.")

        self._git("push", "-u", self.remote, branch)
        logger.info(f"[WORKSPACE] Pushed {branch} to {self.remote}")

    def create_pr(self, branch: str, title: str, body: str) -> str:
        """Create a GitHub PR via gh CLI and return its URL."""
        out = self._run_cmd(
            ["gh", "pr", "create", "--title", title, "--body", body, "--head", branch],
            cwd=self.repo_path,
            timeout=self.timeout,
            capture=True,
        )
        return out.strip()

    def blame(self, paths: list[str]) -> str:
        """
        Blame-style history report: who last touched the files a bug
        mentions, or the most recent commits when it mentions none.
        """
        fmt = "--format=%h (%an %ad) %s"
        if not paths:
            return self._git("log", "-n", "5", fmt, "--date=short", capture=True).strip()

        sections = []
        for path in paths:
            log = self._git("log", "-n", "3", fmt, "--date=short", "--", path, capture=True).strip()
            if log:
                sections.append(f"{path}:\n{log}")
        return "\n\n".join(sections)

    def _git(self, *args: str, check: bool = True, capture: bool = False) -> str:
        return self._run_cmd(["git", *args], cwd=self.repo_path, timeout=self.timeout, check=check, capture=capture)

    @staticmethod
    def _run_cmd(
        cmd: list[str],
        cwd: Path,
        timeout: float = 60.0,
        check: bool = True,
        capture: bool = False,
    ) -> str:
        try:
            result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise WorkspaceError(f"{cmd[0]} failed: {e}")
        if check and result.returncode != 0:
            raise WorkspaceError(f"{cmd[0]} failed: {' '.join(cmd[:3])}\n{result.stderr.strip()}")
        return result.stdout if capture else ""


def mentioned_paths(bug: BugRecord, repo_path: Path, max_paths: int = 5) -> list[str]:
    """Repository files referenced in the bug's text, in order of appearance."""
    texts = [bug.title, bug.description, *(c.text for c in bug.comments)]
    found: list[str] = []
    for text in texts:
        for match in _PATH_PATTERN.finditer(text or ""):
            candidate = match.group(1)
            if candidate in found:
                continue
            if (repo_path / candidate).is_file():
                found.append(candidate)
                if len(found) >= max_paths:
                    return found
    return found
