"""
Test verification.

Runs the configured test command, or one detected from project markers,
and reports pass/fail plus captured output. A repository with no
recognizable test setup passes: missing tests are not a failed fix.
"""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Protocol

from loguru import logger

from trello_autopilot.config_loader import TestsConfig
from trello_autopilot.models import TestResult

NO_TESTS_MESSAGE = "No test framework detected; skipping verification"


class TestRunner(Protocol):
    def run(self, repo_path: Path, command: str | None = None) -> TestResult: ...


def detect_test_command(repo: Path) -> str | None:
    """Auto-detect the test command based on repo contents."""
    if (repo / "Cargo.toml").exists():
        return "cargo test"
    if (repo / "package.json").exists():
        return "npm test"
    if any((repo / marker).exists() for marker in ("pyproject.toml", "setup.py", "setup.cfg", "pytest.ini")):
        return "python -m pytest"
    if (repo / "go.mod").exists():
        return "go test ./..."
    if (repo / "Makefile").exists():
        return "make test"
    return None


class ShellTestRunner:
    def __init__(self, timeout: float = 300.0, output_limit: int = 2000):
        self.timeout = timeout
        self.output_limit = output_limit

    @classmethod
    def from_config(cls, config: TestsConfig) -> "ShellTestRunner":
        return cls(timeout=config.timeout, output_limit=config.output_limit)

    def run(self, repo_path: Path, command: str | None = None) -> TestResult:
        command = command or detect_test_command(repo_path)
        if not command:
            logger.info(f"[TESTS] {NO_TESTS_MESSAGE}")
            return TestResult(passed=True, output=NO_TESTS_MESSAGE)

        logger.info(f"[TESTS] Running: {command}")
        try:
            result = subprocess.run(
                shlex.split(command),
                cwd=repo_path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return TestResult(
                passed=False,
                output=f"Test command timed out after {self.timeout:g}s: {command}",
                command=command,
            )
        except FileNotFoundError:
            return TestResult(passed=False, output=f"Test command not found: {command}", command=command)

        output = "\n".join(part for part in (result.stdout, result.stderr) if part).strip()
        return TestResult(
            passed=result.returncode == 0,
            output=self._tail(output),
            command=command,
        )

    def _tail(self, text: str) -> str:
        if self.output_limit <= 0 or len(text) <= self.output_limit:
            return text
        return "..." + text[-self.output_limit:]
