"""
Coding-agent invocation.

The agent is an opaque external process: it gets a prompt and a working
directory and either returns text or fails. One invocation, no retries.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger

from trello_autopilot.config_loader import AgentConfig

DEFAULT_ARGS = ["-p", "{prompt}", "--output-format", "text"]


class AgentFailure(Exception):
    """The coding agent exited non-zero, timed out, or could not be started."""
    pass


@runtime_checkable
class AgentInvoker(Protocol):
    def invoke(self, prompt: str, working_dir: Path) -> str: ...


class CommandAgent:
    """Runs a CLI coding agent (e.g. `claude -p <prompt>`) in the repository."""

    def __init__(
        self,
        command: str = "claude",
        args: list[str] | None = None,
        timeout: float = 300.0,
    ):
        self.command = command
        self.args = list(args) if args is not None else list(DEFAULT_ARGS)
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: AgentConfig, command: str | None = None) -> "CommandAgent":
        return cls(command=command or config.command, args=config.args, timeout=config.timeout)

    def build_command(self, prompt: str) -> list[str]:
        return [self.command, *(arg.replace("{prompt}", prompt) for arg in self.args)]

    def invoke(self, prompt: str, working_dir: Path) -> str:
        cmd = self.build_command(prompt)
        logger.debug(f"[AGENT] Running {self.command} in {working_dir}")
        try:
            result = subprocess.run(
                cmd,
                cwd=working_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise AgentFailure(f"Agent failed: timed out after {self.timeout:g}s")
        except FileNotFoundError:
            raise AgentFailure(f"Agent failed: command not found: {self.command}")
        except OSError as e:
            raise AgentFailure(f"Agent failed: {e}")

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip() or "no output"
            raise AgentFailure(f"Agent failed: exit code {result.returncode}: {detail}")

        return result.stdout.strip() or "(no output)"
