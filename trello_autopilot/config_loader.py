"""
Configuration loader for trello-autopilot.

Two layers:
  - AutopilotSettings: tunables merged from the built-in defaults
    (trello_autopilot/config.yaml) and <repo>/.autopilot/config.yaml.
  - PipelineConfig: the per-run option bundle built once from CLI flags
    or tool-server arguments. Frozen after construction.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConfigurationError(Exception):
    """Fatal to the whole run: missing credentials, unknown board or list."""
    pass


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class TrelloConfig(BaseModel):
    base_url: str = "https://api.trello.com/1"
    timeout: float = 30.0
    max_retries: int = 3
    label_color: str = "red"


class AgentConfig(BaseModel):
    command: str = "claude"
    args: list[str] = Field(default_factory=lambda: ["-p", "{prompt}", "--output-format", "text"])
    timeout: float = 300.0


class TestsConfig(BaseModel):
    timeout: float = 300.0
    output_limit: int = 2000


class GitConfig(BaseModel):
    branch_prefix: str = "fix/card-"
    remote: str = "origin"
    timeout: float = 60.0


class CommentsConfig(BaseModel):
    test_output_limit: int = 1500
    summary_limit: int = 1000
    pr_summary_limit: int = 2000


class SelectionConfig(BaseModel):
    skip_labels: list[str] = Field(default_factory=list)


class ReportConfig(BaseModel):
    notify_timeout: float = 10.0


class WorkspaceConfig(BaseModel):
    log_dir: str = ".autopilot/logs"
    run_log: bool = True


class AutopilotSettings(BaseModel):
    trello: TrelloConfig = Field(default_factory=TrelloConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tests: TestsConfig = Field(default_factory=TestsConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    comments: CommentsConfig = Field(default_factory=CommentsConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)


class PipelineConfig(BaseModel):
    """Validated options for a single pipeline run."""

    model_config = ConfigDict(frozen=True)

    board: str
    list_name: str = "Bugs"
    done_list: str = "Done"
    repo: Path = Field(default_factory=Path.cwd)
    agent: str | None = None
    dry_run: bool = False
    json_output: bool = False
    limit: int | None = None
    label: str | None = None
    pr: bool = False
    retry: bool = False
    test_command: str | None = None
    notify_url: str | None = None

    @field_validator("board")
    @classmethod
    def _board_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("board name must not be empty")
        return value

    @field_validator("repo")
    @classmethod
    def _resolve_repo(cls, value: Path) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator("agent", "label", "test_command", "notify_url")
    @classmethod
    def _blank_is_unset(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"
REPO_CONFIG_DIR = ".autopilot"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(repo_path: Path | None = None) -> AutopilotSettings:
    """
    Load settings by merging:
      1. Built-in defaults (trello_autopilot/config.yaml)
      2. Repo-level overrides (<repo>/.autopilot/config.yaml)
    """
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    if repo_path:
        repo_config = repo_path / REPO_CONFIG_DIR / "config.yaml"
        if repo_config.exists():
            with open(repo_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    return AutopilotSettings(**base)


def trello_credentials() -> tuple[str, str]:
    """Return (api_key, token) from the environment or raise ConfigurationError."""
    api_key = os.environ.get("TRELLO_API_KEY")
    token = os.environ.get("TRELLO_TOKEN")
    if not api_key or not token:
        raise ConfigurationError("Missing TRELLO_API_KEY or TRELLO_TOKEN environment variables")
    return api_key, token


def validate_api_keys() -> dict[str, bool]:
    """Check which credentials are available."""
    return {
        "TRELLO_API_KEY": bool(os.environ.get("TRELLO_API_KEY")),
        "TRELLO_TOKEN":   bool(os.environ.get("TRELLO_TOKEN")),
    }
