"""
trello-autopilot Controller: the fix orchestration pipeline.

It never writes code. It only coordinates:
  - Pull cards from the source list (one snapshot per run)
  - Apply the selection policy
  - For each card, sequentially:
      SkipCheck → DryRunCheck → BranchCreate → ContextGather → AgentInvoke
      → DiffCapture → TestVerify → CommitAndIntegrate → FailureLabelCleanup
      → BoardFinalize
  - Classify failures (needs-human vs fix-failed) and label the card
  - Fold outcomes into a RunReport

Two steps are fatal for a card: the agent invocation (needs-human) and
the test run (fix-failed). Everything else is best-effort and only
records what it managed to do in the card's FixState.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field
from rich.console import Console
from rich.markup import escape

from trello_autopilot.agent import AgentInvoker, CommandAgent
from trello_autopilot.board import BoardGateway, BoardNotFoundError
from trello_autopilot.config_loader import AutopilotSettings, PipelineConfig
from trello_autopilot.event_bus import EventBus
from trello_autopilot.models import Board, BoardList, BugRecord, FixOutcome, RunReport, TestResult
from trello_autopilot.prompt import build_prompt
from trello_autopilot.report import generate_report, notify
from trello_autopilot.selection import FAILURE_LABELS, FIX_FAILED, NEEDS_HUMAN, select_bugs
from trello_autopilot.verifier import ShellTestRunner, TestRunner
from trello_autopilot.workspace import GitWorkspace, VersionControl, mentioned_paths

console = Console()

COMMENT_HEADER = "🤖 Auto-fixed by trello-autopilot:"
TESTS_FAILED_ERROR = "Tests failed after fix"


# ---------------------------------------------------------------------------
# Card scanning
# ---------------------------------------------------------------------------

def resolve_board(board: BoardGateway, board_name: str) -> Board:
    found = board.find_board(board_name)
    if not found:
        raise BoardNotFoundError(f'Board "{board_name}" not found')
    return found


def resolve_list(board: BoardGateway, board_obj: Board, list_name: str) -> BoardList:
    found = board.find_list(board_obj.id, list_name)
    if not found:
        raise BoardNotFoundError(f'List "{list_name}" not found on board "{board_obj.name}"')
    return found


def fetch_bugs(board: BoardGateway, source: BoardList) -> list[BugRecord]:
    bugs = []
    for card in board.get_cards(source.id):
        bugs.append(BugRecord.from_card(card, board.get_comments(card.id)))
    return bugs


def scan_bugs(board: BoardGateway, board_name: str, list_name: str) -> list[BugRecord]:
    """Snapshot every card (with comments) on a board's list."""
    board_obj = resolve_board(board, board_name)
    source = resolve_list(board, board_obj, list_name)
    return fetch_bugs(board, source)


# ---------------------------------------------------------------------------
# Fix State: working memory for one card
# ---------------------------------------------------------------------------

class FixState(BaseModel):
    """
    Accumulates partial progress for one card. Each step writes what it
    achieved; whichever terminal branch is reached turns it into a frozen
    FixOutcome, so branch/diff/blame/test data survive failures.
    """

    bug_id: str
    bug_title: str
    started_at: float = Field(default_factory=time.monotonic)

    summary: str = ""
    branch_name: str | None = None
    blame_info: str | None = None
    diff_summary: str | None = None
    test_output: str | None = None
    pull_request_url: str | None = None

    completed_phases: list[str] = Field(default_factory=list)

    def mark_phase(self, phase: str) -> None:
        if phase not in self.completed_phases:
            self.completed_phases.append(phase)

    def finish(
        self,
        succeeded: bool,
        error: str | None = None,
        skipped: bool = False,
        skip_reason: str | None = None,
    ) -> FixOutcome:
        return FixOutcome(
            bug_id=self.bug_id,
            bug_title=self.bug_title,
            succeeded=succeeded,
            summary=self.summary,
            error=error,
            skipped=skipped,
            skip_reason=skip_reason,
            branch_name=self.branch_name,
            diff_summary=self.diff_summary,
            pull_request_url=self.pull_request_url,
            test_output=self.test_output,
            blame_info=self.blame_info,
            duration_ms=int((time.monotonic() - self.started_at) * 1000),
        )


def truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + "\n... (truncated)"


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class Controller:
    """
    Runs the per-card state machine over the selected cards.

    Collaborators are passed in so that tests can substitute in-memory
    boards, agents, git and test runners.
    """

    def __init__(
        self,
        board: BoardGateway,
        config: PipelineConfig,
        settings: AutopilotSettings | None = None,
        agent: AgentInvoker | None = None,
        git: VersionControl | None = None,
        tests: TestRunner | None = None,
        bus: EventBus | None = None,
        output: Console | None = None,
    ):
        self.board = board
        self.config = config
        self.settings = settings or AutopilotSettings()
        self.repo_path: Path = config.repo

        self.agent_name = config.agent or self.settings.agent.command
        self.agent = agent or CommandAgent.from_config(self.settings.agent, command=self.agent_name)
        self.git = git or GitWorkspace.from_config(self.repo_path, self.settings.git)
        self.tests = tests or ShellTestRunner.from_config(self.settings.tests)
        self.bus = bus or EventBus()
        self.console = output or console

    # -----------------------------------------------------------------------
    # Run
    # -----------------------------------------------------------------------

    def resolve(self) -> tuple[Board, BoardList, BoardList]:
        """Look up board, source list and destination list. Config errors propagate."""
        board_obj = resolve_board(self.board, self.config.board)
        source = resolve_list(self.board, board_obj, self.config.list_name)
        done = self.board.find_list(board_obj.id, self.config.done_list)
        if not done:
            raise BoardNotFoundError(f'Done list "{self.config.done_list}" not found')
        return board_obj, source, done

    def select(self, bugs: list[BugRecord]) -> list[BugRecord]:
        return select_bugs(
            bugs,
            retry=self.config.retry,
            label=self.config.label,
            limit=self.config.limit,
            skip_labels=self.settings.selection.skip_labels,
        )

    def run(self) -> RunReport:
        """Execute the full pipeline and return the run report."""
        started_at = time.monotonic()
        board_obj, source, done = self.resolve()
        self._log_event("run_started", payload={
            "board": board_obj.name,
            "list": source.name,
            "dry_run": self.config.dry_run,
        })

        bugs = self.select(fetch_bugs(self.board, source))
        self._log_event("bugs_selected", payload={"count": len(bugs), "ids": [b.id for b in bugs]})
        logger.info(f"[SCAN] {len(bugs)} card(s) selected from '{source.name}'")

        results: list[FixOutcome] = []
        for bug in bugs:
            outcome = self.fix_bug(bug, board_obj.id, done.id)
            results.append(outcome)
            self._print_outcome(outcome)

        report = generate_report(results, started_at)
        self._log_event("run_finished", payload={
            "total": report.total,
            "fixed": report.fixed_count,
            "failed": report.failed_count,
            "skipped": report.skipped_count,
        })

        if self.config.notify_url and not self.config.dry_run:
            notify(self.config.notify_url, report, timeout=self.settings.report.notify_timeout)

        return report

    def fix_card(self, card_id: str) -> FixOutcome:
        """Fix a single card from the source list by id."""
        board_obj, source, done = self.resolve()
        card = self.board.get_card(card_id)
        if card is None or card.id_list != source.id:
            raise BoardNotFoundError(f'Card {card_id} not found in list "{source.name}"')
        bug = BugRecord.from_card(card, self.board.get_comments(card.id))
        return self.fix_bug(bug, board_obj.id, done.id)

    # -----------------------------------------------------------------------
    # Per-card state machine
    # -----------------------------------------------------------------------

    def fix_bug(self, bug: BugRecord, board_id: str, done_list_id: str) -> FixOutcome:
        state = FixState(bug_id=bug.id, bug_title=bug.title)
        self._log_event("fix_started", bug.id, {"title": bug.title})

        skip_reason = self._skip_reason(bug)
        if skip_reason:
            self._log_event("fix_skipped", bug.id, {"reason": skip_reason})
            return state.finish(succeeded=False, skipped=True, skip_reason=skip_reason)

        if self.config.dry_run:
            state.summary = f"[dry-run] Would fix: {bug.title}"
            self._log_event("dry_run", bug.id)
            return state.finish(succeeded=True)

        try:
            self._create_branch(bug, state)
            self._gather_context(bug, state)
            self._invoke_agent(bug, state)
            self._capture_diff(state)

            result = self._verify(state)
            if not result.passed:
                return self._handle_test_failure(bug, board_id, state)

            self._integrate(bug, state)
            self._cleanup_failure_labels(bug, board_id)
            self._finalize(bug, done_list_id, state)
        except Exception as e:
            return self._handle_failure(bug, board_id, state, e)

        self._log_event("fix_succeeded", bug.id, {"branch": state.branch_name, "pr": state.pull_request_url})
        return state.finish(succeeded=True)

    def _skip_reason(self, bug: BugRecord) -> str | None:
        for name in self.settings.selection.skip_labels:
            if bug.has_label(name):
                return f"Card labeled '{name}'"
        return None

    def _create_branch(self, bug: BugRecord, state: FixState) -> None:
        name = f"{self.settings.git.branch_prefix}{bug.id}"
        try:
            self.git.create_branch(name)
        except Exception as e:
            logger.warning(f"[BRANCH] Could not create {name}, continuing on current branch: {e}")
            self._log_event("branch_failed", bug.id, {"branch": name, "error": str(e)})
            return
        state.branch_name = name
        state.mark_phase("branch")
        self._log_event("branch_created", bug.id, {"branch": name})

    def _gather_context(self, bug: BugRecord, state: FixState) -> None:
        try:
            info = self.git.blame(mentioned_paths(bug, self.repo_path))
        except Exception as e:
            logger.debug(f"[CONTEXT] No blame info for {bug.id}: {e}")
            return
        state.blame_info = info or None
        state.mark_phase("context")

    def _invoke_agent(self, bug: BugRecord, state: FixState) -> None:
        logger.info(f"[AGENT] Fixing {bug.id}: {bug.title}")
        state.summary = self.agent.invoke(build_prompt(bug), self.repo_path)
        state.mark_phase("agent")
        self._log_event("agent_completed", bug.id, {"summary": truncate(state.summary, 500)})

    def _capture_diff(self, state: FixState) -> None:
        try:
            diff = self.git.get_diff()
        except Exception as e:
            logger.warning(f"[DIFF] Could not capture diff: {e}")
            return
        state.diff_summary = diff or None
        state.mark_phase("diff")

    def _verify(self, state: FixState) -> TestResult:
        result = self.tests.run(self.repo_path, self.config.test_command)
        state.test_output = result.output
        state.mark_phase("tests")
        self._log_event("tests_passed" if result.passed else "tests_failed", state.bug_id, {
            "command": result.command,
        })
        return result

    def _integrate(self, bug: BugRecord, state: FixState) -> None:
        if not state.branch_name:
            return

        try:
            self.git.commit_and_push(state.branch_name, f"fix: {bug.title} (card {bug.id})")
        except Exception as e:
            logger.warning(f"[COMMIT] Commit/push of {state.branch_name} failed: {e}")
            return
        state.mark_phase("push")

        if not self.config.pr:
            return

        try:
            state.pull_request_url = self.git.create_pr(
                state.branch_name,
                f"Fix: {bug.title}",
                self._build_pr_body(bug, state),
            ) or None
        except Exception as e:
            logger.warning(f"[PR] Pull request creation failed: {e}")
            return
        state.mark_phase("pr")
        self._log_event("pr_created", bug.id, {"url": state.pull_request_url})

    def _cleanup_failure_labels(self, bug: BugRecord, board_id: str) -> None:
        for name in FAILURE_LABELS:
            try:
                self.board.remove_label(bug.id, board_id, name)
            except Exception as e:
                logger.debug(f"[LABELS] Could not remove '{name}' from {bug.id}: {e}")

    def _finalize(self, bug: BugRecord, done_list_id: str, state: FixState) -> None:
        self.board.move_card(bug.id, done_list_id)
        state.mark_phase("board")
        self._log_event("card_moved", bug.id, {"list_id": done_list_id})

        # Best-effort once the card has moved
        try:
            self.board.add_comment(bug.id, self._success_comment(state))
        except Exception as e:
            logger.warning(f"[COMMENT] Could not comment on {bug.id}: {e}")

    # -----------------------------------------------------------------------
    # Failure branches
    # -----------------------------------------------------------------------

    def _handle_test_failure(self, bug: BugRecord, board_id: str, state: FixState) -> FixOutcome:
        limits = self.settings.comments
        comment = (
            "⚠️ Auto-fix attempted but tests failed.\n\n"
            f"**Test output:**\n```\n{truncate(state.test_output or '', limits.test_output_limit)}\n```\n\n"
            f"**Agent summary:**\n{truncate(state.summary, limits.summary_limit)}"
        )
        self._mark_card(bug, board_id, FIX_FAILED, comment)
        self._log_event("fix_failed", bug.id, {"error": TESTS_FAILED_ERROR})
        return state.finish(succeeded=False, error=TESTS_FAILED_ERROR)

    def _handle_failure(self, bug: BugRecord, board_id: str, state: FixState, error: Exception) -> FixOutcome:
        message = str(error)
        logger.error(f"[FIX] {bug.id} failed: {message}")

        attempted = f"ran coding agent `{self.agent_name}` on {state.branch_name or 'the current branch'}"
        if state.completed_phases:
            attempted += f" (completed: {', '.join(state.completed_phases)})"
        comment = (
            "🚨 Auto-fix failed, needs human attention.\n\n"
            f"**Error:** {message}\n\n"
            f"**Attempted:** {attempted}\n\n"
            "**Suggestion:** Please review this card manually."
        )
        self._mark_card(bug, board_id, NEEDS_HUMAN, comment)
        self._log_event("needs_human", bug.id, {"error": message})
        return state.finish(succeeded=False, error=message)

    def _mark_card(self, bug: BugRecord, board_id: str, label: str, comment: str) -> None:
        """Best-effort failure marking; never masks the primary failure."""
        try:
            self.board.add_label(bug.id, board_id, label)
        except Exception as e:
            logger.warning(f"[LABELS] Could not add '{label}' to {bug.id}: {e}")
        try:
            self.board.add_comment(bug.id, comment)
        except Exception as e:
            logger.warning(f"[COMMENT] Could not comment on {bug.id}: {e}")

    # -----------------------------------------------------------------------
    # Text builders
    # -----------------------------------------------------------------------

    @staticmethod
    def _success_comment(state: FixState) -> str:
        comment = f"{COMMENT_HEADER}\n\n{state.summary}"
        if state.diff_summary:
            comment += f"\n\n**Changes:**\n```\n{state.diff_summary}\n```"
        if state.pull_request_url:
            comment += f"\n\n**Pull request:** {state.pull_request_url}"
        return comment

    def _build_pr_body(self, bug: BugRecord, state: FixState) -> str:
        body = f"""## 🤖 trello-autopilot fix

**Card:** {bug.url or bug.id}

### Agent summary
{truncate(state.summary, self.settings.comments.pr_summary_limit)}
"""
        if state.diff_summary:
            body += f"\n### Changes\n```\n{state.diff_summary}\n```\n"
        return body

    # -----------------------------------------------------------------------
    # Display / events
    # -----------------------------------------------------------------------

    def _print_outcome(self, outcome: FixOutcome) -> None:
        if self.config.json_output:
            return
        if outcome.skipped:
            self.console.print(f"⏭  {escape(outcome.bug_title)} [dim]({escape(outcome.skip_reason or '')})[/]", highlight=False)
        elif outcome.succeeded:
            self.console.print(f"✅ {escape(outcome.bug_title)}", highlight=False)
        else:
            self.console.print(f"❌ {escape(outcome.bug_title)} - {escape(outcome.error or '')}", highlight=False)

    def _log_event(self, event_type: str, card_id: str | None = None, payload: dict[str, Any] | None = None) -> None:
        self.bus.emit(event_type, card_id, payload or {})
