"""
Run report: fold per-bug outcomes into counts and timing, render them,
and optionally deliver them to a notification webhook.
"""

from __future__ import annotations

import json
import time
from typing import Sequence

import httpx
from loguru import logger
from rich.console import Console
from rich.table import Table

from trello_autopilot.models import FixOutcome, RunReport


def generate_report(results: Sequence[FixOutcome], started_at: float) -> RunReport:
    """
    Build a RunReport from outcomes. `started_at` is a time.monotonic()
    reading taken when the run began.
    """
    skipped = sum(1 for r in results if r.skipped)
    fixed = sum(1 for r in results if r.succeeded and not r.skipped)
    failed = sum(1 for r in results if not r.succeeded and not r.skipped)
    return RunReport(
        total=len(results),
        fixed_count=fixed,
        failed_count=failed,
        skipped_count=skipped,
        duration_ms=max(0, int((time.monotonic() - started_at) * 1000)),
        results=tuple(results),
    )


def format_report(report: RunReport) -> str:
    return "\n".join([
        "📊 Autopilot Report",
        f"  Total:   {report.total}",
        f"  Fixed:   {report.fixed_count}",
        f"  Failed:  {report.failed_count}",
        f"  Skipped: {report.skipped_count}",
        f"  Duration: {report.duration_ms / 1000:.1f}s",
    ])


def render_report(report: RunReport, console: Console) -> None:
    if report.results:
        table = Table(title="Results", border_style="cyan")
        table.add_column("Card", style="dim")
        table.add_column("Title")
        table.add_column("Status")
        table.add_column("Details")

        for r in report.results:
            if r.skipped:
                status, details = "[dim]skipped[/]", r.skip_reason or ""
            elif r.succeeded:
                status, details = "[green]fixed[/]", r.pull_request_url or r.branch_name or ""
            else:
                status, details = "[red]failed[/]", r.error or ""
            table.add_row(r.bug_id, r.bug_title, status, details[:80])

        console.print(table)

    console.print(format_report(report), highlight=False)


def notify(url: str, report: RunReport, timeout: float = 10.0) -> bool:
    """
    POST the report to a webhook. Fire-and-forget: failures are logged,
    never raised.
    """
    payload = {
        "text": format_report(report),
        "report": json.loads(report.to_json()),
    }
    try:
        response = httpx.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
    except Exception as e:
        logger.warning(f"[NOTIFY] Delivery to {url} failed: {e}")
        return False
    logger.info(f"[NOTIFY] Report delivered to {url}")
    return True
