import time

import httpx
from rich.console import Console

from trello_autopilot.models import FixOutcome, RunReport
from trello_autopilot.report import format_report, generate_report, notify, render_report


def _outcome(id, succeeded=True, skipped=False, error=None):
    return FixOutcome(bug_id=id, bug_title=f"Bug {id}", succeeded=succeeded, skipped=skipped, error=error)


def test_counts_add_up():
    results = [
        _outcome("1"),
        _outcome("2"),
        _outcome("3", succeeded=False, error="Tests failed after fix"),
        _outcome("4", succeeded=False, skipped=True),
    ]
    report = generate_report(results, time.monotonic())

    assert report.total == 4
    assert report.fixed_count == 2
    assert report.failed_count == 1
    assert report.skipped_count == 1
    assert report.fixed_count + report.failed_count + report.skipped_count == report.total
    assert [r.bug_id for r in report.results] == ["1", "2", "3", "4"]


def test_empty_report():
    report = generate_report([], time.monotonic())
    assert report.total == 0
    assert report.fixed_count == report.failed_count == report.skipped_count == 0
    assert report.duration_ms >= 0


def test_duration_is_measured_from_start():
    report = generate_report([], time.monotonic() - 2.5)
    assert report.duration_ms >= 2500


def test_format_report():
    report = RunReport(total=5, fixed_count=3, failed_count=1, skipped_count=1, duration_ms=12345)
    text = format_report(report)

    assert text.splitlines()[0] == "📊 Autopilot Report"
    assert "Total:   5" in text
    assert "Fixed:   3" in text
    assert "Failed:  1" in text
    assert "Skipped: 1" in text
    assert "12.3s" in text


def test_json_uses_camel_case_and_drops_nulls():
    report = generate_report([_outcome("1")], time.monotonic())
    data = report.to_json()

    assert '"fixedCount": 1' in data
    assert '"bugTitle": "Bug 1"' in data
    assert "pullRequestUrl" not in data


def test_render_report_lists_every_card():
    from io import StringIO

    out = StringIO()
    report = generate_report(
        [_outcome("c1"), _outcome("c2", succeeded=False, error="boom")],
        time.monotonic(),
    )
    render_report(report, Console(file=out, width=200))
    text = out.getvalue()

    assert "c1" in text
    assert "boom" in text
    assert "Total:   2" in text


def test_notify_posts_report(monkeypatch):
    captured = {}

    def fake_post(url, json, timeout):
        captured.update(url=url, json=json, timeout=timeout)
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx, "post", fake_post)
    report = generate_report([_outcome("1")], time.monotonic())

    assert notify("https://hooks.example/x", report, timeout=3)
    assert captured["url"] == "https://hooks.example/x"
    assert captured["timeout"] == 3
    assert "📊 Autopilot Report" in captured["json"]["text"]
    assert captured["json"]["report"]["total"] == 1


def test_notify_swallows_http_errors(monkeypatch):
    monkeypatch.setattr(
        httpx, "post",
        lambda url, json, timeout: httpx.Response(500, request=httpx.Request("POST", url)),
    )
    report = generate_report([], time.monotonic())
    assert notify("https://hooks.example/x", report) is False


def test_notify_swallows_connection_errors(monkeypatch):
    def refuse(url, json, timeout):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "post", refuse)
    report = generate_report([], time.monotonic())
    assert notify("http://127.0.0.1:1/hook", report) is False
