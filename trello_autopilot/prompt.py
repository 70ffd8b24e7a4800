"""
Prompt builder: bug record -> coding-agent prompt.

The prompt is the whole contract with the agent, so it must be stable:
the same bug always yields the same text, and absent sections are left
out rather than rendered empty.
"""

from __future__ import annotations

from trello_autopilot.models import BugRecord


def build_prompt(bug: BugRecord) -> str:
    parts = [f"Fix this bug: {bug.title}"]
    if bug.description.strip():
        parts.append(f"\nDescription:\n{bug.description}")
    if bug.labels:
        parts.append(f"\nLabels: {', '.join(bug.labels)}")
    if bug.comments:
        parts.append("\nComments:")
        for comment in bug.comments:
            parts.append(f"- {comment.author}: {comment.text}")
    return "\n".join(parts)
