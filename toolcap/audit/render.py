from __future__ import annotations

import shlex
from collections import Counter

from toolcap.policy.model import Outcome

from .ledger import AuditLedger


def _programs(event: dict) -> list[str]:
    names = []
    for leaf in event.get("leaves", []):
        if leaf.get("rule_id") == "opaque":
            names.append("<opaque>")
            continue
        try:
            words = shlex.split(leaf.get("fragment", ""))
        except ValueError:
            words = []
        if words:
            names.append(words[0])
    return names


def render_markdown_report(ledger: AuditLedger, limit: int = 500) -> str:
    events = ledger.tail(limit)
    if not events:
        return "# toolcap Audit Report\n\nNo events found."

    decisions = Counter(event.get("decision", Outcome.UNKNOWN.name) for event in events)
    programs = Counter(name for event in events for name in _programs(event))

    lines = [
        "# toolcap Audit Report",
        "",
        "## Summary",
        f"- Events: {len(events)}",
    ]
    for outcome in Outcome:
        lines.append(f"- {outcome.name}: {decisions.get(outcome.name, 0)}")

    lines.append("")
    lines.append("## Programs")
    for name, count in programs.most_common():
        lines.append(f"- {name}: {count}")

    lines.append("")
    lines.append("## Recent Events")
    for event in events[-20:]:
        rid = event.get("request_id", "-")
        actor = event.get("actor", "unknown")
        summary = event.get("args_summary", "")
        decision = event.get("decision", Outcome.UNKNOWN.name)
        reason = event.get("reason", "")
        lines.append(f"- `{rid}` `{actor}` `{summary}` `{decision}`: {reason}")

    return "\n".join(lines)
