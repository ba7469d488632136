from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from toolcap.policy.evaluate import Decision
from toolcap.policy.model import Outcome

logger = logging.getLogger(__name__)


def leaf_entries(trace: Iterable[Decision]) -> list[dict[str, str]]:
    return [
        {
            "fragment": decision.fragment,
            "decision": decision.outcome.name,
            "rule_id": decision.rule_id,
            "reason": decision.reason,
        }
        for decision in trace
    ]


class AuditLedger:
    def __init__(self, audit_dir: str | Path = "audit"):
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self.ledger_path = self.audit_dir / "ledger.jsonl"

    def new_request_id(self) -> str:
        return str(uuid.uuid4())

    def write_event(self, event: dict[str, Any]) -> None:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **event,
        }
        with self.ledger_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(payload, sort_keys=True) + "\n")

    def record(
        self,
        actor: str,
        tool: str,
        args_summary: str,
        outcome: Outcome,
        trace: list[Decision],
        request_id: str | None = None,
    ) -> str:
        request_id = request_id or self.new_request_id()
        deciding = next((d for d in trace if d.outcome is outcome), trace[0] if trace else None)
        self.write_event(
            {
                "request_id": request_id,
                "actor": actor,
                "tool": tool,
                "args_summary": args_summary,
                "decision": outcome.name,
                "reason": deciding.reason if deciding else "",
                "rule_id": deciding.rule_id if deciding else "",
                "leaves": leaf_entries(trace),
            }
        )
        return request_id

    def tail(self, n: int = 20) -> list[dict[str, Any]]:
        if not self.ledger_path.exists():
            return []
        lines = self.ledger_path.read_text(encoding="utf-8").splitlines()
        out: list[dict[str, Any]] = []
        for line in lines[-n:]:
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("skipping corrupt ledger line in %s", self.ledger_path)
                continue
        return out
