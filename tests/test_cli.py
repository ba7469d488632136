import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from toolcap.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("TOOLCAP_RULESET", "TOOLCAP_AUDIT_DIR", "TOOLCAP_RESOLVE_TIMEOUT", "TOOLCAP_REMEMBER"):
        monkeypatch.delenv(name, raising=False)


def _ruleset(tmp_path: Path) -> Path:
    path = tmp_path / "dev.yaml"
    path.write_text(
        """
ruleset_id: dev
rules:
  - rule_id: git_ro
    outcome: allow
    match: {command: git, subcommands: [status, log]}
  - rule_id: no_rm
    outcome: deny
    match: {command: rm}
""".strip(),
        encoding="utf-8",
    )
    return path


def _request(command: str) -> dict:
    return {
        "sessionId": "s",
        "toolCall": {"toolCallId": "c", "kind": "execute", "rawInput": {"command": command}},
        "options": [
            {"optionId": "yes", "name": "Allow", "kind": "allow_once"},
            {"optionId": "no", "name": "Reject", "kind": "reject_once"},
        ],
    }


def test_check_exit_codes_with_default_rules():
    allowed = runner.invoke(app, ["check", "git status"])
    assert allowed.exit_code == 0
    assert "ALLOW" in allowed.output

    denied = runner.invoke(app, ["check", "--", "git", "push", "origin", "main"])
    assert denied.exit_code == 2
    assert "DENY" in denied.output

    unknown = runner.invoke(app, ["check", "python script.py"])
    assert unknown.exit_code == 3
    assert "UNKNOWN" in unknown.output


def test_check_with_ruleset_and_audit(tmp_path: Path):
    audit_dir = tmp_path / "audit"
    result = runner.invoke(
        app,
        ["check", "--ruleset", str(_ruleset(tmp_path)), "--audit-dir", str(audit_dir), "--actor", "bot", "rm x"],
    )
    assert result.exit_code == 2
    lines = (audit_dir / "ledger.jsonl").read_text(encoding="utf-8").splitlines()
    event = json.loads(lines[0])
    assert event["actor"] == "bot"
    assert event["decision"] == "DENY"
    assert event["rule_id"] == "no_rm"


def test_check_keeps_separate_arguments_literal():
    result = runner.invoke(app, ["check", "--", "echo", "x; rm -rf / #"])
    assert result.exit_code == 0
    assert "ALLOW" in result.output

    joined = runner.invoke(app, ["check", "echo x; rm -rf /"])
    assert joined.exit_code == 2


def test_check_reads_ruleset_from_environment(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("TOOLCAP_RULESET", str(_ruleset(tmp_path)))
    result = runner.invoke(app, ["check", "ls"])
    assert result.exit_code == 3


def test_check_invalid_ruleset(tmp_path: Path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("rules:\n  - outcome: perhaps\n    match: {command: ls}\n", encoding="utf-8")
    result = runner.invoke(app, ["check", "--ruleset", str(bad), "ls"])
    assert result.exit_code == 2
    assert "FAIL" in result.output


def test_parse_prints_tree():
    result = runner.invoke(app, ["parse", "ls | grep x && echo $(id)"])
    assert result.exit_code == 0
    assert "AndIf" in result.output
    assert "Pipeline" in result.output
    assert "Opaque" in result.output


def test_decide_from_file(tmp_path: Path):
    request = tmp_path / "request.json"
    request.write_text(json.dumps({"jsonrpc": "2.0", "params": _request("git log")}), encoding="utf-8")
    result = runner.invoke(app, ["decide", "--request", str(request), "--ruleset", str(_ruleset(tmp_path))])
    assert result.exit_code == 0
    assert json.loads(result.output) == {"outcome": {"outcome": "selected", "optionId": "yes"}}


def test_decide_from_stdin_forwards_unknown():
    result = runner.invoke(app, ["decide"], input=json.dumps(_request("python deploy.py")))
    assert result.exit_code == 0
    assert json.loads(result.output) == {"forward": True}


def test_decide_rejects_garbage():
    result = runner.invoke(app, ["decide"], input="not json")
    assert result.exit_code == 2
    assert "FAIL" in result.output


def test_decide_missing_request_file(tmp_path: Path):
    result = runner.invoke(app, ["decide", "--request", str(tmp_path / "missing.json")])
    assert result.exit_code == 2
    assert "FAIL" in result.output


def test_audit_tail_and_report(tmp_path: Path):
    audit_dir = tmp_path / "audit"
    runner.invoke(app, ["check", "--audit-dir", str(audit_dir), "git status"])

    tail = runner.invoke(app, ["audit", "tail", "--audit-dir", str(audit_dir)])
    assert tail.exit_code == 0
    assert "git status" in tail.output

    report_path = tmp_path / "report.md"
    report = runner.invoke(app, ["audit", "report", "--audit-dir", str(audit_dir), "--output", str(report_path)])
    assert report.exit_code == 0
    assert "- ALLOW: 1" in report_path.read_text(encoding="utf-8")


def test_ruleset_show(tmp_path: Path):
    result = runner.invoke(app, ["ruleset", "show", "--ruleset", str(_ruleset(tmp_path))])
    assert result.exit_code == 0
    assert "git_ro" in result.output
    assert "no_rm" in result.output


def test_ruleset_bundle_and_verify(tmp_path: Path):
    ruleset = _ruleset(tmp_path)
    bundle = tmp_path / "bundle.json"
    created = runner.invoke(app, ["ruleset", "bundle", "--ruleset", str(ruleset), "--out", str(bundle)])
    assert created.exit_code == 0

    verified = runner.invoke(app, ["ruleset", "verify", "--ruleset", str(ruleset), "--bundle", str(bundle)])
    assert verified.exit_code == 0
    assert "OK" in verified.output

    ruleset.write_text("ruleset_id: tampered\n", encoding="utf-8")
    tampered = runner.invoke(app, ["ruleset", "verify", "--ruleset", str(ruleset), "--bundle", str(bundle)])
    assert tampered.exit_code == 2
    assert "FAIL" in tampered.output
