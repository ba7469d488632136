from __future__ import annotations

import json
import logging
import shlex
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from toolcap.audit.ledger import AuditLedger
from toolcap.audit.render import render_markdown_report
from toolcap.config import load_settings
from toolcap.integrations.acp.adapter import AcpAdapterError, decide_request, describe_request
from toolcap.policy.evaluate import Decision
from toolcap.policy.groups import default_ruleset
from toolcap.policy.load import PolicyError, load_ruleset
from toolcap.policy.model import Outcome, describe
from toolcap.policy.operation import Execute
from toolcap.policy.ruleset import Ruleset
from toolcap.policy.scope import FilesystemResolver
from toolcap.policy.signing.bundle import (
    SigningError,
    sign_ruleset,
    verify_bundle_hash,
    verify_bundle_signature,
    write_bundle,
)
from toolcap.shell.model import AndIf, Opaque, OrIf, Pipeline, Sequence, ShellNode, Simple
from toolcap.shell.parse import parse as parse_shell

app = typer.Typer(help="toolcap: execute-permission checks for agent shell commands")
audit_app = typer.Typer(help="Audit commands")
ruleset_app = typer.Typer(help="Ruleset inspection and bundle/signature commands")
app.add_typer(audit_app, name="audit")
app.add_typer(ruleset_app, name="ruleset")
console = Console()

EXIT_CODES = {Outcome.ALLOW: 0, Outcome.DENY: 2, Outcome.UNKNOWN: 3}
_STYLES = {Outcome.ALLOW: "green", Outcome.DENY: "red", Outcome.UNKNOWN: "yellow"}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _label(outcome: Outcome) -> str:
    style = _STYLES[outcome]
    return f"[{style}]{outcome.name}[/{style}]"


def _load(ruleset: str) -> Ruleset:
    path = ruleset or load_settings().ruleset_path
    if not path:
        return default_ruleset()
    try:
        return load_ruleset(path)
    except PolicyError as exc:
        console.print(f"[red]FAIL[/red] invalid ruleset: {escape(str(exc))}")
        raise typer.Exit(2)


def _print_trace(trace: list[Decision]) -> None:
    for decision in trace:
        console.print(f"  {_label(decision.outcome)} {escape(decision.fragment or '-')} [dim]({escape(decision.rule_id)})[/dim]")


def _tree(node: ShellNode, parent: Tree) -> None:
    if isinstance(node, Simple):
        parent.add(f"[bold]Simple[/bold] {escape(node.command.render())}")
    elif isinstance(node, Opaque):
        parent.add(f"[yellow]Opaque[/yellow] {escape(node.raw)} [dim]({escape(node.reason)})[/dim]")
    elif isinstance(node, (Pipeline, Sequence)):
        branch = parent.add(f"[bold]{type(node).__name__}[/bold]")
        for child in node.nodes:
            _tree(child, branch)
    elif isinstance(node, (AndIf, OrIf)):
        branch = parent.add(f"[bold]{type(node).__name__}[/bold]")
        _tree(node.left, branch)
        _tree(node.right, branch)


@app.command("check")
def check(
    cmd: list[str] = typer.Argument(..., help="Command line to check, use -- separator"),
    cwd: str = typer.Option("", "--cwd", help="Working directory the command would run in"),
    ruleset: str = typer.Option("", "--ruleset", help="Path to ruleset YAML (defaults to built-in rules)"),
    actor: str = typer.Option("unknown-agent", "--actor"),
    audit_dir: str = typer.Option("", "--audit-dir"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    _configure_logging(verbose)
    settings = load_settings()
    rules = _load(ruleset)
    command_text = cmd[0] if len(cmd) == 1 else shlex.join(cmd)

    operation = Execute(command_text, working_directory=cwd or str(Path.cwd()))
    outcome, trace = rules.explain(operation, FilesystemResolver(timeout=settings.resolve_timeout))

    audit_dir = audit_dir or settings.audit_dir
    if audit_dir:
        AuditLedger(audit_dir).record(actor, operation.kind.value, command_text, outcome, trace)

    console.print(f"{_label(outcome)} {escape(command_text)}")
    _print_trace(trace)
    raise typer.Exit(EXIT_CODES[outcome])


@app.command("parse")
def parse(cmd: list[str] = typer.Argument(..., help="Command line to parse")) -> None:
    command_text = cmd[0] if len(cmd) == 1 else shlex.join(cmd)
    root = Tree(escape(command_text))
    _tree(parse_shell(command_text), root)
    console.print(root)


@app.command("decide")
def decide(
    request: str = typer.Option("-", "--request", help="Permission request JSON file, '-' for stdin"),
    ruleset: str = typer.Option("", "--ruleset"),
    remember: bool = typer.Option(False, "--remember", help="Prefer 'always' options"),
    cwd: str = typer.Option("", "--cwd", help="Working directory when the request names none"),
    actor: str = typer.Option("acp-agent", "--actor"),
    audit_dir: str = typer.Option("", "--audit-dir"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    _configure_logging(verbose)
    settings = load_settings()
    rules = _load(ruleset)

    try:
        raw = typer.get_text_stream("stdin").read() if request == "-" else Path(request).read_text(encoding="utf-8")
        payload = json.loads(raw)
        params = payload.get("params", payload) if isinstance(payload, dict) else payload
        decision = decide_request(
            params,
            rules,
            remember=remember or settings.remember,
            resolver=FilesystemResolver(timeout=settings.resolve_timeout),
            fallback_cwd=cwd or None,
        )
    except (OSError, json.JSONDecodeError, AcpAdapterError) as exc:
        console.print(f"[red]FAIL[/red] invalid permission request: {escape(str(exc))}")
        raise typer.Exit(2)

    audit_dir = audit_dir or settings.audit_dir
    if audit_dir:
        AuditLedger(audit_dir).record(
            actor, decision.operation.kind.value, describe_request(params), decision.outcome, decision.trace
        )

    console.print_json(data=decision.response() or {"forward": True})


@audit_app.command("tail")
def audit_tail(
    lines: int = typer.Option(20, "--lines"),
    audit_dir: str = typer.Option("", "--audit-dir"),
) -> None:
    ledger = AuditLedger(audit_dir or load_settings().audit_dir or "audit")
    for event in ledger.tail(lines):
        console.print_json(data=event)


@audit_app.command("report")
def audit_report(
    format: str = typer.Option("md", "--format"),
    output: str = typer.Option("audit/report.md", "--output"),
    audit_dir: str = typer.Option("", "--audit-dir"),
) -> None:
    if format != "md":
        raise typer.BadParameter("Only md format is supported")
    ledger = AuditLedger(audit_dir or load_settings().audit_dir or "audit")
    report = render_markdown_report(ledger)
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(report, encoding="utf-8")
    console.print(f"wrote {output_path}")


@ruleset_app.command("show")
def ruleset_show(ruleset: str = typer.Option("", "--ruleset")) -> None:
    rules = _load(ruleset)
    table = Table(title=f"ruleset {escape(rules.ruleset_id)}")
    table.add_column("#", justify="right")
    table.add_column("rule_id")
    table.add_column("outcome")
    table.add_column("match")
    for idx, rule in enumerate(rules.rules):
        table.add_row(str(idx), escape(rule.rule_id), _label(rule.outcome), escape(describe(rule.matcher)))
    console.print(table)


@ruleset_app.command("bundle")
def ruleset_bundle(
    ruleset: str = typer.Option(..., "--ruleset"),
    out: str = typer.Option("rulesets/bundle.json", "--out"),
    signature_b64: str = typer.Option("", "--signature-b64"),
    private_key: str = typer.Option("", "--private-key", help="PEM ed25519 private key to sign with"),
) -> None:
    try:
        if private_key:
            signature_b64 = sign_ruleset(ruleset, private_key)
        out_path = write_bundle(ruleset_path=ruleset, out_path=out, signature_b64=signature_b64)
    except (SigningError, ValueError, OSError) as exc:
        console.print(f"[red]FAIL[/red] {escape(str(exc))}")
        raise typer.Exit(2)
    console.print(f"wrote {out_path}")


@ruleset_app.command("verify")
def ruleset_verify(
    ruleset: str = typer.Option(..., "--ruleset"),
    bundle: str = typer.Option(..., "--bundle"),
    pubkey: str = typer.Option("", "--pubkey", help="PEM ed25519 public key"),
) -> None:
    try:
        if not verify_bundle_hash(ruleset_path=ruleset, bundle_path=bundle):
            console.print("[red]FAIL[/red] bundle hash mismatch")
            raise typer.Exit(2)
        if pubkey and not verify_bundle_signature(ruleset_path=ruleset, bundle_path=bundle, public_key_pem=pubkey):
            console.print("[red]FAIL[/red] signature verification failed")
            raise typer.Exit(2)
    except SigningError as exc:
        console.print(f"[red]FAIL[/red] {escape(str(exc))}")
        raise typer.Exit(2)

    console.print("[green]OK[/green] ruleset bundle verified")


if __name__ == "__main__":
    app()
