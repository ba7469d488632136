from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Iterable

from toolcap.shell.model import AndIf, Command, Opaque, OrIf, Pipeline, Sequence, ShellNode, Simple

from .model import (
    And,
    AnyExecute,
    AnySubcommand,
    CommandName,
    Flag,
    Matcher,
    Or,
    Outcome,
    PipedToShell,
    Subcommand,
    WithinDirectory,
)
from .scope import DEFAULT_RESOLVE_TIMEOUT, FilesystemResolver, PathResolver, is_within

if TYPE_CHECKING:
    from .ruleset import Ruleset

logger = logging.getLogger(__name__)

SHELL_PROGRAMS = frozenset(
    {"sh", "bash", "zsh", "dash", "ksh", "mksh", "fish", "csh", "tcsh", "ash", "busybox"}
)

_DEFAULT_RESOLVER = FilesystemResolver(timeout=DEFAULT_RESOLVE_TIMEOUT)


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    working_directory: str | None = None
    resolver: PathResolver = _DEFAULT_RESOLVER
    piped_into: Command | None = None


@dataclass(slots=True)
class Decision:
    outcome: Outcome
    reason: str
    rule_id: str
    fragment: str = ""


def _is_shell(command: Command | None) -> bool:
    if command is None:
        return False
    return command.name in SHELL_PROGRAMS or posixpath.basename(command.name) in SHELL_PROGRAMS


def matches(matcher: Matcher, command: Command, context: EvaluationContext) -> bool:
    if isinstance(matcher, CommandName):
        return command.name == matcher.name
    if isinstance(matcher, Subcommand):
        return command.subcommand is not None and command.subcommand == matcher.name
    if isinstance(matcher, AnySubcommand):
        return command.subcommand is not None and command.subcommand in matcher.names
    if isinstance(matcher, Flag):
        return matcher.flag in command.flags
    if isinstance(matcher, WithinDirectory):
        return is_within(matcher.path, context.working_directory, context.resolver)
    if isinstance(matcher, AnyExecute):
        return True
    if isinstance(matcher, PipedToShell):
        return _is_shell(context.piped_into)
    if isinstance(matcher, And):
        return all(matches(m, command, context) for m in matcher.matchers)
    if isinstance(matcher, Or):
        return any(matches(m, command, context) for m in matcher.matchers)
    logger.warning("unsupported matcher type: %s", type(matcher).__name__)
    return False


def combine(outcomes: Iterable[Outcome]) -> Outcome:
    """Fold leaf outcomes: any deny wins, all-allow allows, otherwise unknown."""
    seen = set(outcomes)
    if Outcome.DENY in seen:
        return Outcome.DENY
    if seen == {Outcome.ALLOW}:
        return Outcome.ALLOW
    return Outcome.UNKNOWN


def decide_command(ruleset: Ruleset, command: Command, context: EvaluationContext) -> Decision:
    for rule in ruleset.rules:
        if matches(rule.matcher, command, context):
            logger.debug("rule %s -> %s for %r", rule.rule_id, rule.outcome.value, command.render())
            return Decision(rule.outcome, f"matched rule {rule.rule_id}", rule.rule_id, command.render())
    return Decision(Outcome.UNKNOWN, "no rule matched", "no_match", command.render())


def evaluate_node(
    node: ShellNode,
    ruleset: Ruleset,
    context: EvaluationContext,
    trace: list[Decision] | None = None,
) -> Outcome:
    if isinstance(node, Simple):
        decision = decide_command(ruleset, node.command, context)
        if trace is not None:
            trace.append(decision)
        return decision.outcome

    if isinstance(node, Opaque):
        if trace is not None:
            trace.append(Decision(Outcome.UNKNOWN, f"opaque: {node.reason}", "opaque", node.raw))
        return Outcome.UNKNOWN

    if isinstance(node, Pipeline):
        outcomes = []
        for idx, child in enumerate(node.nodes):
            downstream = node.nodes[idx + 1] if idx + 1 < len(node.nodes) else None
            piped_into = downstream.command if isinstance(downstream, Simple) else None
            child_context = replace(context, piped_into=piped_into)
            outcomes.append(evaluate_node(child, ruleset, child_context, trace))
        return combine(outcomes)

    if isinstance(node, (Sequence, AndIf, OrIf)):
        leaf_context = replace(context, piped_into=None)
        if isinstance(node, Sequence):
            members = node.nodes
        else:
            members = (node.left, node.right)
        return combine([evaluate_node(child, ruleset, leaf_context, trace) for child in members])

    logger.warning("unsupported shell node: %s", type(node).__name__)
    return Outcome.UNKNOWN
