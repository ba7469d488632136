from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from toolcap.shell.model import Command, ShellNode

from .evaluate import Decision, EvaluationContext, decide_command, evaluate_node
from .model import Outcome, Rule
from .operation import Execute, Operation
from .scope import PathResolver


@dataclass(frozen=True, slots=True)
class Ruleset:
    """Ordered, first-match-wins list of rules.

    An empty ruleset is valid and answers ``Outcome.UNKNOWN`` for everything.
    Instances are immutable, so one ruleset can serve any number of concurrent
    evaluations.
    """

    rules: tuple[Rule, ...] = ()
    ruleset_id: str = "ruleset"

    def __post_init__(self):
        object.__setattr__(self, "rules", tuple(self.rules))

    def extended(self, rules: Iterable[Rule]) -> "Ruleset":
        return Ruleset(rules=(*self.rules, *rules), ruleset_id=self.ruleset_id)

    def evaluate_command(self, command: Command, context: EvaluationContext | None = None) -> Outcome:
        return self.decide_command(command, context).outcome

    def decide_command(self, command: Command, context: EvaluationContext | None = None) -> Decision:
        return decide_command(self, command, context or EvaluationContext())

    def evaluate_node(self, node: ShellNode, context: EvaluationContext | None = None) -> Outcome:
        return evaluate_node(node, self, context or EvaluationContext())

    def evaluate(self, operation: Operation, resolver: PathResolver | None = None) -> Outcome:
        outcome, _ = self.explain(operation, resolver)
        return outcome

    def explain(self, operation: Operation, resolver: PathResolver | None = None) -> tuple[Outcome, list[Decision]]:
        trace: list[Decision] = []
        if not isinstance(operation, Execute):
            trace.append(
                Decision(Outcome.UNKNOWN, f"no policy for {operation.kind.value} operations", "unsupported_kind")
            )
            return Outcome.UNKNOWN, trace

        context = EvaluationContext(working_directory=operation.working_directory)
        if resolver is not None:
            context = replace(context, resolver=resolver)
        outcome = evaluate_node(operation.node(), self, context, trace)
        if not trace:
            trace.append(Decision(Outcome.UNKNOWN, "empty command", "empty"))
        return outcome, trace
