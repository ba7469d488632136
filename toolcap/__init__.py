from toolcap.policy.evaluate import Decision, EvaluationContext
from toolcap.policy.groups import compilation, default_ruleset, extend, read_only_git, safe_npm
from toolcap.policy.model import (
    And,
    AnyExecute,
    AnySubcommand,
    CommandName,
    Flag,
    Matcher,
    Or,
    Outcome,
    PipedToShell,
    Rule,
    Subcommand,
    WithinDirectory,
    command,
)
from toolcap.policy.operation import (
    Delete,
    Edit,
    Execute,
    Fetch,
    Move,
    Operation,
    OperationKind,
    Other,
    Read,
    Search,
    SwitchMode,
    Think,
)
from toolcap.policy.ruleset import Ruleset
from toolcap.policy.scope import CanonicalizationError, FilesystemResolver, StaticResolver
from toolcap.shell.model import AndIf, Command, Opaque, OrIf, Pipeline, Sequence, ShellNode, Simple
from toolcap.shell.parse import parse

__version__ = "0.1.0"

__all__ = [
    "And",
    "AndIf",
    "AnyExecute",
    "AnySubcommand",
    "CanonicalizationError",
    "Command",
    "CommandName",
    "Decision",
    "Delete",
    "Edit",
    "EvaluationContext",
    "Execute",
    "Fetch",
    "FilesystemResolver",
    "Flag",
    "Matcher",
    "Move",
    "Opaque",
    "Operation",
    "OperationKind",
    "Or",
    "OrIf",
    "Other",
    "Outcome",
    "PipedToShell",
    "Pipeline",
    "Read",
    "Rule",
    "Ruleset",
    "Search",
    "Sequence",
    "ShellNode",
    "Simple",
    "StaticResolver",
    "Subcommand",
    "SwitchMode",
    "Think",
    "WithinDirectory",
    "command",
    "compilation",
    "default_ruleset",
    "extend",
    "parse",
    "read_only_git",
    "safe_npm",
]
