from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union


class Outcome(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> "Outcome":
        return cls(str(value).strip().lower())


@dataclass(frozen=True, slots=True)
class CommandName:
    name: str


@dataclass(frozen=True, slots=True)
class Subcommand:
    name: str


@dataclass(frozen=True, slots=True)
class AnySubcommand:
    names: frozenset[str]

    def __post_init__(self):
        object.__setattr__(self, "names", frozenset(self.names))


@dataclass(frozen=True, slots=True)
class Flag:
    flag: str


@dataclass(frozen=True, slots=True)
class WithinDirectory:
    path: str


@dataclass(frozen=True, slots=True)
class AnyExecute:
    pass


@dataclass(frozen=True, slots=True)
class PipedToShell:
    pass


@dataclass(frozen=True, slots=True)
class And:
    matchers: tuple[Matcher, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "matchers", tuple(self.matchers))


@dataclass(frozen=True, slots=True)
class Or:
    matchers: tuple[Matcher, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "matchers", tuple(self.matchers))


Matcher = Union[
    CommandName,
    Subcommand,
    AnySubcommand,
    Flag,
    WithinDirectory,
    AnyExecute,
    PipedToShell,
    And,
    Or,
]


@dataclass(frozen=True, slots=True)
class Rule:
    matcher: Matcher
    outcome: Outcome
    rule_id: str = "rule"


def command(
    name: str,
    subcommands: Iterable[str] | str | None = None,
    flags: Iterable[str] = (),
) -> Matcher:
    """Build the common ``name [subcommand] [flags]`` shape as one matcher.

    ``command("git", "push", flags=["--force"])`` is
    ``And(CommandName("git"), Subcommand("push"), Flag("--force"))``; a bare
    name stays a plain ``CommandName``.
    """
    parts: list[Matcher] = [CommandName(name)]
    if isinstance(subcommands, str):
        parts.append(Subcommand(subcommands))
    elif subcommands is not None:
        parts.append(AnySubcommand(subcommands))
    parts.extend(Flag(flag) for flag in flags)
    if len(parts) == 1:
        return parts[0]
    return And(parts)


def describe(matcher: Matcher) -> str:
    if isinstance(matcher, CommandName):
        return f"command={matcher.name}"
    if isinstance(matcher, Subcommand):
        return f"subcommand={matcher.name}"
    if isinstance(matcher, AnySubcommand):
        return "subcommand in {" + ",".join(sorted(matcher.names)) + "}"
    if isinstance(matcher, Flag):
        return f"flag {matcher.flag}"
    if isinstance(matcher, WithinDirectory):
        return f"within {matcher.path}"
    if isinstance(matcher, AnyExecute):
        return "any execute"
    if isinstance(matcher, PipedToShell):
        return "piped to shell"
    if isinstance(matcher, And):
        return " & ".join(describe(m) for m in matcher.matchers) or "always"
    if isinstance(matcher, Or):
        return "(" + " | ".join(describe(m) for m in matcher.matchers) + ")"
    return repr(matcher)
