from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Iterator, Union


@dataclass(frozen=True, slots=True)
class Command:
    name: str
    args: tuple[str, ...] = ()

    @property
    def flags(self) -> frozenset[str]:
        return frozenset(arg for arg in self.args if arg.startswith("-"))

    @property
    def subcommand(self) -> str | None:
        for arg in self.args:
            if not arg.startswith("-"):
                return arg
        return None

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags

    def render(self) -> str:
        return shlex.join([self.name, *self.args])


@dataclass(frozen=True, slots=True)
class Simple:
    command: Command


@dataclass(frozen=True, slots=True)
class Pipeline:
    nodes: tuple[ShellNode, ...]


@dataclass(frozen=True, slots=True)
class Sequence:
    nodes: tuple[ShellNode, ...] = ()


@dataclass(frozen=True, slots=True)
class AndIf:
    left: ShellNode
    right: ShellNode


@dataclass(frozen=True, slots=True)
class OrIf:
    left: ShellNode
    right: ShellNode


@dataclass(frozen=True, slots=True)
class Opaque:
    raw: str
    reason: str = "unsupported construct"


ShellNode = Union[Simple, Pipeline, Sequence, AndIf, OrIf, Opaque]


def children(node: ShellNode) -> tuple[ShellNode, ...]:
    if isinstance(node, (Pipeline, Sequence)):
        return node.nodes
    if isinstance(node, (AndIf, OrIf)):
        return (node.left, node.right)
    return ()


def iter_leaves(node: ShellNode) -> Iterator[Simple | Opaque]:
    """Yield simple and opaque leaves in the order they were written."""
    if isinstance(node, (Simple, Opaque)):
        yield node
        return
    for child in children(node):
        yield from iter_leaves(child)


def iter_commands(node: ShellNode) -> Iterator[Command]:
    for leaf in iter_leaves(node):
        if isinstance(leaf, Simple):
            yield leaf.command


def iter_opaque(node: ShellNode) -> Iterator[Opaque]:
    for leaf in iter_leaves(node):
        if isinstance(leaf, Opaque):
            yield leaf
