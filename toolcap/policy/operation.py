from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from toolcap.shell.model import ShellNode
from toolcap.shell.parse import parse


class OperationKind(str, Enum):
    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    MOVE = "move"
    SEARCH = "search"
    EXECUTE = "execute"
    FETCH = "fetch"
    THINK = "think"
    SWITCH_MODE = "switch_mode"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class Execute:
    command: str | ShellNode
    working_directory: str | None = None
    kind = OperationKind.EXECUTE

    def node(self) -> ShellNode:
        if isinstance(self.command, str):
            return parse(self.command)
        return self.command

    def summary(self) -> str:
        return self.command if isinstance(self.command, str) else repr(self.command)


@dataclass(frozen=True, slots=True)
class Read:
    path: str
    kind = OperationKind.READ


@dataclass(frozen=True, slots=True)
class Edit:
    path: str
    kind = OperationKind.EDIT


@dataclass(frozen=True, slots=True)
class Delete:
    path: str
    kind = OperationKind.DELETE


@dataclass(frozen=True, slots=True)
class Move:
    source: str
    destination: str
    kind = OperationKind.MOVE


@dataclass(frozen=True, slots=True)
class Search:
    query: str
    kind = OperationKind.SEARCH


@dataclass(frozen=True, slots=True)
class Fetch:
    url: str
    kind = OperationKind.FETCH


@dataclass(frozen=True, slots=True)
class Think:
    kind = OperationKind.THINK


@dataclass(frozen=True, slots=True)
class SwitchMode:
    mode: str
    kind = OperationKind.SWITCH_MODE


@dataclass(frozen=True, slots=True)
class Other:
    name: str
    description: str | None = None
    kind = OperationKind.OTHER


Operation = Union[Execute, Read, Edit, Delete, Move, Search, Fetch, Think, SwitchMode, Other]
