from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field

from toolcap.policy.evaluate import Decision
from toolcap.policy.model import Outcome
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
from toolcap.policy.scope import PathResolver

logger = logging.getLogger(__name__)

COMMAND_FIELDS = ("command", "cmd", "script")
PATH_FIELDS = ("path", "file", "file_path", "filename")
SOURCE_FIELDS = ("from", "source", "src")
DESTINATION_FIELDS = ("to", "destination", "dest")
CWD_FIELDS = ("cwd", "working_directory", "workdir")

ALLOW_ONCE = "allow_once"
ALLOW_ALWAYS = "allow_always"
REJECT_ONCE = "reject_once"
REJECT_ALWAYS = "reject_always"


class AcpAdapterError(ValueError):
    pass


@dataclass(slots=True)
class PermissionDecision:
    outcome: Outcome
    operation: Operation
    option_id: str | None = None
    option_kind: str | None = None
    trace: list[Decision] = field(default_factory=list)

    @property
    def forward(self) -> bool:
        return self.option_id is None

    def response(self) -> dict | None:
        if self.option_id is None:
            return None
        return {"outcome": {"outcome": "selected", "optionId": self.option_id}}


def _tool_call(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise AcpAdapterError("permission request must be an object")
    tool_call = payload.get("toolCall")
    if not isinstance(tool_call, dict):
        raise AcpAdapterError("toolCall must be an object")
    return tool_call


def _first_string(raw_input: object, names: tuple[str, ...]) -> str | None:
    if not isinstance(raw_input, dict):
        return None
    for name in names:
        value = raw_input.get(name)
        if isinstance(value, str):
            return value
    return None


def _command_text(raw_input: object) -> str:
    if isinstance(raw_input, str):
        return raw_input
    if not isinstance(raw_input, dict):
        return ""
    for name in COMMAND_FIELDS:
        value = raw_input.get(name)
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            return shlex.join(str(part) for part in value)
    return ""


def _path(raw_input: object) -> str:
    if isinstance(raw_input, str):
        return raw_input
    return _first_string(raw_input, PATH_FIELDS) or ""


def operation_from_request(payload: dict, fallback_cwd: str | None = None) -> Operation:
    tool_call = _tool_call(payload)
    raw_kind = tool_call.get("kind") or OperationKind.OTHER.value
    if not isinstance(raw_kind, str):
        raise AcpAdapterError("toolCall.kind must be a string")
    try:
        kind = OperationKind(raw_kind)
    except ValueError as exc:
        raise AcpAdapterError(f"unsupported tool kind: {raw_kind}") from exc

    raw_input = tool_call.get("rawInput")
    if raw_input is not None and not isinstance(raw_input, (dict, str)):
        raise AcpAdapterError("toolCall.rawInput must be an object or a string")

    if kind is OperationKind.EXECUTE:
        cwd = _first_string(raw_input, CWD_FIELDS) or fallback_cwd
        return Execute(_command_text(raw_input), working_directory=cwd)
    if kind is OperationKind.READ:
        return Read(_path(raw_input))
    if kind is OperationKind.EDIT:
        return Edit(_path(raw_input))
    if kind is OperationKind.DELETE:
        return Delete(_path(raw_input))
    if kind is OperationKind.MOVE:
        return Move(
            _first_string(raw_input, SOURCE_FIELDS) or "",
            _first_string(raw_input, DESTINATION_FIELDS) or "",
        )
    if kind is OperationKind.SEARCH:
        return Search(_first_string(raw_input, ("query",)) or "")
    if kind is OperationKind.FETCH:
        return Fetch(_first_string(raw_input, ("url",)) or "")
    if kind is OperationKind.THINK:
        return Think()
    if kind is OperationKind.SWITCH_MODE:
        return SwitchMode(_first_string(raw_input, ("mode",)) or "")

    title = tool_call.get("title")
    return Other(name=title if isinstance(title, str) and title else "unknown")


def _options(payload: dict) -> dict[str, str]:
    options = payload.get("options", [])
    if options is None:
        options = []
    if not isinstance(options, list):
        raise AcpAdapterError("options must be a list")

    by_kind: dict[str, str] = {}
    for idx, option in enumerate(options):
        if not isinstance(option, dict):
            raise AcpAdapterError(f"option at index {idx} must be an object")
        option_id = option.get("optionId")
        kind = option.get("kind")
        if not isinstance(option_id, str) or not option_id:
            raise AcpAdapterError(f"option at index {idx} is missing optionId")
        if isinstance(kind, str):
            by_kind.setdefault(kind, option_id)
    return by_kind


def _preference(outcome: Outcome, remember: bool) -> tuple[str, ...]:
    if outcome is Outcome.ALLOW:
        return (ALLOW_ALWAYS, ALLOW_ONCE) if remember else (ALLOW_ONCE, ALLOW_ALWAYS)
    if outcome is Outcome.DENY:
        return (REJECT_ALWAYS, REJECT_ONCE) if remember else (REJECT_ONCE, REJECT_ALWAYS)
    return ()


def decide_request(
    payload: dict,
    ruleset: Ruleset,
    remember: bool = False,
    resolver: PathResolver | None = None,
    fallback_cwd: str | None = None,
) -> PermissionDecision:
    operation = operation_from_request(payload, fallback_cwd=fallback_cwd)
    options = _options(payload)
    outcome, trace = ruleset.explain(operation, resolver)

    for kind in _preference(outcome, remember):
        if kind in options:
            logger.info("%s -> %s (%s)", describe_request(payload), outcome.value, kind)
            return PermissionDecision(outcome, operation, options[kind], kind, trace)

    if outcome is not Outcome.UNKNOWN:
        logger.warning("no %s option offered for %s; forwarding", outcome.value, describe_request(payload))
    else:
        logger.info("%s -> forward", describe_request(payload))
    return PermissionDecision(outcome, operation, trace=trace)


def describe_request(payload: dict) -> str:
    tool_call = payload.get("toolCall") if isinstance(payload, dict) else None
    if not isinstance(tool_call, dict):
        return "unknown:?"
    kind = tool_call.get("kind") or "other"
    command = _command_text(tool_call.get("rawInput")) or "?"
    return f"{kind}:{command}"
