from __future__ import annotations

import logging
from pathlib import Path

import yaml

from .groups import GROUPS, default_ruleset
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
    Rule,
    Subcommand,
    WithinDirectory,
)
from .ruleset import Ruleset

logger = logging.getLogger(__name__)

MATCH_KEYS = (
    "command",
    "subcommand",
    "subcommands",
    "flag",
    "flags",
    "within",
    "any_execute",
    "piped_to_shell",
    "group",
    "all",
    "any",
)


class PolicyError(ValueError):
    pass


def _ensure_list(value: object, field_name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PolicyError(f"{field_name} must be a list")
    return value


def _nested(value: object, where: str) -> list[Matcher]:
    items = _ensure_list(value, where)
    if not items:
        raise PolicyError(f"{where} must not be empty")
    return [parse_matcher(item, f"{where}[{idx}]") for idx, item in enumerate(items)]


def parse_matcher(data: object, where: str = "match") -> Matcher:
    if not isinstance(data, dict) or not data:
        raise PolicyError(f"{where} must be a non-empty mapping")

    unknown = sorted(str(k) for k in data if k not in MATCH_KEYS)
    if unknown:
        raise PolicyError(f"{where}: unknown matcher keys {', '.join(unknown)}")

    parts: list[Matcher] = []
    if "command" in data:
        parts.append(CommandName(str(data["command"])))
    if "subcommand" in data:
        parts.append(Subcommand(str(data["subcommand"])))
    if "subcommands" in data:
        names = [str(v) for v in _ensure_list(data["subcommands"], f"{where}.subcommands")]
        parts.append(AnySubcommand(frozenset(names)))
    if "flag" in data:
        parts.append(Flag(str(data["flag"])))
    parts.extend(Flag(str(v)) for v in _ensure_list(data.get("flags"), f"{where}.flags"))
    if "within" in data:
        parts.append(WithinDirectory(str(data["within"])))
    if data.get("any_execute"):
        parts.append(AnyExecute())
    if data.get("piped_to_shell"):
        parts.append(PipedToShell())
    if "group" in data:
        name = str(data["group"])
        if name not in GROUPS:
            raise PolicyError(f"{where}: unknown group {name!r} (expected one of {', '.join(sorted(GROUPS))})")
        parts.append(GROUPS[name]())
    if "all" in data:
        parts.append(And(_nested(data["all"], f"{where}.all")))
    if "any" in data:
        parts.append(Or(_nested(data["any"], f"{where}.any")))

    if not parts:
        raise PolicyError(f"{where} does not constrain anything")
    if len(parts) == 1:
        return parts[0]
    return And(parts)


def ruleset_from_dict(data: dict, default_id: str = "ruleset") -> Ruleset:
    if not isinstance(data, dict):
        raise PolicyError("Ruleset must be a mapping")

    rules: list[Rule] = []
    for idx, item in enumerate(_ensure_list(data.get("rules"), "rules")):
        if not isinstance(item, dict) or "match" not in item:
            raise PolicyError(f"Invalid rule at index {idx}")
        try:
            outcome = Outcome.parse(item.get("outcome", ""))
        except ValueError as exc:
            raise PolicyError(f"Invalid outcome {item.get('outcome')!r} in rule at index {idx}") from exc
        rules.append(
            Rule(
                matcher=parse_matcher(item["match"], f"rules[{idx}].match"),
                outcome=outcome,
                rule_id=str(item.get("rule_id", f"rule_{idx}")),
            )
        )

    ruleset = Ruleset(rules=rules, ruleset_id=str(data.get("ruleset_id", default_id)))
    if data.get("defaults"):
        ruleset = ruleset.extended(default_ruleset().rules)
    return ruleset


def load_ruleset(path: str | Path) -> Ruleset:
    path_obj = Path(path)
    if not path_obj.exists():
        raise PolicyError(f"Ruleset file not found: {path_obj}")

    try:
        data = yaml.safe_load(path_obj.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise PolicyError(f"Ruleset is not valid YAML: {exc}") from exc

    ruleset = ruleset_from_dict(data, default_id=path_obj.stem)
    logger.debug("loaded ruleset %s with %d rules from %s", ruleset.ruleset_id, len(ruleset.rules), path_obj)
    return ruleset
