from __future__ import annotations

import os
from dataclasses import dataclass

from toolcap.policy.scope import DEFAULT_RESOLVE_TIMEOUT

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class Settings:
    ruleset_path: str = ""
    audit_dir: str = ""
    resolve_timeout: float = DEFAULT_RESOLVE_TIMEOUT
    remember: bool = False


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings() -> Settings:
    return Settings(
        ruleset_path=os.environ.get("TOOLCAP_RULESET", "").strip(),
        audit_dir=os.environ.get("TOOLCAP_AUDIT_DIR", "").strip(),
        resolve_timeout=_float_env("TOOLCAP_RESOLVE_TIMEOUT", DEFAULT_RESOLVE_TIMEOUT),
        remember=os.environ.get("TOOLCAP_REMEMBER", "").strip().lower() in _TRUTHY,
    )
