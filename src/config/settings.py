"""Settings – YAML defaults with environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Any

import yaml

_SETTINGS_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "data", "settings.yaml")

_ENV_PREFIX = "LEDGER_AUTHZ_"
_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    db_path: str = ":memory:"
    audit_denials: bool = True
    system_catalog_path: str | None = None
    log_level: str = "INFO"
    audit_query_limit: int = 50


def _coerce(name: str, value: Any) -> Any:
    if name == "audit_denials" and isinstance(value, str):
        return value.strip().lower() in _TRUE
    if name == "audit_query_limit":
        return int(value)
    return value


def load_settings(path: str | None = None) -> Settings:
    """Read *path* (default ``data/settings.yaml``) and apply ``LEDGER_AUTHZ_*`` overrides."""
    path = path or _SETTINGS_PATH
    values: dict[str, Any] = {}
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            values = yaml.safe_load(f) or {}

    known = {f.name for f in fields(Settings)}
    resolved = {k: _coerce(k, v) for k, v in values.items() if k in known}
    for name in ("db_path", "audit_denials", "log_level"):
        env = os.environ.get(_ENV_PREFIX + name.upper())
        if env is not None:
            resolved[name] = _coerce(name, env)
    return Settings(**resolved)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
