"""System policy catalog – YAML-defined baseline policies provisioned for every organization."""

import os
import uuid
from typing import Any, Sequence

import yaml

from src.policy.codec import policy_from_dict
from src.policy.errors import PolicyValidationError
from src.policy.model import SYSTEM_POLICY_PRIORITIES, Policy

_CATALOG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "data", "system_policies.yaml")

SYSTEM_POLICY_COUNT = 8


def _load_catalog(path: str | None = None) -> list[dict[str, Any]]:
    path = path or _CATALOG_PATH
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return list(data.get("system_policies", []))


def _resolve_priority(value: Any) -> int:
    if isinstance(value, int):
        return value
    try:
        return SYSTEM_POLICY_PRIORITIES[str(value)]
    except KeyError as exc:
        raise PolicyValidationError(f"Unknown system policy priority: {value!r}") from exc


def system_policies_for(organization_id: str, catalog_path: str | None = None) -> list[Policy]:
    """SYSTEM_POLICIES – the baseline policy set for *organization_id*.

    Names, effects and priorities are fixed by the catalog; every call
    mints fresh ids, so callers persist the result once per organization.
    """
    policies: list[Policy] = []
    for entry in _load_catalog(catalog_path):
        policies.append(
            policy_from_dict(
                {
                    **entry,
                    "id": str(uuid.uuid4()),
                    "organizationId": organization_id,
                    "priority": _resolve_priority(entry.get("priority")),
                    "isSystemPolicy": True,
                    "isActive": True,
                }
            )
        )
    return policies


def has_system_policies(policies: Sequence[Policy]) -> bool:
    """True when *policies* already hold a full system catalog."""
    return sum(1 for p in policies if p.is_system_policy) >= SYSTEM_POLICY_COUNT
