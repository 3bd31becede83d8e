"""Resource matcher – resource type and attribute constraints.

Attribute constraints fail closed: a constraint on an attribute the
resource does not carry is a non-match.
"""

from __future__ import annotations

from typing import Any

from src.policy.model import (
    ANY,
    AccountNumberCondition,
    ResourceAttributes,
    ResourceCondition,
    ResourceContext,
    ResourceType,
    _AnyMarker,
)

# attribute name -> label used in mismatch reasons
_SET_ATTRIBUTES: dict[str, str] = {
    "account_type": "Account type",
    "entry_type": "Entry type",
    "period_status": "Period status",
}

_BOOLEAN_ATTRIBUTES: dict[str, tuple[str, str]] = {
    "is_intercompany": ("intercompany", "non-intercompany"),
    "is_own_entry": ("own entry", "other's entry"),
    "is_adjustment_period": ("adjustment period", "regular period"),
}

_ATTRIBUTE_ORDER = (
    "account_number",
    "account_type",
    "is_intercompany",
    "entry_type",
    "is_own_entry",
    "period_status",
    "is_adjustment_period",
)


def _label(value: Any) -> str:
    return str(getattr(value, "value", value))


def matches_resource_type(condition_type: ResourceType | _AnyMarker, resource_type: ResourceType) -> bool:
    return condition_type is ANY or condition_type == resource_type


def matches_account_number(condition: AccountNumberCondition, account_number: int) -> bool:
    if condition.range is not None:
        lo, hi = condition.range
        if not lo <= account_number <= hi:
            return False
    if condition.in_:
        if account_number not in condition.in_:
            return False
    return True


def _account_number_reason(condition: AccountNumberCondition, account_number: int) -> str:
    if condition.range is not None:
        lo, hi = condition.range
        if not lo <= account_number <= hi:
            return f"Account number {account_number} out of range [{lo}, {hi}]"
    allowed = ", ".join(str(n) for n in condition.in_ or ())
    return f"Account number {account_number} not in allowed list: [{allowed}]"


def _attribute_reason(attributes: ResourceAttributes, resource: ResourceContext, name: str) -> str | None:
    constraint = getattr(attributes, name)
    if constraint is None:
        return None
    if name in _SET_ATTRIBUTES and not constraint:
        return None

    actual = getattr(resource, name, None)
    readable = name.replace("_", " ")
    if actual is None:
        return f"Condition requires {readable} but resource has none"

    if name == "account_number":
        if not matches_account_number(constraint, actual):
            return _account_number_reason(constraint, actual)
        return None

    if name in _SET_ATTRIBUTES:
        if actual not in constraint:
            allowed = ", ".join(_label(v) for v in constraint)
            return f"{_SET_ATTRIBUTES[name]} '{_label(actual)}' not allowed: [{allowed}]"
        return None

    if actual != constraint:
        yes, no = _BOOLEAN_ATTRIBUTES[name]
        return f"Resource is {yes if actual else no} but condition requires {yes if constraint else no}"
    return None


def resource_mismatch_reason(condition: ResourceCondition, resource: ResourceContext) -> str | None:
    """Return why *resource* fails *condition*, or ``None`` when it matches."""
    if not matches_resource_type(condition.type, resource.type):
        return f"Resource type '{_label(resource.type)}' does not match condition type '{_label(condition.type)}'"

    if condition.attributes is not None:
        for name in _ATTRIBUTE_ORDER:
            reason = _attribute_reason(condition.attributes, resource, name)
            if reason is not None:
                return reason
    return None


def matches_resource(condition: ResourceCondition, resource: ResourceContext) -> tuple[bool, str | None]:
    reason = resource_mismatch_reason(condition, resource)
    return reason is None, reason
