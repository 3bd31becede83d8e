"""Policy codec – convert between plain dicts (YAML / JSON rows) and typed policies.

Keys are camelCase, matching the stored JSON condition documents. The
string ``"*"`` decodes to ``ANY``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from src.policy.errors import PolicyValidationError
from src.policy.model import (
    ANY,
    DEFAULT_POLICY_PRIORITY,
    AccountNumberCondition,
    AccountResource,
    AccountType,
    ActionCondition,
    Effect,
    EntityResource,
    EnvironmentCondition,
    EnvironmentContext,
    EvaluationContext,
    FiscalPeriodResource,
    JournalEntryResource,
    JournalEntryType,
    PeriodStatus,
    Policy,
    ResourceAttributes,
    ResourceCondition,
    ResourceContext,
    ResourceType,
    SubjectCondition,
    SubjectContext,
    TimeRange,
)


def _enum(enum_cls: type[Enum], value: Any, field_name: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise PolicyValidationError(f"Invalid {field_name}: {value!r}") from exc


def _enum_tuple(enum_cls: type[Enum], values: Any, field_name: str):
    if values is None:
        return None
    return tuple(_enum(enum_cls, v, field_name) for v in values)


def _wild(value: Any):
    return ANY if value == "*" else value


def _unwild(value: Any):
    if value is ANY:
        return "*"
    return getattr(value, "value", value)


def _tuple(values: Any):
    return None if values is None else tuple(values)


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as exc:
            raise PolicyValidationError(f"Invalid timestamp: {value!r}") from exc
    return value


def _hhmm(value: Any) -> str:
    # YAML 1.1 reads an unquoted 17:30 as the sexagesimal int 1050
    if isinstance(value, int):
        return f"{value // 60:02d}:{value % 60:02d}"
    return str(value)


# ---------- conditions ----------


def subject_from_dict(data: dict[str, Any] | None) -> SubjectCondition:
    data = data or {}
    roles = data.get("roles")
    return SubjectCondition(
        roles=None if roles is None else tuple(_wild(r) for r in roles),
        functional_roles=_tuple(data.get("functionalRoles")),
        user_ids=_tuple(data.get("userIds")),
        is_platform_admin=data.get("isPlatformAdmin"),
    )


def subject_to_dict(condition: SubjectCondition) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if condition.roles is not None:
        out["roles"] = [_unwild(r) for r in condition.roles]
    if condition.functional_roles is not None:
        out["functionalRoles"] = list(condition.functional_roles)
    if condition.user_ids is not None:
        out["userIds"] = list(condition.user_ids)
    if condition.is_platform_admin is not None:
        out["isPlatformAdmin"] = condition.is_platform_admin
    return out


def _account_number_from_dict(data: dict[str, Any] | None) -> AccountNumberCondition | None:
    if data is None:
        return None
    rng = data.get("range")
    if rng is not None:
        if len(rng) != 2:
            raise PolicyValidationError(f"Account number range needs [min, max], got {rng!r}")
        rng = (int(rng[0]), int(rng[1]))
    return AccountNumberCondition(range=rng, in_=_tuple(data.get("in")))


def attributes_from_dict(data: dict[str, Any] | None) -> ResourceAttributes | None:
    if data is None:
        return None
    return ResourceAttributes(
        account_number=_account_number_from_dict(data.get("accountNumber")),
        account_type=_enum_tuple(AccountType, data.get("accountType"), "account type"),
        is_intercompany=data.get("isIntercompany"),
        entry_type=_enum_tuple(JournalEntryType, data.get("entryType"), "entry type"),
        is_own_entry=data.get("isOwnEntry"),
        period_status=_enum_tuple(PeriodStatus, data.get("periodStatus"), "period status"),
        is_adjustment_period=data.get("isAdjustmentPeriod"),
    )


def attributes_to_dict(attributes: ResourceAttributes) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if attributes.account_number is not None:
        number: dict[str, Any] = {}
        if attributes.account_number.range is not None:
            number["range"] = list(attributes.account_number.range)
        if attributes.account_number.in_ is not None:
            number["in"] = list(attributes.account_number.in_)
        out["accountNumber"] = number
    for key, value in (
        ("accountType", attributes.account_type),
        ("entryType", attributes.entry_type),
        ("periodStatus", attributes.period_status),
    ):
        if value is not None:
            out[key] = [v.value for v in value]
    for key, value in (
        ("isIntercompany", attributes.is_intercompany),
        ("isOwnEntry", attributes.is_own_entry),
        ("isAdjustmentPeriod", attributes.is_adjustment_period),
    ):
        if value is not None:
            out[key] = value
    return out


def resource_condition_from_dict(data: dict[str, Any] | None) -> ResourceCondition:
    data = data or {}
    raw_type = data.get("type", "*")
    return ResourceCondition(
        type=ANY if raw_type == "*" else _enum(ResourceType, raw_type, "resource type"),
        attributes=attributes_from_dict(data.get("attributes")),
    )


def resource_condition_to_dict(condition: ResourceCondition) -> dict[str, Any]:
    out: dict[str, Any] = {"type": _unwild(condition.type)}
    if condition.attributes is not None:
        out["attributes"] = attributes_to_dict(condition.attributes)
    return out


def action_from_dict(data: dict[str, Any] | None) -> ActionCondition:
    actions = (data or {}).get("actions") or ()
    return ActionCondition(actions=tuple(_wild(a) for a in actions))


def action_to_dict(condition: ActionCondition) -> dict[str, Any]:
    return {"actions": [_unwild(a) for a in condition.actions]}


def environment_from_dict(data: dict[str, Any] | None) -> EnvironmentCondition | None:
    if data is None:
        return None
    tod = data.get("timeOfDay")
    days = data.get("daysOfWeek")
    return EnvironmentCondition(
        time_of_day=None if tod is None else TimeRange(start=_hhmm(tod["start"]), end=_hhmm(tod["end"])),
        days_of_week=None if days is None else tuple(int(d) for d in days),
        ip_allow_list=_tuple(data.get("ipAllowList")),
        ip_deny_list=_tuple(data.get("ipDenyList")),
    )


def environment_to_dict(condition: EnvironmentCondition) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if condition.time_of_day is not None:
        out["timeOfDay"] = {"start": condition.time_of_day.start, "end": condition.time_of_day.end}
    if condition.days_of_week is not None:
        out["daysOfWeek"] = list(condition.days_of_week)
    if condition.ip_allow_list is not None:
        out["ipAllowList"] = list(condition.ip_allow_list)
    if condition.ip_deny_list is not None:
        out["ipDenyList"] = list(condition.ip_deny_list)
    return out


# ---------- policies ----------


def policy_from_dict(data: dict[str, Any]) -> Policy:
    """Decode a policy document. Raises ``PolicyValidationError`` on bad enum values or empty actions."""
    for key in ("id", "organizationId", "name", "effect"):
        if key not in data:
            raise PolicyValidationError(f"Policy is missing '{key}'")
    return Policy(
        id=str(data["id"]),
        organization_id=str(data["organizationId"]),
        name=data["name"],
        description=data.get("description"),
        subject=subject_from_dict(data.get("subject")),
        resource=resource_condition_from_dict(data.get("resource")),
        action=action_from_dict(data.get("action")),
        environment=environment_from_dict(data.get("environment")),
        effect=_enum(Effect, data["effect"], "effect"),
        priority=int(data.get("priority", DEFAULT_POLICY_PRIORITY)),
        is_system_policy=bool(data.get("isSystemPolicy", False)),
        is_active=bool(data.get("isActive", True)),
        created_at=_timestamp(data.get("createdAt")),
        updated_at=_timestamp(data.get("updatedAt")),
        created_by=data.get("createdBy"),
    )


def policy_to_dict(policy: Policy) -> dict[str, Any]:
    def _ts(value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    return {
        "id": policy.id,
        "organizationId": policy.organization_id,
        "name": policy.name,
        "description": policy.description,
        "subject": subject_to_dict(policy.subject),
        "resource": resource_condition_to_dict(policy.resource),
        "action": action_to_dict(policy.action),
        "environment": None if policy.environment is None else environment_to_dict(policy.environment),
        "effect": policy.effect.value,
        "priority": policy.priority,
        "isSystemPolicy": policy.is_system_policy,
        "isActive": policy.is_active,
        "createdAt": _ts(policy.created_at),
        "updatedAt": _ts(policy.updated_at),
        "createdBy": policy.created_by,
    }


# ---------- contexts ----------


def resource_context_from_dict(data: dict[str, Any]) -> ResourceContext:
    rtype = _enum(ResourceType, data.get("type"), "resource type")
    rid = data.get("id")
    if rtype is ResourceType.ACCOUNT:
        account_type = data.get("accountType")
        return AccountResource(
            id=rid,
            account_number=data.get("accountNumber"),
            account_type=None if account_type is None else _enum(AccountType, account_type, "account type"),
            is_intercompany=data.get("isIntercompany"),
        )
    if rtype is ResourceType.JOURNAL_ENTRY:
        entry_type = data.get("entryType")
        status = data.get("periodStatus")
        return JournalEntryResource(
            id=rid,
            entry_type=None if entry_type is None else _enum(JournalEntryType, entry_type, "entry type"),
            is_own_entry=data.get("isOwnEntry"),
            period_status=None if status is None else _enum(PeriodStatus, status, "period status"),
        )
    if rtype is ResourceType.FISCAL_PERIOD:
        status = data.get("periodStatus")
        return FiscalPeriodResource(
            id=rid,
            period_status=None if status is None else _enum(PeriodStatus, status, "period status"),
            is_adjustment_period=data.get("isAdjustmentPeriod"),
        )
    return EntityResource(type=rtype, id=rid)


def context_from_dict(data: dict[str, Any]) -> EvaluationContext:
    """Build an evaluation context from a request document (policy test / explain inputs)."""
    subject = data.get("subject") or {}
    env = data.get("environment")
    return EvaluationContext(
        subject=SubjectContext(
            user_id=str(subject.get("userId", "")),
            role=subject.get("role", ""),
            functional_roles=frozenset(subject.get("functionalRoles") or ()),
            is_platform_admin=bool(subject.get("isPlatformAdmin", False)),
        ),
        resource=resource_context_from_dict(data.get("resource") or {}),
        action=data["action"],
        environment=None
        if env is None
        else EnvironmentContext(
            current_time=env.get("currentTime"),
            current_day_of_week=env.get("currentDayOfWeek"),
            ip_address=env.get("ipAddress"),
        ),
    )
