"""Policy validation – rules enforced where policies are stored, not where they are evaluated."""

from __future__ import annotations

import ipaddress
import re

from src.policy.errors import PolicyValidationError
from src.policy.model import MAX_CUSTOM_PRIORITY, MAX_PRIORITY, MIN_SYSTEM_PRIORITY, Policy

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_priority(policy: Policy) -> None:
    if isinstance(policy.priority, bool) or not isinstance(policy.priority, int):
        raise PolicyValidationError(f"Priority must be an integer, got {policy.priority!r}")
    if not 0 <= policy.priority <= MAX_PRIORITY:
        raise PolicyValidationError(f"Priority {policy.priority} outside 0-{MAX_PRIORITY}")
    if policy.is_system_policy and policy.priority < MIN_SYSTEM_PRIORITY:
        raise PolicyValidationError(
            f"System policy priority {policy.priority} below reserved band {MIN_SYSTEM_PRIORITY}-{MAX_PRIORITY}"
        )
    if not policy.is_system_policy and policy.priority > MAX_CUSTOM_PRIORITY:
        raise PolicyValidationError(
            f"Custom policy priority {policy.priority} above {MAX_CUSTOM_PRIORITY}; "
            f"{MIN_SYSTEM_PRIORITY}-{MAX_PRIORITY} is reserved for system policies"
        )


def _check_environment(policy: Policy) -> None:
    env = policy.environment
    if env is None:
        return
    if env.time_of_day is not None:
        start, end = env.time_of_day.start, env.time_of_day.end
        for value in (start, end):
            if not _HHMM.match(value):
                raise PolicyValidationError(f"Time '{value}' is not HH:MM")
        if start > end:
            raise PolicyValidationError(f"Time range {start}-{end} crosses midnight; split it into two policies")
    for day in env.days_of_week or ():
        if not 0 <= day <= 6:
            raise PolicyValidationError(f"Day of week {day} outside 0-6 (0 = Sunday)")
    for entry in (env.ip_allow_list or ()) + (env.ip_deny_list or ()):
        try:
            ipaddress.ip_network(entry.strip(), strict=False)
        except ValueError as exc:
            raise PolicyValidationError(f"Invalid IP address or CIDR block: {entry!r}") from exc


def validate_policy(policy: Policy) -> Policy:
    """Raise ``PolicyValidationError`` if *policy* may not be stored; return it unchanged otherwise."""
    if not policy.name or not policy.name.strip():
        raise PolicyValidationError("Policy name must not be empty")
    if not policy.organization_id:
        raise PolicyValidationError("Policy must belong to an organization")
    if not policy.action.actions:
        raise PolicyValidationError("Action condition requires at least one action")
    _check_priority(policy)
    attrs = policy.resource.attributes
    if attrs is not None and attrs.account_number is not None and attrs.account_number.range is not None:
        lo, hi = attrs.account_number.range
        if lo > hi:
            raise PolicyValidationError(f"Account number range [{lo}, {hi}] is empty")
    _check_environment(policy)
    return policy
