"""Environment matcher – time of day, day of week and IP lists.

A policy with an environment condition never matches a context without
one. Times compare as ``HH:MM`` strings and ranges do not wrap past
midnight.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Collection

from src.policy.model import EnvironmentCondition, EnvironmentContext, TimeRange

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

MISSING_ENVIRONMENT = "missing environment context"


def _day_name(day: int) -> str:
    return DAY_NAMES[day] if 0 <= day < len(DAY_NAMES) else str(day)


def matches_time_of_day(time_range: TimeRange, current_time: str) -> bool:
    return time_range.start <= current_time <= time_range.end


def matches_day_of_week(days: Collection[int], current_day: int) -> bool:
    return current_day in days


def matches_ip_pattern(pattern: str, ip_address: str) -> bool:
    """Literal or CIDR containment. Malformed patterns or addresses never match."""
    try:
        address = ipaddress.ip_address(ip_address.strip())
        network = ipaddress.ip_network(pattern.strip(), strict=False)
    except ValueError:
        return False
    return address.version == network.version and address in network


def _valid_ip(ip_address: str | None) -> bool:
    if ip_address is None:
        return False
    try:
        ipaddress.ip_address(ip_address.strip())
    except ValueError:
        return False
    return True


def environment_mismatch_reason(
    condition: EnvironmentCondition | None, context: EnvironmentContext | None
) -> str | None:
    """Return why *context* fails *condition*, or ``None`` when it matches."""
    if condition is None:
        return None
    if context is None:
        return MISSING_ENVIRONMENT

    if condition.time_of_day is not None:
        if context.current_time is None:
            return "Condition requires time of day but environment has no time"
        if not matches_time_of_day(condition.time_of_day, context.current_time):
            tr = condition.time_of_day
            return f"Current time '{context.current_time}' is not within allowed range {tr.start} to {tr.end}"

    if condition.days_of_week:
        if context.current_day_of_week is None:
            return "Condition requires day of week but environment has no day"
        if not matches_day_of_week(condition.days_of_week, context.current_day_of_week):
            allowed = ", ".join(_day_name(d) for d in condition.days_of_week)
            return f"Current day '{_day_name(context.current_day_of_week)}' is not in allowed days: [{allowed}]"

    if condition.ip_allow_list or condition.ip_deny_list:
        if not _valid_ip(context.ip_address):
            return "Condition requires a valid IP address but environment has none"

    if condition.ip_allow_list:
        if not any(matches_ip_pattern(p, context.ip_address) for p in condition.ip_allow_list):
            return f"IP address '{context.ip_address}' is not in allowed list: [{', '.join(condition.ip_allow_list)}]"

    if condition.ip_deny_list:
        if any(matches_ip_pattern(p, context.ip_address) for p in condition.ip_deny_list):
            return f"IP address '{context.ip_address}' is in deny list: [{', '.join(condition.ip_deny_list)}]"

    return None


def matches_environment(
    condition: EnvironmentCondition | None, context: EnvironmentContext | None
) -> tuple[bool, str | None]:
    reason = environment_mismatch_reason(condition, context)
    return reason is None, reason
