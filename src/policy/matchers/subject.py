"""Subject matcher – does a policy's subject condition cover the requesting subject?"""

from __future__ import annotations

from collections.abc import Collection

from src.policy.model import ANY, SubjectCondition, SubjectContext, _AnyMarker


def matches_roles(roles: Collection[str | _AnyMarker], role: str) -> bool:
    return ANY in roles or role in roles


def matches_functional_roles(required: Collection[str], held: Collection[str]) -> bool:
    """At least one held functional role must be in the required set."""
    return any(r in required for r in held)


def matches_user_ids(user_ids: Collection[str], user_id: str) -> bool:
    return user_id in user_ids


def matches_platform_admin(required: bool, actual: bool) -> bool:
    return required == actual


def subject_mismatch_reason(condition: SubjectCondition, subject: SubjectContext) -> str | None:
    """Return why *subject* fails *condition*, or ``None`` when it matches."""
    if condition.is_platform_admin is not None:
        if not matches_platform_admin(condition.is_platform_admin, subject.is_platform_admin):
            actual = "platform admin" if subject.is_platform_admin else "non-platform admin"
            expected = "platform admin" if condition.is_platform_admin else "non-platform admin"
            return f"Platform admin mismatch: subject is {actual} but condition requires {expected}"

    if condition.roles:
        if not matches_roles(condition.roles, subject.role):
            allowed = ", ".join(str(r) for r in condition.roles)
            return f"Role mismatch: role '{subject.role}' is not in allowed roles: [{allowed}]"

    if condition.functional_roles:
        if not matches_functional_roles(condition.functional_roles, subject.functional_roles):
            held = ", ".join(sorted(subject.functional_roles)) or "none"
            required = ", ".join(condition.functional_roles)
            return f"Functional role mismatch: subject has [{held}] but condition requires one of [{required}]"

    if condition.user_ids:
        if not matches_user_ids(condition.user_ids, subject.user_id):
            return f"User ID mismatch: user '{subject.user_id}' is not in allowed user IDs"

    return None


def matches_subject(condition: SubjectCondition, subject: SubjectContext) -> tuple[bool, str | None]:
    reason = subject_mismatch_reason(condition, subject)
    return reason is None, reason
