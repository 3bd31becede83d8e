"""Action matcher – exact membership or the global ``*`` wildcard."""

from __future__ import annotations

from collections.abc import Iterable

from src.policy.model import ANY, ActionCondition


def matches_action(condition: ActionCondition, action: str) -> tuple[bool, str | None]:
    # No prefix wildcards: "journal_entry:*" is a literal, not a pattern.
    if ANY in condition.actions or action in condition.actions:
        return True, None
    allowed = ", ".join(str(a) for a in condition.actions)
    return False, f"Action '{action}' does not match condition actions: [{allowed}]"


def filter_matching_actions(condition: ActionCondition, actions: Iterable[str]) -> list[str]:
    """Return the subset of *actions* covered by *condition*, in input order."""
    return [a for a in actions if matches_action(condition, a)[0]]
