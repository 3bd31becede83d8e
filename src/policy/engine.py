"""Policy engine – ABAC decision aggregation with deny-overrides-allow.

Pure functions over a caller-supplied policy list; nothing here reads
storage or mutates its inputs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from src.policy.evaluator import evaluate_policy
from src.policy.model import Decision, Effect, EvaluationContext, MatchResult, Policy

logger = logging.getLogger(__name__)


def _active(policies: Sequence[Policy]) -> list[Policy]:
    return [p for p in policies if p.is_active]


def _by_priority(policies: list[Policy]) -> tuple[Policy, ...]:
    # sorted() is stable, so equal priorities keep declaration order
    return tuple(sorted(policies, key=lambda p: p.priority, reverse=True))


def find_matching_policies(policies: Sequence[Policy], context: EvaluationContext) -> list[MatchResult]:
    """FIND_MATCHING – every active policy matching *context*, either effect, in input order.

    For audit and explain views; not an access decision.
    """
    results = (evaluate_policy(p, context) for p in _active(policies))
    return [r for r in results if r.matched]


def evaluate_policies(policies: Sequence[Policy], context: EvaluationContext) -> Decision:
    """EVALUATE_POLICIES – reach one decision for *context*.

    Any matching deny wins regardless of priority; otherwise any matching
    allow wins; otherwise the request is denied by default.
    """
    matched = [r.policy for r in find_matching_policies(policies, context)]
    deny_set = [p for p in matched if p.effect is Effect.DENY]
    allow_set = [p for p in matched if p.effect is Effect.ALLOW]

    if deny_set:
        ordered = _by_priority(deny_set)
        decision = Decision(
            decision=Effect.DENY,
            default_deny=False,
            denied_by_policy=True,
            matched_policies=ordered,
            reason=f"Denied by policy: {ordered[0].name}",
        )
    elif allow_set:
        ordered = _by_priority(allow_set)
        decision = Decision(
            decision=Effect.ALLOW,
            default_deny=False,
            denied_by_policy=False,
            matched_policies=ordered,
            reason=f"Allowed by policy: {ordered[0].name}",
        )
    else:
        decision = Decision(
            decision=Effect.DENY,
            default_deny=True,
            denied_by_policy=False,
            matched_policies=(),
            reason="No matching allow policy found - default deny",
        )

    logger.debug(
        "action=%s resource=%s decision=%s matched=%d reason=%s",
        context.action,
        getattr(context.resource.type, "value", context.resource.type),
        decision.decision.value,
        len(decision.matched_policies),
        decision.reason,
    )
    return decision


def would_deny(policies: Sequence[Policy], context: EvaluationContext) -> bool:
    """WOULD_DENY – does any active deny policy match *context*?"""
    return any(
        evaluate_policy(p, context).matched
        for p in _active(policies)
        if p.effect is Effect.DENY
    )
