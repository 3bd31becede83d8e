"""Policy evaluator – one policy against one context."""

from __future__ import annotations

from src.policy.matchers.action import matches_action
from src.policy.matchers.environment import matches_environment
from src.policy.matchers.resource import matches_resource
from src.policy.matchers.subject import matches_subject
from src.policy.model import EvaluationContext, MatchResult, Policy


def evaluate_policy(policy: Policy, context: EvaluationContext) -> MatchResult:
    """EVALUATE_POLICY – conjunction of the four matchers.

    Stops at the first failing dimension in the order subject, resource,
    action, environment and reports that dimension's reason.
    """
    checks = (
        lambda: matches_subject(policy.subject, context.subject),
        lambda: matches_resource(policy.resource, context.resource),
        lambda: matches_action(policy.action, context.action),
        lambda: matches_environment(policy.environment, context.environment),
    )
    for check in checks:
        matched, reason = check()
        if not matched:
            return MatchResult(policy=policy, matched=False, mismatch_reason=reason)
    return MatchResult(policy=policy, matched=True)
