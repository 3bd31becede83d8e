"""Authorization service – orchestrates a permission check.

Flow: load active policies -> build evaluation context -> EVALUATE_POLICIES
      -> record denial -> decision record with evidence
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

import duckdb

from src.config.settings import Settings, configure_logging, load_settings
from src.data.audit_log import AuditLog, DenialEntry
from src.data.policy_store import PolicyStore
from src.data.seed import seed_database
from src.policy.engine import evaluate_policies
from src.policy.evaluator import evaluate_policy
from src.policy.model import (
    ACTIONS,
    Decision,
    Effect,
    EntityResource,
    EnvironmentContext,
    EvaluationContext,
    Policy,
    ResourceContext,
    SubjectContext,
    resource_type_for_action,
)
from src.query.compiler import AuditQuery

logger = logging.getLogger(__name__)


def _policy_set_hash(policies: Sequence[Policy]) -> str:
    digest = hashlib.sha256()
    for p in sorted(policies, key=lambda p: p.id):
        digest.update(f"{p.id}:{p.updated_at}".encode())
    return digest.hexdigest()[:16]


def _resource_for(action: str, resource: ResourceContext | None) -> ResourceContext | None:
    if resource is not None:
        return resource
    rtype = resource_type_for_action(action)
    return None if rtype is None else EntityResource(type=rtype)


def make_decision_record(
    action: str,
    resource: ResourceContext | None,
    decision: Decision,
    policies: Sequence[Policy],
) -> dict[str, Any]:
    """Build a JSON-serialisable record of one authorization decision."""
    return {
        "allowed": decision.allowed,
        "decision": decision.decision.value,
        "action": action,
        "resource_type": None if resource is None else resource.type.value,
        "reason": decision.reason,
        "default_deny": decision.default_deny,
        "denied_by_policy": decision.denied_by_policy,
        "matched_policy_ids": [p.id for p in decision.matched_policies],
        "matched_policy_names": [p.name for p in decision.matched_policies],
        "evidence": {
            "evaluation_id": str(uuid.uuid4()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "policy_set_hash": _policy_set_hash(policies),
            "active_policy_count": len(policies),
        },
    }


class AuthorizationService:
    """Caller-side glue between the policy store, the engine and the audit log."""

    def __init__(self, con: duckdb.DuckDBPyConnection, settings: Settings | None = None) -> None:
        self.settings = settings or load_settings()
        self.policies = PolicyStore(con, catalog_path=self.settings.system_catalog_path)
        self.audit = AuditLog(con)

    def provision_organization(self, organization_id: str) -> list[Policy]:
        return self.policies.seed_system_policies(organization_id)

    def _decide(
        self,
        policies: Sequence[Policy],
        subject: SubjectContext,
        action: str,
        resource: ResourceContext | None,
        environment: EnvironmentContext | None,
    ) -> Decision | None:
        if resource is None:
            return None
        context = EvaluationContext(subject=subject, resource=resource, action=action, environment=environment)
        return evaluate_policies(policies, context)

    def check_permission(
        self,
        organization_id: str,
        subject: SubjectContext,
        action: str,
        resource: ResourceContext | None = None,
        environment: EnvironmentContext | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """Decide *action* for *subject* and record the denial if there is one.

        Without *resource*, a bare resource typed by the action prefix is
        used; an action with an unknown prefix is denied outright.
        """
        policies = self.policies.find_active_by_organization(organization_id)
        resource = _resource_for(action, resource)
        decision = self._decide(policies, subject, action, resource, environment)
        if decision is None:
            decision = Decision(
                decision=Effect.DENY,
                default_deny=True,
                denied_by_policy=False,
                reason=f"Unknown resource type for action '{action}' - default deny",
            )

        record = make_decision_record(action, resource, decision, policies)
        if not decision.allowed:
            logger.info(
                "denied user=%s org=%s action=%s reason=%s",
                subject.user_id,
                organization_id,
                action,
                decision.reason,
            )
            if self.settings.audit_denials:
                self.audit.log_denial(
                    DenialEntry(
                        user_id=subject.user_id,
                        organization_id=organization_id,
                        action=action,
                        resource_type=record["resource_type"] or action.partition(":")[0],
                        resource_id=getattr(resource, "id", None),
                        denial_reason=decision.reason,
                        matched_policy_ids=tuple(record["matched_policy_ids"]),
                        ip_address=None if environment is None else environment.ip_address,
                        user_agent=user_agent,
                    )
                )
        return record

    def check_permissions(
        self,
        organization_id: str,
        subject: SubjectContext,
        actions: Iterable[str],
        resource: ResourceContext | None = None,
        environment: EnvironmentContext | None = None,
    ) -> dict[str, bool]:
        """Allow/deny per action without audit records, e.g. for toggling UI affordances."""
        policies = self.policies.find_active_by_organization(organization_id)
        result: dict[str, bool] = {}
        for action in actions:
            decision = self._decide(policies, subject, action, _resource_for(action, resource), environment)
            result[action] = decision is not None and decision.allowed
        return result

    def allowed_actions(
        self,
        organization_id: str,
        subject: SubjectContext,
        resource: ResourceContext | None = None,
        environment: EnvironmentContext | None = None,
        candidates: Iterable[str] = ACTIONS,
    ) -> list[str]:
        checked = self.check_permissions(organization_id, subject, candidates, resource, environment)
        return [action for action, allowed in checked.items() if allowed]

    def denials(self, organization_id: str, query: AuditQuery | None = None) -> list[DenialEntry]:
        """Recent denials in *organization_id*; page size defaults to ``settings.audit_query_limit``."""
        query = query or AuditQuery(limit=self.settings.audit_query_limit)
        return self.audit.find_by_organization(organization_id, query)

    def explain(
        self,
        organization_id: str,
        subject: SubjectContext,
        action: str,
        resource: ResourceContext | None = None,
        environment: EnvironmentContext | None = None,
    ) -> list[dict[str, Any]]:
        """Per-policy verdicts for every active policy, highest priority first."""
        resource = _resource_for(action, resource)
        if resource is None:
            return []
        context = EvaluationContext(subject=subject, resource=resource, action=action, environment=environment)
        explained = []
        for policy in self.policies.find_active_by_organization(organization_id):
            result = evaluate_policy(policy, context)
            explained.append(
                {
                    "policy_id": policy.id,
                    "name": policy.name,
                    "effect": policy.effect.value,
                    "priority": policy.priority,
                    "is_system_policy": policy.is_system_policy,
                    "matched": result.matched,
                    "mismatch_reason": result.mismatch_reason,
                }
            )
        return explained


def open_service(settings: Settings | None = None, organization_ids: Iterable[str] = ()) -> AuthorizationService:
    """Configure logging, open ``settings.db_path`` and provision *organization_ids*."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    con = seed_database(settings.db_path, organization_ids, catalog_path=settings.system_catalog_path)
    return AuthorizationService(con, settings)
