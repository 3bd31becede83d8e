"""Policy store – organization policies persisted in DuckDB.

The store is the collaborator that hands policy lists to the engine. It
validates policies on the way in (priority bands, non-empty actions,
time ranges) and protects system policies from change.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import datetime, timezone
from typing import Any

import duckdb

from src.catalog.system_policies import has_system_policies, system_policies_for
from src.data.seed import create_schema
from src.policy.codec import (
    action_from_dict,
    action_to_dict,
    environment_from_dict,
    environment_to_dict,
    resource_condition_from_dict,
    resource_condition_to_dict,
    subject_from_dict,
    subject_to_dict,
)
from src.policy.errors import PolicyNotFoundError, SystemPolicyProtectionError
from src.policy.model import Effect, Policy
from src.policy.validation import validate_policy

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, organization_id, name, description, subject_condition, resource_condition, "
    "action_condition, environment_condition, effect, priority, is_system_policy, "
    "is_active, created_at, updated_at, created_by"
)

UPDATABLE_FIELDS = frozenset(
    {"name", "description", "subject", "resource", "action", "environment", "effect", "priority", "is_active"}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _row_to_policy(row: tuple[Any, ...]) -> Policy:
    (pid, org_id, name, description, subject, resource, action, environment,
     effect, priority, is_system, is_active, created_at, updated_at, created_by) = row
    return Policy(
        id=pid,
        organization_id=org_id,
        name=name,
        description=description,
        subject=subject_from_dict(json.loads(subject)),
        resource=resource_condition_from_dict(json.loads(resource)),
        action=action_from_dict(json.loads(action)),
        environment=environment_from_dict(json.loads(environment)) if environment else None,
        effect=Effect(effect),
        priority=priority,
        is_system_policy=is_system,
        is_active=is_active,
        created_at=created_at,
        updated_at=updated_at,
        created_by=created_by,
    )


def _policy_params(policy: Policy) -> list[Any]:
    return [
        policy.id,
        policy.organization_id,
        policy.name,
        policy.description,
        json.dumps(subject_to_dict(policy.subject)),
        json.dumps(resource_condition_to_dict(policy.resource)),
        json.dumps(action_to_dict(policy.action)),
        None if policy.environment is None else json.dumps(environment_to_dict(policy.environment)),
        policy.effect.value,
        policy.priority,
        policy.is_system_policy,
        policy.is_active,
        policy.created_at,
        policy.updated_at,
        policy.created_by,
    ]


class PolicyStore:
    """CRUD over ``organization_policies``; lists come back highest priority first."""

    def __init__(self, con: duckdb.DuckDBPyConnection, catalog_path: str | None = None) -> None:
        self.con = con
        self.catalog_path = catalog_path
        create_schema(con)

    def _fetch(self, where: str, params: list[Any]) -> list[Policy]:
        rows = self.con.execute(
            f"SELECT {_COLUMNS} FROM organization_policies WHERE {where} ORDER BY priority DESC, seq",
            params,
        ).fetchall()
        return [_row_to_policy(r) for r in rows]

    # ---------- reads ----------

    def find_by_id(self, policy_id: str) -> Policy | None:
        found = self._fetch("id = ?", [policy_id])
        return found[0] if found else None

    def get_by_id(self, policy_id: str) -> Policy:
        policy = self.find_by_id(policy_id)
        if policy is None:
            raise PolicyNotFoundError(policy_id)
        return policy

    def find_by_organization(self, organization_id: str) -> list[Policy]:
        return self._fetch("organization_id = ?", [organization_id])

    def find_active_by_organization(self, organization_id: str) -> list[Policy]:
        return self._fetch("organization_id = ? AND is_active", [organization_id])

    # ---------- writes ----------

    def create(self, policy: Policy) -> Policy:
        now = _utcnow()
        policy = dataclasses.replace(
            policy,
            name=policy.name.strip(),
            created_at=policy.created_at or now,
            updated_at=now,
        )
        validate_policy(policy)
        self.con.execute(
            f"INSERT INTO organization_policies ({_COLUMNS}) VALUES ({', '.join(['?'] * 15)})",
            _policy_params(policy),
        )
        return self.get_by_id(policy.id)

    def update(self, policy_id: str, **changes: Any) -> Policy:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update policy fields: {', '.join(sorted(unknown))}")
        current = self.get_by_id(policy_id)
        if not current.can_modify():
            logger.warning("rejected update of system policy %s", policy_id)
            raise SystemPolicyProtectionError(policy_id, "update")

        updated = validate_policy(dataclasses.replace(current, **changes, updated_at=_utcnow()))
        self.con.execute(
            """
            UPDATE organization_policies SET
                name = ?, description = ?, subject_condition = ?, resource_condition = ?,
                action_condition = ?, environment_condition = ?, effect = ?, priority = ?,
                is_active = ?, updated_at = ?
            WHERE id = ?
            """,
            _policy_params(updated)[2:10] + [updated.is_active, updated.updated_at, policy_id],
        )
        return self.get_by_id(policy_id)

    def delete(self, policy_id: str) -> None:
        current = self.get_by_id(policy_id)
        if not current.can_delete():
            logger.warning("rejected delete of system policy %s", policy_id)
            raise SystemPolicyProtectionError(policy_id, "delete")
        self.con.execute("DELETE FROM organization_policies WHERE id = ?", [policy_id])

    # ---------- provisioning ----------

    def _system_policies(self, organization_id: str) -> list[Policy]:
        return [p for p in self.find_by_organization(organization_id) if p.is_system_policy]

    def seed_system_policies(self, organization_id: str) -> list[Policy]:
        """Insert the catalog entries *organization_id* is missing, matched by name.

        Existing system policies keep their ids; all inserts commit together.
        """
        existing = self._system_policies(organization_id)
        if has_system_policies(existing):
            return existing

        present = {p.name for p in existing}
        missing = [p for p in system_policies_for(organization_id, self.catalog_path) if p.name not in present]
        self.con.begin()
        try:
            for policy in missing:
                self.create(policy)
        except Exception:
            self.con.rollback()
            raise
        self.con.commit()
        logger.info("seeded %d system policies for organization %s", len(missing), organization_id)
        return self._system_policies(organization_id)
