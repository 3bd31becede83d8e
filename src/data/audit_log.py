"""Authorization audit log – denied requests recorded in DuckDB."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import duckdb

from src.data.seed import create_schema
from src.query.compiler import AUDIT_TABLE, AuditQuery, compile_audit_query


@dataclass(frozen=True)
class DenialEntry:
    user_id: str
    organization_id: str
    action: str
    resource_type: str
    denial_reason: str
    resource_id: str | None = None
    matched_policy_ids: tuple[str, ...] = ()
    ip_address: str | None = None
    user_agent: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None))


def _row_to_entry(row: tuple[Any, ...]) -> DenialEntry:
    (eid, user_id, org_id, action, resource_type, resource_id, reason,
     matched, ip_address, user_agent, created_at) = row
    return DenialEntry(
        id=eid,
        user_id=user_id,
        organization_id=org_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        denial_reason=reason,
        matched_policy_ids=tuple(json.loads(matched)),
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=created_at,
    )


class AuditLog:
    def __init__(self, con: duckdb.DuckDBPyConnection) -> None:
        self.con = con
        create_schema(con)

    def log_denial(self, entry: DenialEntry) -> DenialEntry:
        self.con.execute(
            f"""
            INSERT INTO {AUDIT_TABLE} (id, user_id, organization_id, action, resource_type, resource_id,
                denial_reason, matched_policy_ids, ip_address, user_agent, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                entry.id,
                entry.user_id,
                entry.organization_id,
                entry.action,
                entry.resource_type,
                entry.resource_id,
                entry.denial_reason,
                json.dumps(list(entry.matched_policy_ids)),
                entry.ip_address,
                entry.user_agent,
                entry.created_at,
            ],
        )
        return entry

    def _find(self, scope: str, scope_id: str, query: AuditQuery | None) -> list[DenialEntry]:
        sql, params = compile_audit_query(scope, scope_id, query)
        return [_row_to_entry(r) for r in self.con.execute(sql, params).fetchall()]

    def find_by_organization(self, organization_id: str, query: AuditQuery | None = None) -> list[DenialEntry]:
        """Denials in *organization_id*, newest first."""
        return self._find("organization", organization_id, query)

    def find_by_user(self, user_id: str, query: AuditQuery | None = None) -> list[DenialEntry]:
        return self._find("user", user_id, query)

    def count_by_organization(self, organization_id: str, query: AuditQuery | None = None) -> int:
        sql, params = compile_audit_query("organization", organization_id, query, count=True)
        return int(self.con.execute(sql, params).fetchone()[0])
