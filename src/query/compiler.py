"""SQL compiler – translate audit-log query plans into validated SQL using sqlglot."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import sqlglot

AUDIT_TABLE = "authorization_audit_log"

AUDIT_COLUMNS: tuple[str, ...] = (
    "id",
    "user_id",
    "organization_id",
    "action",
    "resource_type",
    "resource_id",
    "denial_reason",
    "matched_policy_ids",
    "ip_address",
    "user_agent",
    "created_at",
)

# Map plan scopes to the column they filter on
SCOPE_COL: dict[str, str] = {
    "organization": "organization_id",
    "user": "user_id",
}


@dataclass(frozen=True)
class AuditQuery:
    limit: int | None = 50
    offset: int = 0
    start_date: datetime | None = None
    end_date: datetime | None = None
    action: str | None = None
    resource_type: str | None = None


def _validate(sql: str) -> str:
    try:
        parsed = sqlglot.parse(sql, read="duckdb")
        if not parsed or parsed[0] is None:
            raise ValueError("sqlglot returned empty parse")
    except sqlglot.errors.ParseError as exc:
        raise ValueError(f"Generated SQL failed validation: {exc}") from exc
    return sql


def compile_audit_query(
    scope: str,
    scope_id: str,
    query: AuditQuery | None = None,
    count: bool = False,
) -> tuple[str, list[Any]]:
    """Compile an audit-log lookup into ``(sql, params)``.

    Values are bound as ``?`` parameters; only column names come from the plan.
    """
    query = query or AuditQuery()
    col = SCOPE_COL.get(scope)
    if col is None:
        raise ValueError(f"Unknown audit scope: {scope}")

    where_parts = [f"{col} = ?"]
    params: list[Any] = [scope_id]
    if query.start_date is not None:
        where_parts.append("created_at >= ?")
        params.append(query.start_date)
    if query.end_date is not None:
        where_parts.append("created_at <= ?")
        params.append(query.end_date)
    if query.action is not None:
        where_parts.append("action = ?")
        params.append(query.action)
    if query.resource_type is not None:
        where_parts.append("resource_type = ?")
        params.append(query.resource_type)

    select = "COUNT(*)" if count else ", ".join(AUDIT_COLUMNS)
    sql = f"SELECT {select} FROM {AUDIT_TABLE} WHERE {' AND '.join(where_parts)}"
    if not count:
        sql += " ORDER BY created_at DESC, seq DESC"
        if query.limit:
            sql += f" LIMIT {int(query.limit)}"
        if query.offset:
            sql += f" OFFSET {int(query.offset)}"

    return _validate(sql), params
