"""Seed DuckDB with the authorization schema and per-organization system policies."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import duckdb

logger = logging.getLogger(__name__)


def create_schema(con: duckdb.DuckDBPyConnection) -> None:
    """Create organization_policies and authorization_audit_log if missing."""

    # ---- organization_policies ----
    con.execute("CREATE SEQUENCE IF NOT EXISTS policy_seq START 1")
    con.execute("""
        CREATE TABLE IF NOT EXISTS organization_policies (
            id VARCHAR PRIMARY KEY,
            organization_id VARCHAR NOT NULL,
            name VARCHAR NOT NULL,
            description VARCHAR,
            subject_condition VARCHAR NOT NULL,
            resource_condition VARCHAR NOT NULL,
            action_condition VARCHAR NOT NULL,
            environment_condition VARCHAR,
            effect VARCHAR NOT NULL,
            priority INTEGER NOT NULL,
            is_system_policy BOOLEAN NOT NULL DEFAULT false,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            created_by VARCHAR,
            seq BIGINT DEFAULT nextval('policy_seq')
        )
    """)

    # ---- authorization_audit_log ----
    con.execute("CREATE SEQUENCE IF NOT EXISTS audit_seq START 1")
    con.execute("""
        CREATE TABLE IF NOT EXISTS authorization_audit_log (
            id VARCHAR PRIMARY KEY,
            user_id VARCHAR NOT NULL,
            organization_id VARCHAR NOT NULL,
            action VARCHAR NOT NULL,
            resource_type VARCHAR NOT NULL,
            resource_id VARCHAR,
            denial_reason VARCHAR NOT NULL,
            matched_policy_ids VARCHAR NOT NULL,
            ip_address VARCHAR,
            user_agent VARCHAR,
            created_at TIMESTAMP NOT NULL,
            seq BIGINT DEFAULT nextval('audit_seq')
        )
    """)


def seed_database(
    db_path: str = ":memory:",
    organization_ids: Iterable[str] = (),
    catalog_path: str | None = None,
) -> duckdb.DuckDBPyConnection:
    """Open *db_path*, create the schema and provision system policies for each organization."""
    from src.data.policy_store import PolicyStore

    con = duckdb.connect(db_path)
    create_schema(con)

    store = PolicyStore(con, catalog_path=catalog_path)
    for org_id in organization_ids:
        store.seed_system_policies(org_id)
    logger.info("seeded %s", db_path)
    return con
