"""Table definitions for storages and volumes."""
from __future__ import annotations

import logging
from typing import Optional

from psycopg2.extensions import connection as PgConnection

from .db import managed_connection

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS storages (
        name TEXT PRIMARY KEY,
        size BIGINT NOT NULL CHECK (size >= 0),
        used BIGINT NOT NULL DEFAULT 0 CHECK (used >= 0),
        replicas INTEGER NOT NULL DEFAULT 1 CHECK (replicas >= 1),
        deleted BOOLEAN NOT NULL DEFAULT FALSE,
        delete_time TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT storages_used_within_size CHECK (used <= size)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS volumes (
        id UUID PRIMARY KEY,
        namespace_id TEXT NOT NULL,
        label TEXT NOT NULL,
        owner_user_id TEXT NOT NULL,
        capacity BIGINT NOT NULL CHECK (capacity > 0),
        tariff_id TEXT,
        storage_name TEXT NOT NULL
            REFERENCES storages (name) ON UPDATE CASCADE ON DELETE NO ACTION,
        access_mode TEXT NOT NULL DEFAULT 'ReadWriteMany',
        provisioning_state TEXT NOT NULL DEFAULT 'pending',
        provision_attempts INTEGER NOT NULL DEFAULT 0,
        deleted BOOLEAN NOT NULL DEFAULT FALSE,
        delete_time TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS volumes_namespace_label_active
        ON volumes (namespace_id, label) WHERE NOT deleted
    """,
    "CREATE INDEX IF NOT EXISTS volumes_owner_active ON volumes (owner_user_id) WHERE NOT deleted",
    """
    CREATE INDEX IF NOT EXISTS volumes_pending
        ON volumes (created_at) WHERE provisioning_state = 'pending' AND NOT deleted
    """,
)


def ensure_schema(conn: Optional[PgConnection] = None) -> None:
    """Create the tables and indexes when they are missing."""

    with managed_connection(conn) as (connection, _):
        with connection.cursor() as cursor:
            for statement in SCHEMA_STATEMENTS:
                cursor.execute(statement)
    logger.info("Database schema ensured")


__all__ = ["SCHEMA_STATEMENTS", "ensure_schema"]
