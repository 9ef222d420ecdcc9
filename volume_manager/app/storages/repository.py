"""Persistence layer for storage backends and their used-capacity counters."""
from __future__ import annotations

import logging
from typing import List, Optional

from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from ..errors import (
    AlreadyExistsError,
    InternalError,
    InvalidResizeError,
    NoCapacityAvailableError,
    NotFoundError,
    StorageInUseError,
)
from .models import Storage, StorageUpdate

logger = logging.getLogger(__name__)


def _row_to_storage(row: dict) -> Storage:
    return Storage(
        name=row["name"],
        size=int(row["size"]),
        used=int(row["used"]),
        replicas=int(row["replicas"]),
        deleted=bool(row["deleted"]),
        delete_time=row.get("delete_time"),
        created_at=row["created_at"],
    )


class PostgresStorageLedger:
    """Storage rows and the atomic ``used`` counter, kept in PostgreSQL.

    All counter changes are single ``UPDATE`` statements evaluated against the
    latest committed row, so concurrent transactions never lose an update.
    """

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def create_storage(self, name: str, size: int, replicas: int = 1) -> Storage:
        logger.debug("Create storage", extra={"storage_name": name, "size": size, "replicas": replicas})
        with dict_cursor(self._conn, conflict_message=f"storage {name} already exists") as cursor:
            cursor.execute(
                """
                INSERT INTO storages (name, size, used, replicas)
                VALUES (%(name)s, %(size)s, 0, %(replicas)s)
                RETURNING *
                """,
                {"name": name, "size": size, "replicas": replicas},
            )
            row = cursor.fetchone()
            if not row:
                raise InternalError(f"failed to persist storage {name}")
            return _row_to_storage(row)

    def storage_by_name(self, name: str, *, for_update: bool = False) -> Storage:
        lock = " FOR UPDATE" if for_update else ""
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                f"""
                SELECT *
                FROM storages
                WHERE name = %s AND NOT deleted
                LIMIT 1{lock}
                """,
                (name,),
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"storage {name} not exists", detail={"storage": name})
        return _row_to_storage(row)

    def all_storages(self) -> List[Storage]:
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                SELECT *
                FROM storages
                WHERE NOT deleted
                ORDER BY created_at, name
                """
            )
            rows = cursor.fetchall() or []
            return [_row_to_storage(row) for row in rows]

    def update_storage(self, name: str, update: StorageUpdate) -> Storage:
        logger.debug("Update storage", extra={"storage_name": name, "update": update.model_dump()})
        current = self.storage_by_name(name, for_update=True)
        new_name = update.name or current.name
        if update.size is not None and update.size < current.used:
            raise InvalidResizeError(
                f"storage {name} uses {current.used}, cannot shrink to {update.size}",
                detail={"storage": name, "used": current.used, "size": update.size},
            )

        with dict_cursor(self._conn, conflict_message=f"storage {new_name} already exists") as cursor:
            if new_name != current.name:
                cursor.execute(
                    "SELECT 1 FROM storages WHERE name = %s LIMIT 1",
                    (new_name,),
                )
                if cursor.fetchone():
                    raise AlreadyExistsError(
                        f"storage {new_name} already exists", detail={"storage": new_name}
                    )
            cursor.execute(
                """
                UPDATE storages
                SET name = %(new_name)s,
                    size = COALESCE(%(size)s, size),
                    replicas = COALESCE(%(replicas)s, replicas)
                WHERE name = %(name)s AND NOT deleted
                  AND used <= COALESCE(%(size)s, size)
                RETURNING *
                """,
                {
                    "name": name,
                    "new_name": new_name,
                    "size": update.size,
                    "replicas": update.replicas,
                },
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"storage {name} not exists", detail={"storage": name})
        return _row_to_storage(row)

    def delete_storage(self, name: str) -> Storage:
        logger.debug("Delete storage", extra={"storage_name": name})
        current = self.storage_by_name(name, for_update=True)
        if current.used > 0:
            raise StorageInUseError(
                f"storage {name} still hosts volumes",
                detail={"storage": name, "used": current.used},
            )
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                UPDATE storages
                SET deleted = TRUE, delete_time = NOW()
                WHERE name = %s AND NOT deleted
                RETURNING *
                """,
                (name,),
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"storage {name} not exists", detail={"storage": name})
        return _row_to_storage(row)

    def least_used_storage(self, min_free: int) -> Storage:
        """Lock and return the live storage with the lowest ``used`` that fits ``min_free``."""

        logger.debug("Least used storage lookup", extra={"min_free": min_free})
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                SELECT *
                FROM storages
                WHERE NOT deleted AND size - used >= %s
                ORDER BY used ASC, created_at ASC
                LIMIT 1
                FOR UPDATE
                """,
                (min_free,),
            )
            row = cursor.fetchone()
        if not row:
            raise NoCapacityAvailableError(
                f"no storage has {min_free} free", detail={"capacity": min_free}
            )
        return _row_to_storage(row)

    def adjust_used(self, name: str, delta: int) -> Storage:
        """Apply ``used = used + delta`` server-side, keeping ``0 <= used <= size``."""

        if delta == 0:
            return self.storage_by_name(name)

        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                UPDATE storages
                SET used = used + %(delta)s
                WHERE name = %(name)s AND NOT deleted
                  AND used + %(delta)s BETWEEN 0 AND size
                RETURNING *
                """,
                {"name": name, "delta": delta},
            )
            row = cursor.fetchone()
        if row:
            return _row_to_storage(row)

        current = self.storage_by_name(name)
        if delta > 0:
            raise NoCapacityAvailableError(
                f"storage {name} has {current.free} free, {delta} requested",
                detail={"storage": name, "capacity": delta},
            )
        logger.error(
            "Storage counter would become negative",
            extra={"storage_name": name, "used": current.used, "delta": delta},
        )
        raise InternalError(
            f"storage {name} used counter would become negative",
            detail={"storage": name},
        )


__all__ = ["PostgresStorageLedger"]
