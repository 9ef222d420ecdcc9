"""Persistence layer for volume records."""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from ..errors import InternalError, NotFoundError
from ..storages.repository import PostgresStorageLedger
from .filters import VolumeFilter
from .models import AccessMode, ProvisioningState, Volume

logger = logging.getLogger(__name__)

_VOLUME_COLUMNS = """
    v.id, v.namespace_id, v.label, v.owner_user_id, v.capacity, v.tariff_id,
    v.storage_name, v.access_mode, v.provisioning_state, v.provision_attempts,
    v.deleted, v.delete_time, v.created_at
"""


def _row_to_volume(row: dict) -> Volume:
    return Volume(
        id=str(row["id"]),
        namespace_id=row["namespace_id"],
        label=row["label"],
        owner_user_id=str(row["owner_user_id"]),
        capacity=int(row["capacity"]),
        tariff_id=str(row["tariff_id"]) if row.get("tariff_id") else None,
        storage_name=row["storage_name"],
        access_mode=AccessMode(row["access_mode"]),
        provisioning_state=ProvisioningState(row["provisioning_state"]),
        provision_attempts=int(row.get("provision_attempts") or 0),
        deleted=bool(row["deleted"]),
        delete_time=row.get("delete_time"),
        created_at=row["created_at"],
    )


class PostgresVolumeRepository:
    """Volume rows in PostgreSQL; every capacity change is mirrored on the ledger.

    The repository must share its connection with ``ledger`` so that the row
    mutation and the counter update commit or roll back together.
    """

    def __init__(
        self,
        *,
        ledger: PostgresStorageLedger,
        conn: Optional[PgConnection] = None,
    ) -> None:
        self._ledger = ledger
        self._conn = conn

    def volume_by_natural_key(self, namespace_id: str, label: str, *, for_update: bool = False) -> Volume:
        lock = " FOR UPDATE OF v" if for_update else ""
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                f"""
                SELECT {_VOLUME_COLUMNS}
                FROM volumes AS v
                WHERE v.namespace_id = %s AND v.label = %s AND NOT v.deleted
                LIMIT 1{lock}
                """,
                (namespace_id, label),
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(
                f"volume {label} not exists",
                detail={"namespace_id": namespace_id, "label": label},
            )
        return _row_to_volume(row)

    def volume_by_id(self, volume_id: str, *, for_update: bool = False) -> Volume:
        lock = " FOR UPDATE OF v" if for_update else ""
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                f"""
                SELECT {_VOLUME_COLUMNS}
                FROM volumes AS v
                WHERE v.id = %s AND NOT v.deleted
                LIMIT 1{lock}
                """,
                (volume_id,),
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"volume {volume_id} not exists", detail={"volume_id": volume_id})
        return _row_to_volume(row)

    def volumes_by_owner(self, user_id: str) -> List[Volume]:
        return self._select_active("v.owner_user_id = %s", (user_id,))

    def volumes_by_namespace(self, namespace_id: str) -> List[Volume]:
        return self._select_active("v.namespace_id = %s", (namespace_id,))

    def _select_active(self, condition: str, params: Sequence[object]) -> List[Volume]:
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                f"""
                SELECT {_VOLUME_COLUMNS}
                FROM volumes AS v
                WHERE {condition} AND NOT v.deleted
                ORDER BY v.created_at, v.id
                """,
                tuple(params),
            )
            rows = cursor.fetchall() or []
            return [_row_to_volume(row) for row in rows]

    def all_volumes(self, volume_filter: VolumeFilter) -> List[Volume]:
        clauses = volume_filter.where_clauses("v")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params: Dict[str, object] = {}
        pagination = ""
        if volume_filter.per_page > 0:
            pagination = "LIMIT %(limit)s OFFSET %(offset)s"
            params = {"limit": volume_filter.per_page, "offset": volume_filter.offset}

        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                f"""
                SELECT {_VOLUME_COLUMNS}
                FROM volumes AS v
                {where}
                ORDER BY v.created_at, v.id
                {pagination}
                """,
                params,
            )
            rows = cursor.fetchall() or []
            return [_row_to_volume(row) for row in rows]

    def pending_volumes(self, *, older_than: datetime, limit: int = 100) -> List[Volume]:
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                f"""
                SELECT {_VOLUME_COLUMNS}
                FROM volumes AS v
                WHERE NOT v.deleted
                  AND v.provisioning_state = %s
                  AND v.created_at < %s
                ORDER BY v.created_at, v.id
                LIMIT %s
                """,
                (ProvisioningState.PENDING.value, older_than, limit),
            )
            rows = cursor.fetchall() or []
            return [_row_to_volume(row) for row in rows]

    def create_volume(self, volume: Volume) -> Volume:
        """Insert the row and reserve its capacity on the assigned storage."""

        logger.debug(
            "Create volume",
            extra={"namespace_id": volume.namespace_id, "label": volume.label, "storage_name": volume.storage_name},
        )
        with dict_cursor(self._conn, conflict_message=f"volume {volume.label} already exists") as cursor:
            cursor.execute(
                """
                INSERT INTO volumes (
                    id,
                    namespace_id,
                    label,
                    owner_user_id,
                    capacity,
                    tariff_id,
                    storage_name,
                    access_mode,
                    provisioning_state,
                    provision_attempts
                )
                VALUES (%(id)s, %(namespace_id)s, %(label)s, %(owner_user_id)s, %(capacity)s,
                        %(tariff_id)s, %(storage_name)s, %(access_mode)s,
                        %(provisioning_state)s, %(provision_attempts)s)
                RETURNING *
                """,
                {
                    "id": volume.id,
                    "namespace_id": volume.namespace_id,
                    "label": volume.label,
                    "owner_user_id": volume.owner_user_id,
                    "capacity": volume.capacity,
                    "tariff_id": volume.tariff_id,
                    "storage_name": volume.storage_name,
                    "access_mode": volume.access_mode.value,
                    "provisioning_state": volume.provisioning_state.value,
                    "provision_attempts": volume.provision_attempts,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise InternalError(f"failed to persist volume {volume.label}")
        self._ledger.adjust_used(volume.storage_name, volume.capacity)
        return _row_to_volume(row)

    def update_volume(self, volume: Volume, new_capacity: int, new_tariff_id: Optional[str]) -> Volume:
        """Change capacity and tariff; the ledger moves by the locked row's delta."""

        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                UPDATE volumes AS v
                SET capacity = %(capacity)s,
                    tariff_id = %(tariff_id)s
                FROM (
                    SELECT id, capacity AS old_capacity
                    FROM volumes
                    WHERE id = %(id)s AND NOT deleted
                    FOR UPDATE
                ) AS old
                WHERE v.id = old.id
                RETURNING v.*, old.old_capacity
                """,
                {"id": volume.id, "capacity": new_capacity, "tariff_id": new_tariff_id},
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(
                f"volume {volume.label} not exists",
                detail={"namespace_id": volume.namespace_id, "label": volume.label},
            )
        updated = _row_to_volume(row)
        self._ledger.adjust_used(updated.storage_name, new_capacity - int(row["old_capacity"]))
        return updated

    def rename_volume(self, volume: Volume, new_label: str) -> Volume:
        with dict_cursor(self._conn, conflict_message=f"volume {new_label} already exists") as cursor:
            cursor.execute(
                """
                UPDATE volumes
                SET label = %s
                WHERE id = %s AND NOT deleted
                RETURNING *
                """,
                (new_label, volume.id),
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(
                f"volume {volume.label} not exists",
                detail={"namespace_id": volume.namespace_id, "label": volume.label},
            )
        return _row_to_volume(row)

    def mark_provisioned(self, volume_id: str) -> Optional[Volume]:
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                UPDATE volumes
                SET provisioning_state = %s
                WHERE id = %s AND NOT deleted
                RETURNING *
                """,
                (ProvisioningState.READY.value, volume_id),
            )
            row = cursor.fetchone()
            return _row_to_volume(row) if row else None

    def record_provision_attempt(self, volume_id: str) -> int:
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                UPDATE volumes
                SET provision_attempts = provision_attempts + 1
                WHERE id = %s
                RETURNING provision_attempts
                """,
                (volume_id,),
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"volume {volume_id} not exists", detail={"volume_id": volume_id})
        return int(row["provision_attempts"])

    def delete_volume(self, volume: Volume) -> Volume:
        """Soft-delete one volume and release its capacity."""

        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                UPDATE volumes
                SET deleted = TRUE, delete_time = NOW()
                WHERE id = %s AND NOT deleted
                RETURNING *
                """,
                (volume.id,),
            )
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(
                f"volume {volume.label} not exists",
                detail={"namespace_id": volume.namespace_id, "label": volume.label},
            )
        deleted = _row_to_volume(row)
        self._ledger.adjust_used(deleted.storage_name, -deleted.capacity)
        return deleted

    def delete_volumes(self, volumes: Sequence[Volume]) -> List[Volume]:
        """Soft-delete a batch; rows already deleted are skipped."""

        ids = [volume.id for volume in volumes]
        if not ids:
            return []
        with dict_cursor(self._conn) as cursor:
            cursor.execute(
                """
                UPDATE volumes
                SET deleted = TRUE, delete_time = NOW()
                WHERE id = ANY(%s::uuid[]) AND NOT deleted
                RETURNING *
                """,
                (ids,),
            )
            rows = cursor.fetchall() or []
        deleted = [_row_to_volume(row) for row in rows]

        released: Dict[str, int] = defaultdict(int)
        for volume in deleted:
            released[volume.storage_name] += volume.capacity
        # Fixed lock order across storages.
        for storage_name in sorted(released):
            self._ledger.adjust_used(storage_name, -released[storage_name])
        return deleted


__all__ = ["PostgresVolumeRepository"]
