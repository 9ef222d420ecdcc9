"""Placement and capacity accounting on top of the storage ledger."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import ContextManager, List, Optional, Protocol, Sequence

from ..errors import InvalidResizeError
from ..storages.models import Storage, StorageUpdate
from ..volumes.filters import VolumeFilter
from ..volumes.models import Volume, VolumeDraft

logger = logging.getLogger(__name__)


class StorageLedger(Protocol):
    """Storage rows and the per-storage ``used`` counter."""

    def create_storage(self, name: str, size: int, replicas: int = 1) -> Storage:
        ...

    def storage_by_name(self, name: str, *, for_update: bool = False) -> Storage:
        ...

    def all_storages(self) -> List[Storage]:
        ...

    def update_storage(self, name: str, update: StorageUpdate) -> Storage:
        ...

    def delete_storage(self, name: str) -> Storage:
        ...

    def least_used_storage(self, min_free: int) -> Storage:
        ...

    def adjust_used(self, name: str, delta: int) -> Storage:
        ...


class VolumeRepository(Protocol):
    """Volume rows; mutations adjust the ledger inside the same transaction."""

    def volume_by_natural_key(self, namespace_id: str, label: str, *, for_update: bool = False) -> Volume:
        ...

    def volume_by_id(self, volume_id: str, *, for_update: bool = False) -> Volume:
        ...

    def volumes_by_owner(self, user_id: str) -> List[Volume]:
        ...

    def volumes_by_namespace(self, namespace_id: str) -> List[Volume]:
        ...

    def all_volumes(self, volume_filter: VolumeFilter) -> List[Volume]:
        ...

    def pending_volumes(self, *, older_than: datetime, limit: int = 100) -> List[Volume]:
        ...

    def create_volume(self, volume: Volume) -> Volume:
        ...

    def update_volume(self, volume: Volume, new_capacity: int, new_tariff_id: Optional[str]) -> Volume:
        ...

    def rename_volume(self, volume: Volume, new_label: str) -> Volume:
        ...

    def mark_provisioned(self, volume_id: str) -> Optional[Volume]:
        ...

    def record_provision_attempt(self, volume_id: str) -> int:
        ...

    def delete_volume(self, volume: Volume) -> Volume:
        ...

    def delete_volumes(self, volumes: Sequence[Volume]) -> List[Volume]:
        ...


class StoreSession(Protocol):
    """Ledger and repository bound to one open transaction."""

    storages: StorageLedger
    volumes: VolumeRepository


class VolumeStore(Protocol):
    """Factory for atomic transactions over storages and volumes."""

    def transaction(self) -> ContextManager[StoreSession]:
        ...


@dataclass
class PlacementEngine:
    """Chooses storages for new volumes and keeps ``used`` counters exact.

    Every method expects a session from an open transaction and performs the
    volume-row mutation and the counter adjustment within it.
    """

    def place(self, session: StoreSession, draft: VolumeDraft) -> Volume:
        """Put a new volume on the least used storage that fits it."""

        storage = session.storages.least_used_storage(draft.capacity)
        logger.info(
            "Placing volume",
            extra={
                "namespace_id": draft.namespace_id,
                "label": draft.label,
                "storage_name": storage.name,
                "capacity": draft.capacity,
                "storage_used": storage.used,
                "storage_size": storage.size,
            },
        )
        return session.volumes.create_volume(draft.on_storage(storage.name))

    def place_on(self, session: StoreSession, draft: VolumeDraft, storage_name: str) -> Volume:
        """Put a new volume on a named storage; the counter update rejects overflow."""

        storage = session.storages.storage_by_name(storage_name, for_update=True)
        logger.info(
            "Placing volume on requested storage",
            extra={
                "namespace_id": draft.namespace_id,
                "label": draft.label,
                "storage_name": storage.name,
                "capacity": draft.capacity,
            },
        )
        return session.volumes.create_volume(draft.on_storage(storage.name))

    def resize(
        self,
        session: StoreSession,
        volume: Volume,
        new_capacity: int,
        new_tariff_id: Optional[str],
    ) -> Volume:
        """Grow a volume in place on its current storage."""

        if new_capacity < volume.capacity:
            raise InvalidResizeError(
                f"volume {volume.label} cannot shrink from {volume.capacity} to {new_capacity}",
                detail={"label": volume.label, "capacity": volume.capacity, "new_capacity": new_capacity},
            )
        return session.volumes.update_volume(volume, new_capacity, new_tariff_id)

    def release(self, session: StoreSession, volume: Volume) -> Volume:
        return session.volumes.delete_volume(volume)

    def release_many(self, session: StoreSession, volumes: Sequence[Volume]) -> List[Volume]:
        if not volumes:
            return []
        return session.volumes.delete_volumes(volumes)


__all__ = [
    "PlacementEngine",
    "StorageLedger",
    "StoreSession",
    "VolumeRepository",
    "VolumeStore",
]
