"""In-memory store suitable for tests and local development."""
from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Dict, Iterator, List, Optional, Sequence

from ..errors import (
    AlreadyExistsError,
    InternalError,
    InvalidResizeError,
    NoCapacityAvailableError,
    NotFoundError,
    StorageInUseError,
)
from ..storages.models import Storage, StorageUpdate
from ..volumes.filters import VolumeFilter
from ..volumes.models import ProvisioningState, Volume


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _State:
    # Insertion order doubles as creation order.
    storages: Dict[str, Storage] = field(default_factory=dict)
    volumes: Dict[str, Volume] = field(default_factory=dict)

    def copy(self) -> "_State":
        return _State(storages=dict(self.storages), volumes=dict(self.volumes))


class InMemoryStorageLedger:
    def __init__(self, state: _State) -> None:
        self._state = state

    def create_storage(self, name: str, size: int, replicas: int = 1) -> Storage:
        if name in self._state.storages:
            raise AlreadyExistsError(f"storage {name} already exists", detail={"storage": name})
        storage = Storage(name=name, size=size, used=0, replicas=replicas, created_at=_now())
        self._state.storages[name] = storage
        return storage

    def storage_by_name(self, name: str, *, for_update: bool = False) -> Storage:
        storage = self._state.storages.get(name)
        if storage is None or storage.deleted:
            raise NotFoundError(f"storage {name} not exists", detail={"storage": name})
        return storage

    def all_storages(self) -> List[Storage]:
        return [storage for storage in self._state.storages.values() if not storage.deleted]

    def update_storage(self, name: str, update: StorageUpdate) -> Storage:
        current = self.storage_by_name(name)
        new_name = update.name or current.name
        if update.size is not None and update.size < current.used:
            raise InvalidResizeError(
                f"storage {name} uses {current.used}, cannot shrink to {update.size}",
                detail={"storage": name, "used": current.used, "size": update.size},
            )
        if new_name != name and new_name in self._state.storages:
            raise AlreadyExistsError(f"storage {new_name} already exists", detail={"storage": new_name})

        updated = current.model_copy(
            update={
                "name": new_name,
                "size": current.size if update.size is None else update.size,
                "replicas": current.replicas if update.replicas is None else update.replicas,
            }
        )
        if new_name != name:
            # Rebuild to keep creation order and cascade the rename to volumes.
            self._state.storages = {
                (new_name if key == name else key): (updated if key == name else value)
                for key, value in self._state.storages.items()
            }
            for volume_id, volume in list(self._state.volumes.items()):
                if volume.storage_name == name:
                    self._state.volumes[volume_id] = volume.model_copy(update={"storage_name": new_name})
        else:
            self._state.storages[name] = updated
        return updated

    def delete_storage(self, name: str) -> Storage:
        current = self.storage_by_name(name)
        if current.used > 0:
            raise StorageInUseError(
                f"storage {name} still hosts volumes",
                detail={"storage": name, "used": current.used},
            )
        deleted = current.model_copy(update={"deleted": True, "delete_time": _now()})
        self._state.storages[name] = deleted
        return deleted

    def least_used_storage(self, min_free: int) -> Storage:
        candidates = [
            storage
            for storage in self._state.storages.values()
            if not storage.deleted and storage.size - storage.used >= min_free
        ]
        if not candidates:
            raise NoCapacityAvailableError(f"no storage has {min_free} free", detail={"capacity": min_free})
        # min() keeps the first of equal values, i.e. creation order.
        return min(candidates, key=lambda storage: storage.used)

    def adjust_used(self, name: str, delta: int) -> Storage:
        current = self.storage_by_name(name)
        new_used = current.used + delta
        if new_used > current.size:
            raise NoCapacityAvailableError(
                f"storage {name} has {current.free} free, {delta} requested",
                detail={"storage": name, "capacity": delta},
            )
        if new_used < 0:
            raise InternalError(
                f"storage {name} used counter would become negative",
                detail={"storage": name},
            )
        updated = current.model_copy(update={"used": new_used})
        self._state.storages[name] = updated
        return updated


class InMemoryVolumeRepository:
    def __init__(self, state: _State, ledger: InMemoryStorageLedger) -> None:
        self._state = state
        self._ledger = ledger

    def _active(self) -> List[Volume]:
        return [volume for volume in self._state.volumes.values() if not volume.deleted]

    def volume_by_natural_key(self, namespace_id: str, label: str, *, for_update: bool = False) -> Volume:
        for volume in self._active():
            if volume.namespace_id == namespace_id and volume.label == label:
                return volume
        raise NotFoundError(
            f"volume {label} not exists",
            detail={"namespace_id": namespace_id, "label": label},
        )

    def volume_by_id(self, volume_id: str, *, for_update: bool = False) -> Volume:
        volume = self._state.volumes.get(volume_id)
        if volume is None or volume.deleted:
            raise NotFoundError(f"volume {volume_id} not exists", detail={"volume_id": volume_id})
        return volume

    def volumes_by_owner(self, user_id: str) -> List[Volume]:
        return [volume for volume in self._active() if volume.owner_user_id == user_id]

    def volumes_by_namespace(self, namespace_id: str) -> List[Volume]:
        return [volume for volume in self._active() if volume.namespace_id == namespace_id]

    def all_volumes(self, volume_filter: VolumeFilter) -> List[Volume]:
        selected = [
            volume
            for volume in self._state.volumes.values()
            if (not volume_filter.not_deleted or not volume.deleted)
            and (not volume_filter.deleted or volume.deleted)
            and (not volume_filter.limited or volume.tariff_id is not None)
            and (not volume_filter.not_limited or volume.tariff_id is None)
        ]
        if volume_filter.per_page > 0:
            start = volume_filter.offset
            selected = selected[start:start + volume_filter.per_page]
        return selected

    def pending_volumes(self, *, older_than: datetime, limit: int = 100) -> List[Volume]:
        pending = [
            volume
            for volume in self._active()
            if volume.provisioning_state == ProvisioningState.PENDING and volume.created_at < older_than
        ]
        return pending[:limit]

    def create_volume(self, volume: Volume) -> Volume:
        for existing in self._active():
            if existing.namespace_id == volume.namespace_id and existing.label == volume.label:
                raise AlreadyExistsError(
                    f"volume {volume.label} already exists",
                    detail={"namespace_id": volume.namespace_id, "label": volume.label},
                )
        self._ledger.storage_by_name(volume.storage_name)
        stored = volume.model_copy(update={"created_at": _now()})
        self._state.volumes[stored.id] = stored
        self._ledger.adjust_used(stored.storage_name, stored.capacity)
        return stored

    def update_volume(self, volume: Volume, new_capacity: int, new_tariff_id: Optional[str]) -> Volume:
        current = self.volume_by_id(volume.id)
        updated = current.model_copy(update={"capacity": new_capacity, "tariff_id": new_tariff_id})
        self._state.volumes[current.id] = updated
        self._ledger.adjust_used(current.storage_name, new_capacity - current.capacity)
        return updated

    def rename_volume(self, volume: Volume, new_label: str) -> Volume:
        current = self.volume_by_id(volume.id)
        for existing in self._active():
            if existing.id != current.id and existing.namespace_id == current.namespace_id and existing.label == new_label:
                raise AlreadyExistsError(
                    f"volume {new_label} already exists",
                    detail={"namespace_id": current.namespace_id, "label": new_label},
                )
        updated = current.model_copy(update={"label": new_label})
        self._state.volumes[current.id] = updated
        return updated

    def mark_provisioned(self, volume_id: str) -> Optional[Volume]:
        current = self._state.volumes.get(volume_id)
        if current is None or current.deleted:
            return None
        updated = current.model_copy(update={"provisioning_state": ProvisioningState.READY})
        self._state.volumes[volume_id] = updated
        return updated

    def record_provision_attempt(self, volume_id: str) -> int:
        current = self._state.volumes.get(volume_id)
        if current is None:
            raise NotFoundError(f"volume {volume_id} not exists", detail={"volume_id": volume_id})
        attempts = current.provision_attempts + 1
        self._state.volumes[volume_id] = current.model_copy(update={"provision_attempts": attempts})
        return attempts

    def delete_volume(self, volume: Volume) -> Volume:
        current = self._state.volumes.get(volume.id)
        if current is None or current.deleted:
            raise NotFoundError(
                f"volume {volume.label} not exists",
                detail={"namespace_id": volume.namespace_id, "label": volume.label},
            )
        deleted = current.model_copy(update={"deleted": True, "delete_time": _now()})
        self._state.volumes[current.id] = deleted
        self._ledger.adjust_used(deleted.storage_name, -deleted.capacity)
        return deleted

    def delete_volumes(self, volumes: Sequence[Volume]) -> List[Volume]:
        deleted: List[Volume] = []
        released: Dict[str, int] = defaultdict(int)
        for volume in volumes:
            current = self._state.volumes.get(volume.id)
            if current is None or current.deleted:
                continue
            marked = current.model_copy(update={"deleted": True, "delete_time": _now()})
            self._state.volumes[current.id] = marked
            released[marked.storage_name] += marked.capacity
            deleted.append(marked)
        for storage_name in sorted(released):
            self._ledger.adjust_used(storage_name, -released[storage_name])
        return deleted


@dataclass
class InMemoryStoreSession:
    storages: InMemoryStorageLedger
    volumes: InMemoryVolumeRepository


class InMemoryVolumeStore:
    """Serializes transactions with one lock and restores a snapshot on failure."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._state = _State()

    @contextmanager
    def transaction(self) -> Iterator[InMemoryStoreSession]:
        with self._lock:
            working = self._state.copy()
            ledger = InMemoryStorageLedger(working)
            yield InMemoryStoreSession(storages=ledger, volumes=InMemoryVolumeRepository(working, ledger))
            self._state = working

    def snapshot(self) -> Dict[str, List]:
        """Committed storages and volumes, for diagnostics and tests."""

        with self._lock:
            return {
                "storages": list(self._state.storages.values()),
                "volumes": list(self._state.volumes.values()),
            }


__all__ = ["InMemoryStoreSession", "InMemoryVolumeStore"]
