from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from volume_manager.app.accounting.memory import InMemoryVolumeStore
from volume_manager.app.clients.models import NamespaceTariff, SubscribeRequest, VolumeTariff
from volume_manager.app.errors import ExternalServiceError, NotFoundError
from volume_manager.app.volumes.service import Caller, VolumeService

TARIFF_SMALL = "15348470-e98f-4da0-8d2e-8c65e15d6eeb"
TARIFF_LARGE = "11a35f90-c343-4fc1-a966-381f75568036"
TARIFF_PRIVATE = "5c3f3c4e-0000-4000-8000-000000000001"
TARIFF_INACTIVE = "5c3f3c4e-0000-4000-8000-000000000002"


class FakeBillingClient:
    def __init__(self) -> None:
        self.tariffs: Dict[str, VolumeTariff] = {
            TARIFF_SMALL: VolumeTariff(id=TARIFF_SMALL, label="small", storage_limit=4),
            TARIFF_LARGE: VolumeTariff(id=TARIFF_LARGE, label="large", storage_limit=7),
            TARIFF_PRIVATE: VolumeTariff(id=TARIFF_PRIVATE, label="private", public=False, storage_limit=5),
            TARIFF_INACTIVE: VolumeTariff(id=TARIFF_INACTIVE, label="old", active=False, storage_limit=5),
        }
        self.namespace_tariff = NamespaceTariff(id="ns-tariff", label="ns", volume_size=3)
        self.subscribed: List[SubscribeRequest] = []
        self.unsubscribed: List[str] = []
        self.massive_unsubscribed: List[List[str]] = []
        self.renamed: List[Tuple[str, str]] = []
        self.fail_subscribe = False
        self.subscribe_error: Optional[Exception] = None

    def subscribe(self, request: SubscribeRequest) -> None:
        if self.fail_subscribe:
            raise ExternalServiceError("billing is unreachable")
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.subscribed.append(request)

    def unsubscribe(self, resource_id: str) -> None:
        self.unsubscribed.append(resource_id)

    def massive_unsubscribe(self, resource_ids: Sequence[str]) -> None:
        self.massive_unsubscribed.append(list(resource_ids))

    def rename(self, resource_id: str, new_label: str) -> None:
        self.renamed.append((resource_id, new_label))

    def get_volume_tariff(self, tariff_id: str) -> VolumeTariff:
        tariff = self.tariffs.get(tariff_id)
        if tariff is None:
            raise NotFoundError(f"tariff {tariff_id} not exists")
        return tariff

    def get_tariff_for_namespace(self, namespace_id: str) -> NamespaceTariff:
        return self.namespace_tariff


class FakeOrchestrator:
    def __init__(self) -> None:
        self.created: List[Tuple[str, Dict[str, Any]]] = []
        self.updated: List[Tuple[str, Dict[str, Any], Optional[str]]] = []
        self.deleted: List[Tuple[str, str]] = []
        self.create_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None

    def create_volume(self, namespace_id: str, spec: Mapping[str, Any]) -> None:
        if self.create_error is not None:
            raise self.create_error
        self.created.append((namespace_id, dict(spec)))

    def update_volume(self, namespace_id: str, spec: Mapping[str, Any], *, name: Optional[str] = None) -> None:
        self.updated.append((namespace_id, dict(spec), name))

    def delete_volume(self, namespace_id: str, name: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append((namespace_id, name))


@pytest.fixture
def store() -> InMemoryVolumeStore:
    return InMemoryVolumeStore()


@pytest.fixture
def billing() -> FakeBillingClient:
    return FakeBillingClient()


@pytest.fixture
def orchestrator() -> FakeOrchestrator:
    return FakeOrchestrator()


@pytest.fixture
def service(store, billing, orchestrator) -> VolumeService:
    return VolumeService(store=store, billing=billing, orchestrator=orchestrator)


@pytest.fixture
def user() -> Caller:
    return Caller(user_id="user-1")


@pytest.fixture
def admin() -> Caller:
    return Caller(user_id="admin-1", is_admin=True)


def add_storage(store: InMemoryVolumeStore, name: str, size: int):
    with store.transaction() as session:
        return session.storages.create_storage(name, size)


def storage_used(store: InMemoryVolumeStore, name: str) -> int:
    with store.transaction() as session:
        return session.storages.storage_by_name(name).used


def assert_ledger_consistent(store: InMemoryVolumeStore) -> None:
    state = store.snapshot()
    for storage in state["storages"]:
        expected = sum(
            volume.capacity
            for volume in state["volumes"]
            if volume.storage_name == storage.name and not volume.deleted
        )
        assert storage.used == expected, storage.name
        assert 0 <= storage.used <= storage.size
