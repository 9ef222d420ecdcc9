"""Use-case tests for the volume service against the in-memory store."""
from __future__ import annotations

from threading import Barrier, Thread
from typing import List

import pytest

from volume_manager.app.clients.models import NamespaceTariff, VolumeTariff
from volume_manager.app.errors import (
    AdminRequiredError,
    AlreadyExistsError,
    ExternalServiceError,
    InvalidResizeError,
    NoCapacityAvailableError,
    NotFoundError,
    QuotaExceededError,
    TariffUnavailableError,
)
from volume_manager.app.volumes.models import ZERO_UUID, ProvisioningState
from volume_manager.app.volumes.service import Caller, check_tariff

from conftest import (
    TARIFF_INACTIVE,
    TARIFF_LARGE,
    TARIFF_PRIVATE,
    TARIFF_SMALL,
    add_storage,
    assert_ledger_consistent,
    storage_used,
)


def test_capacity_scenario_on_single_storage(service, store, admin):
    add_storage(store, "A", 10)

    service.admin_create_volume(admin, "ns1", "v1", 4)
    assert storage_used(store, "A") == 4

    with pytest.raises(NoCapacityAvailableError):
        service.admin_create_volume(admin, "ns1", "v2", 7)
    assert storage_used(store, "A") == 4

    service.delete_volume(admin, "ns1", "v1")
    assert storage_used(store, "A") == 0

    created = service.admin_create_volume(admin, "ns1", "v2", 7)
    assert created.storage_name == "A"
    assert storage_used(store, "A") == 7
    assert_ledger_consistent(store)


def test_create_with_tariff_subscribes_and_marks_ready(service, store, billing, orchestrator, user):
    add_storage(store, "A", 10)

    volume = service.create_volume(user, "ns1", "data", tariff_id=TARIFF_SMALL)

    assert volume.capacity == 4
    assert volume.tariff_id == TARIFF_SMALL
    assert volume.provisioning_state == ProvisioningState.READY
    assert orchestrator.created == [("ns1", volume.to_orchestrator_spec())]
    assert [request.resource_id for request in billing.subscribed] == [volume.id]
    assert billing.subscribed[0].tariff_id == TARIFF_SMALL


def test_zero_tariff_uses_namespace_allowance_without_subscription(service, store, billing, user):
    add_storage(store, "A", 10)

    volume = service.create_volume(user, "ns1", "free", tariff_id=ZERO_UUID)

    assert volume.capacity == billing.namespace_tariff.volume_size
    assert volume.tariff_id is None
    assert billing.subscribed == []


def test_namespace_without_allowance_is_quota_exceeded(service, store, billing, user):
    add_storage(store, "A", 10)
    billing.namespace_tariff = NamespaceTariff(id="ns-tariff", volume_size=0)

    with pytest.raises(QuotaExceededError):
        service.create_volume(user, "ns1", "free", tariff_id=None)

    assert store.snapshot()["volumes"] == []


def test_check_tariff_policy():
    public = VolumeTariff(id="t1", storage_limit=1)
    private = VolumeTariff(id="t2", storage_limit=1, public=False)
    inactive = VolumeTariff(id="t3", storage_limit=1, active=False)

    check_tariff(public, False)
    check_tariff(private, True)
    with pytest.raises(TariffUnavailableError):
        check_tariff(private, False)
    with pytest.raises(TariffUnavailableError):
        check_tariff(inactive, True)


def test_private_and_inactive_tariffs_are_rejected_before_placement(service, store, user, admin):
    add_storage(store, "A", 10)

    with pytest.raises(TariffUnavailableError):
        service.create_volume(user, "ns1", "private", tariff_id=TARIFF_PRIVATE)
    with pytest.raises(TariffUnavailableError):
        service.create_volume(admin, "ns1", "old", tariff_id=TARIFF_INACTIVE)

    assert storage_used(store, "A") == 0
    assert service.create_volume(admin, "ns1", "private", tariff_id=TARIFF_PRIVATE).capacity == 5


def test_unknown_tariff_is_not_found(service, store, user):
    add_storage(store, "A", 10)

    with pytest.raises(NotFoundError):
        service.create_volume(user, "ns1", "data", tariff_id="does-not-exist")


def test_label_is_reusable_after_soft_delete(service, store, admin):
    add_storage(store, "A", 10)
    service.admin_create_volume(admin, "ns1", "data", 2)

    with pytest.raises(AlreadyExistsError):
        service.admin_create_volume(admin, "ns1", "data", 2)
    assert storage_used(store, "A") == 2

    service.delete_volume(admin, "ns1", "data")
    service.admin_create_volume(admin, "ns1", "data", 3)

    assert storage_used(store, "A") == 3
    assert_ledger_consistent(store)


def test_same_label_in_other_namespace_is_allowed(service, store, admin):
    add_storage(store, "A", 10)
    service.admin_create_volume(admin, "ns1", "data", 2)
    service.admin_create_volume(admin, "ns2", "data", 2)

    assert storage_used(store, "A") == 4


def test_delete_is_not_repeatable(service, store, admin):
    add_storage(store, "A", 10)
    service.admin_create_volume(admin, "ns1", "data", 2)
    service.delete_volume(admin, "ns1", "data")

    with pytest.raises(NotFoundError):
        service.delete_volume(admin, "ns1", "data")
    with pytest.raises(NotFoundError):
        service.delete_volume(admin, "ns1", "never-existed")

    assert storage_used(store, "A") == 0


def test_delete_calls_orchestrator_then_unsubscribes_tariffed(service, store, billing, orchestrator, user):
    add_storage(store, "A", 10)
    volume = service.create_volume(user, "ns1", "data", tariff_id=TARIFF_SMALL)

    service.delete_volume(user, "ns1", "data")

    assert orchestrator.deleted == [("ns1", "data")]
    assert billing.unsubscribed == [volume.id]


def test_delete_untariffed_volume_skips_billing(service, store, billing, orchestrator, admin):
    add_storage(store, "A", 10)
    service.admin_create_volume(admin, "ns1", "data", 2)

    service.delete_volume(admin, "ns1", "data")

    assert orchestrator.deleted == [("ns1", "data")]
    assert billing.unsubscribed == []


def test_delete_tolerates_volume_missing_from_cluster(service, store, orchestrator, admin):
    add_storage(store, "A", 10)
    service.admin_create_volume(admin, "ns1", "data", 2)
    orchestrator.delete_error = NotFoundError("volume data not found")

    deleted = service.delete_volume(admin, "ns1", "data")

    assert deleted.deleted


def test_tariff_resize_grows_volume(service, store, orchestrator, user):
    add_storage(store, "A", 10)
    service.create_volume(user, "ns1", "data", tariff_id=TARIFF_SMALL)

    resized = service.resize_volume(user, "ns1", "data", TARIFF_LARGE)

    assert resized.capacity == 7
    assert resized.tariff_id == TARIFF_LARGE
    assert storage_used(store, "A") == 7
    assert orchestrator.updated[-1] == ("ns1", resized.to_orchestrator_spec(), None)


def test_resize_to_smaller_tariff_is_rejected(service, store, orchestrator, user):
    add_storage(store, "A", 10)
    service.create_volume(user, "ns1", "data", tariff_id=TARIFF_LARGE)

    with pytest.raises(InvalidResizeError):
        service.resize_volume(user, "ns1", "data", TARIFF_SMALL)

    assert storage_used(store, "A") == 7
    assert orchestrator.updated == []


def test_admin_resize_drops_tariff(service, store, user, admin):
    add_storage(store, "A", 10)
    service.create_volume(user, "ns1", "data", tariff_id=TARIFF_SMALL)

    resized = service.admin_resize_volume(admin, "ns1", "data", 6)

    assert resized.capacity == 6
    assert resized.tariff_id is None
    assert storage_used(store, "A") == 6


def test_resize_beyond_storage_size_fails_atomically(service, store, admin):
    add_storage(store, "A", 10)
    service.admin_create_volume(admin, "ns1", "data", 4)

    with pytest.raises(NoCapacityAvailableError):
        service.admin_resize_volume(admin, "ns1", "data", 11)

    assert service.get_volume(admin, "ns1", "data").capacity == 4
    assert storage_used(store, "A") == 4


def test_rename_updates_cluster_and_billing(service, store, billing, orchestrator, user):
    add_storage(store, "A", 10)
    volume = service.create_volume(user, "ns1", "data", tariff_id=TARIFF_SMALL)

    renamed = service.rename_volume(user, "ns1", "data", "archive")

    assert renamed.label == "archive"
    assert orchestrator.updated[-1] == ("ns1", renamed.to_orchestrator_spec(), "data")
    assert billing.renamed == [(volume.id, "archive")]
    with pytest.raises(NotFoundError):
        service.get_volume(user, "ns1", "data")


def test_rename_onto_taken_label_conflicts(service, store, admin):
    add_storage(store, "A", 10)
    service.admin_create_volume(admin, "ns1", "one", 1)
    service.admin_create_volume(admin, "ns1", "two", 1)

    with pytest.raises(AlreadyExistsError):
        service.rename_volume(admin, "ns1", "one", "two")


def test_orchestrator_failure_leaves_volume_pending(service, store, orchestrator, admin):
    add_storage(store, "A", 10)
    orchestrator.create_error = ExternalServiceError("orchestrator is unreachable")

    with pytest.raises(ExternalServiceError):
        service.admin_create_volume(admin, "ns1", "data", 3)

    volume = service.get_volume(admin, "ns1", "data")
    assert volume.provisioning_state == ProvisioningState.PENDING
    assert storage_used(store, "A") == 3


def test_billing_failure_after_provisioning_leaves_volume_pending(service, store, billing, orchestrator, user):
    add_storage(store, "A", 10)
    billing.fail_subscribe = True

    with pytest.raises(ExternalServiceError):
        service.create_volume(user, "ns1", "data", tariff_id=TARIFF_SMALL)

    assert len(orchestrator.created) == 1
    assert service.get_volume(user, "ns1", "data").provisioning_state == ProvisioningState.PENDING


def test_direct_create_targets_named_storage(service, store, admin):
    add_storage(store, "A", 10)
    add_storage(store, "B", 10)

    volume = service.direct_create_volume(admin, "ns1", "data", 5, "B")

    assert volume.storage_name == "B"
    assert storage_used(store, "B") == 5
    with pytest.raises(NoCapacityAvailableError):
        service.direct_create_volume(admin, "ns1", "more", 6, "B")


def test_import_registers_ready_volume_without_external_calls(service, store, billing, orchestrator, admin):
    add_storage(store, "A", 10)

    volume = service.import_volume(admin, "ns1", "legacy", 3, "A", owner_user_id="")

    assert volume.owner_user_id == ZERO_UUID
    assert volume.provisioning_state == ProvisioningState.READY
    assert orchestrator.created == []
    assert billing.subscribed == []
    assert storage_used(store, "A") == 3


def test_admin_operations_require_admin(service, store, user):
    add_storage(store, "A", 10)

    with pytest.raises(AdminRequiredError):
        service.admin_create_volume(user, "ns1", "data", 1)
    with pytest.raises(AdminRequiredError):
        service.direct_create_volume(user, "ns1", "data", 1, "A")
    with pytest.raises(AdminRequiredError):
        service.import_volume(user, "ns1", "data", 1, "A")
    with pytest.raises(AdminRequiredError):
        service.admin_resize_volume(user, "ns1", "data", 2)
    with pytest.raises(AdminRequiredError):
        service.list_all_volumes(user)


def test_bulk_delete_unsubscribes_tariffed_volumes_once(service, store, billing, orchestrator, user):
    add_storage(store, "A", 20)
    tariffed = service.create_volume(user, "ns1", "paid", tariff_id=TARIFF_SMALL)
    service.create_volume(user, "ns1", "free", tariff_id=ZERO_UUID)

    deleted = service.delete_all_user_volumes(user)

    assert {volume.label for volume in deleted} == {"paid", "free"}
    assert billing.massive_unsubscribed == [[tariffed.id]]
    assert orchestrator.deleted == []
    assert storage_used(store, "A") == 0
    assert_ledger_consistent(store)


def test_bulk_delete_of_empty_collection_makes_no_calls(service, store, billing, user):
    add_storage(store, "A", 10)

    assert service.delete_all_user_volumes(user) == []
    assert service.delete_all_namespace_volumes(user, "ns-empty") == []
    assert billing.massive_unsubscribed == []


def test_namespace_bulk_delete_only_touches_namespace(service, store, admin):
    add_storage(store, "A", 10)
    service.admin_create_volume(admin, "ns1", "a", 2)
    service.admin_create_volume(admin, "ns1", "b", 3)
    service.admin_create_volume(admin, "ns2", "c", 4)

    deleted = service.delete_all_namespace_volumes(admin, "ns1")

    assert sorted(volume.label for volume in deleted) == ["a", "b"]
    assert [volume.label for volume in service.list_namespace_volumes(admin, "ns2")] == ["c"]
    assert storage_used(store, "A") == 4


def test_listings_and_filters(service, store, user, admin):
    add_storage(store, "A", 20)
    service.create_volume(user, "ns1", "paid", tariff_id=TARIFF_SMALL)
    service.admin_create_volume(admin, "ns1", "plain", 1)
    service.admin_create_volume(admin, "ns1", "gone", 1)
    service.delete_volume(admin, "ns1", "gone")

    assert [volume.label for volume in service.list_user_volumes(user)] == ["paid"]
    assert [volume.label for volume in service.list_namespace_volumes(user, "ns1")] == ["paid", "plain"]
    assert [volume.label for volume in service.list_all_volumes(admin)] == ["paid", "plain"]
    assert [volume.label for volume in service.list_all_volumes(admin, filters=["deleted"])] == ["gone"]
    assert [volume.label for volume in service.list_all_volumes(admin, filters=["limited"])] == ["paid"]
    assert [volume.label for volume in service.list_all_volumes(admin, page=2, per_page=1)] == ["plain"]


def test_concurrent_creates_allow_exactly_one_winner(service, store, admin):
    add_storage(store, "A", 10)
    barrier = Barrier(2)
    outcomes: List[object] = []

    def create(label: str) -> None:
        barrier.wait()
        try:
            outcomes.append(service.admin_create_volume(admin, "ns1", label, 6))
        except NoCapacityAvailableError as exc:
            outcomes.append(exc)

    threads = [Thread(target=create, args=(label,)) for label in ("left", "right")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    failures = [outcome for outcome in outcomes if isinstance(outcome, NoCapacityAvailableError)]
    assert len(outcomes) == 2
    assert len(failures) == 1
    assert storage_used(store, "A") == 6
    assert_ledger_consistent(store)


def test_ledger_stays_consistent_across_mixed_operations(service, store, user, admin):
    add_storage(store, "A", 10)
    add_storage(store, "B", 8)
    service.create_volume(user, "ns1", "a", tariff_id=TARIFF_SMALL)
    service.admin_create_volume(admin, "ns1", "b", 5)
    service.direct_create_volume(admin, "ns2", "c", 2, "B")
    service.resize_volume(user, "ns1", "a", TARIFF_LARGE)
    service.delete_volume(admin, "ns1", "b")
    service.import_volume(admin, "ns3", "d", 1, "A")
    service.delete_all_namespace_volumes(admin, "ns2")

    assert_ledger_consistent(store)
    assert storage_used(store, "A") + storage_used(store, "B") == 8
