from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Tuple

import pytest

from volume_manager.app.errors import NotFoundError
from volume_manager.app.volumes.filters import VolumeFilter
from volume_manager.app.volumes.models import ProvisioningState, Volume
from volume_manager.app.volumes.repository import PostgresVolumeRepository


class FakeCursor:
    def __init__(self, *, fetchone_result=None, fetchall_result=None):
        self.fetchone_result = fetchone_result
        self.fetchall_result = list(fetchall_result or [])
        self.execute_calls = []

    def execute(self, query, params=None):
        self.execute_calls.append((" ".join(query.split()), params))

    def fetchone(self):
        return self.fetchone_result

    def fetchall(self):
        return list(self.fetchall_result)

    def close(self):
        pass


class FakeConnection:
    def __init__(self, *cursors):
        self._cursors = list(cursors)

    def cursor(self, *args, **kwargs):
        if not self._cursors:
            raise AssertionError("No cursors configured")
        return self._cursors.pop(0)


class RecordingLedger:
    def __init__(self) -> None:
        self.adjustments: List[Tuple[str, int]] = []

    def adjust_used(self, name: str, delta: int):
        self.adjustments.append((name, delta))


VOLUME_ID = "6f1c2a52-2f0e-4c55-9a53-0d7f0b7c0a11"


def volume_row(**overrides):
    row = {
        "id": VOLUME_ID,
        "namespace_id": "ns1",
        "label": "data",
        "owner_user_id": "user-1",
        "capacity": 4,
        "tariff_id": None,
        "storage_name": "fast",
        "access_mode": "ReadWriteMany",
        "provisioning_state": "pending",
        "provision_attempts": 0,
        "deleted": False,
        "delete_time": None,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


def make_volume(**overrides) -> Volume:
    row = volume_row(**overrides)
    return Volume(**row)


def test_create_volume_inserts_and_reserves_capacity():
    cursor = FakeCursor(fetchone_result=volume_row())
    ledger = RecordingLedger()
    repository = PostgresVolumeRepository(ledger=ledger, conn=FakeConnection(cursor))

    created = repository.create_volume(make_volume())

    assert created.id == VOLUME_ID
    assert created.provisioning_state == ProvisioningState.PENDING
    query, params = cursor.execute_calls[0]
    assert query.startswith("INSERT INTO volumes (")
    assert params["storage_name"] == "fast"
    assert params["access_mode"] == "ReadWriteMany"
    assert ledger.adjustments == [("fast", 4)]


def test_volume_by_natural_key_locks_when_requested():
    cursor = FakeCursor(fetchone_result=volume_row())
    repository = PostgresVolumeRepository(ledger=RecordingLedger(), conn=FakeConnection(cursor))

    repository.volume_by_natural_key("ns1", "data", for_update=True)

    query, params = cursor.execute_calls[0]
    assert "WHERE v.namespace_id = %s AND v.label = %s AND NOT v.deleted" in query
    assert query.endswith("FOR UPDATE OF v")
    assert params == ("ns1", "data")


def test_volume_by_natural_key_missing_raises_not_found():
    repository = PostgresVolumeRepository(
        ledger=RecordingLedger(), conn=FakeConnection(FakeCursor(fetchone_result=None))
    )

    with pytest.raises(NotFoundError):
        repository.volume_by_natural_key("ns1", "ghost")


def test_update_volume_adjusts_ledger_by_locked_delta():
    cursor = FakeCursor(fetchone_result={**volume_row(capacity=7), "old_capacity": 4})
    ledger = RecordingLedger()
    repository = PostgresVolumeRepository(ledger=ledger, conn=FakeConnection(cursor))

    updated = repository.update_volume(make_volume(), 7, "tariff-2")

    assert updated.capacity == 7
    query, params = cursor.execute_calls[0]
    assert "FOR UPDATE" in query
    assert params == {"id": VOLUME_ID, "capacity": 7, "tariff_id": "tariff-2"}
    assert ledger.adjustments == [("fast", 3)]


def test_delete_volume_already_deleted_does_not_touch_ledger():
    ledger = RecordingLedger()
    repository = PostgresVolumeRepository(
        ledger=ledger, conn=FakeConnection(FakeCursor(fetchone_result=None))
    )

    with pytest.raises(NotFoundError):
        repository.delete_volume(make_volume())

    assert ledger.adjustments == []


def test_delete_volume_releases_full_capacity():
    cursor = FakeCursor(fetchone_result=volume_row(deleted=True, delete_time=datetime.now(timezone.utc)))
    ledger = RecordingLedger()
    repository = PostgresVolumeRepository(ledger=ledger, conn=FakeConnection(cursor))

    deleted = repository.delete_volume(make_volume())

    assert deleted.deleted
    assert ledger.adjustments == [("fast", -4)]


def test_delete_volumes_aggregates_per_storage_in_name_order():
    rows = [
        volume_row(id="00000000-0000-4000-8000-000000000001", storage_name="slow", capacity=2, deleted=True),
        volume_row(id="00000000-0000-4000-8000-000000000002", storage_name="fast", capacity=3, deleted=True),
        volume_row(id="00000000-0000-4000-8000-000000000003", storage_name="slow", capacity=5, deleted=True),
    ]
    cursor = FakeCursor(fetchall_result=rows)
    ledger = RecordingLedger()
    repository = PostgresVolumeRepository(ledger=ledger, conn=FakeConnection(cursor))

    deleted = repository.delete_volumes([make_volume(id=row["id"]) for row in rows])

    assert len(deleted) == 3
    query, params = cursor.execute_calls[0]
    assert "WHERE id = ANY(%s::uuid[]) AND NOT deleted" in query
    assert params == ([row["id"] for row in rows],)
    assert ledger.adjustments == [("fast", -3), ("slow", -7)]


def test_delete_volumes_empty_batch_runs_no_query():
    ledger = RecordingLedger()
    repository = PostgresVolumeRepository(ledger=ledger, conn=FakeConnection())

    assert repository.delete_volumes([]) == []
    assert ledger.adjustments == []


def test_all_volumes_applies_filter_and_pagination():
    cursor = FakeCursor(fetchall_result=[volume_row()])
    repository = PostgresVolumeRepository(ledger=RecordingLedger(), conn=FakeConnection(cursor))

    volumes = repository.all_volumes(VolumeFilter(page=3, per_page=10, not_deleted=True, limited=True))

    assert [volume.id for volume in volumes] == [VOLUME_ID]
    query, params = cursor.execute_calls[0]
    assert "WHERE NOT v.deleted AND v.tariff_id IS NOT NULL" in query
    assert "LIMIT %(limit)s OFFSET %(offset)s" in query
    assert params == {"limit": 10, "offset": 20}


def test_all_volumes_without_pagination_has_no_limit():
    cursor = FakeCursor(fetchall_result=[])
    repository = PostgresVolumeRepository(ledger=RecordingLedger(), conn=FakeConnection(cursor))

    repository.all_volumes(VolumeFilter(deleted=True))

    query, params = cursor.execute_calls[0]
    assert "WHERE v.deleted" in query
    assert "LIMIT" not in query
    assert params == {}


def test_pending_volumes_selects_stale_pending_rows():
    cutoff = datetime(2024, 1, 2, tzinfo=timezone.utc)
    cursor = FakeCursor(fetchall_result=[volume_row()])
    repository = PostgresVolumeRepository(ledger=RecordingLedger(), conn=FakeConnection(cursor))

    pending = repository.pending_volumes(older_than=cutoff, limit=5)

    assert len(pending) == 1
    query, params = cursor.execute_calls[0]
    assert "v.provisioning_state = %s" in query
    assert params == ("pending", cutoff, 5)


def test_record_provision_attempt_returns_new_count():
    cursor = FakeCursor(fetchone_result={"provision_attempts": 3})
    repository = PostgresVolumeRepository(ledger=RecordingLedger(), conn=FakeConnection(cursor))

    assert repository.record_provision_attempt(VOLUME_ID) == 3
