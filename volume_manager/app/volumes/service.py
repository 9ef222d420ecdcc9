"""Use cases coordinating the volume registry with billing and the orchestrator."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from ..accounting.engine import PlacementEngine, VolumeStore
from ..clients.billing import BillingClient
from ..clients.models import SubscribeRequest, VolumeTariff
from ..clients.orchestrator import OrchestratorClient
from ..errors import (
    AdminRequiredError,
    AlreadyExistsError,
    ExternalServiceError,
    NotFoundError,
    QuotaExceededError,
    TariffUnavailableError,
    VolumeManagerError,
)
from .filters import parse_volume_filter
from .models import (
    ZERO_UUID,
    AccessMode,
    ProvisioningState,
    Volume,
    VolumeDraft,
    is_zero_tariff,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """Identity of the user issuing a request."""

    user_id: str
    is_admin: bool = False


def check_tariff(tariff: VolumeTariff, is_admin: bool) -> None:
    """Reject tariffs that are inactive, or non-public for regular users."""

    if not tariff.active:
        raise TariffUnavailableError(
            f"tariff {tariff.id} is not active", detail={"tariff_id": tariff.id}
        )
    if not tariff.public and not is_admin:
        raise TariffUnavailableError(
            f"tariff {tariff.id} is not available", detail={"tariff_id": tariff.id}
        )


def _require_admin(caller: Caller) -> None:
    if not caller.is_admin:
        raise AdminRequiredError("admin role required", detail={"user_id": caller.user_id})


def _volume_context(volume: Volume) -> dict:
    return {
        "volume_id": volume.id,
        "namespace_id": volume.namespace_id,
        "label": volume.label,
        "storage_name": volume.storage_name,
    }


@dataclass
class VolumeService:
    """Volume lifecycle on top of the placement engine and the external services.

    Ledger-affecting work runs in one store transaction per operation. Calls to
    the orchestrator and billing happen after that transaction commits; a
    created volume stays ``pending`` until both succeed, which lets the
    provisioning reconciler finish or undo it later.
    """

    store: VolumeStore
    billing: BillingClient
    orchestrator: OrchestratorClient
    engine: PlacementEngine = field(default_factory=PlacementEngine)

    # Creation

    def create_volume(
        self,
        caller: Caller,
        namespace_id: str,
        label: str,
        tariff_id: Optional[str] = None,
        access_mode: AccessMode = AccessMode.READ_WRITE_MANY,
    ) -> Volume:
        """Create a volume sized by a tariff, or by the namespace tariff for the zero id."""

        logger.info(
            "Create volume",
            extra={"namespace_id": namespace_id, "label": label, "tariff_id": tariff_id, "user_id": caller.user_id},
        )
        if is_zero_tariff(tariff_id):
            namespace_tariff = self.billing.get_tariff_for_namespace(namespace_id)
            if namespace_tariff.volume_size == 0:
                raise QuotaExceededError(
                    f"namespace {namespace_id} tariff has no volume allowance",
                    detail={"namespace_id": namespace_id, "tariff_id": namespace_tariff.id},
                )
            capacity = namespace_tariff.volume_size
            stored_tariff_id = None
        else:
            tariff = self.billing.get_volume_tariff(str(tariff_id))
            check_tariff(tariff, caller.is_admin)
            if tariff.storage_limit <= 0:
                raise TariffUnavailableError(
                    f"tariff {tariff.id} grants no storage", detail={"tariff_id": tariff.id}
                )
            capacity = tariff.storage_limit
            stored_tariff_id = tariff.id

        draft = VolumeDraft(
            namespace_id=namespace_id,
            label=label,
            owner_user_id=caller.user_id,
            capacity=capacity,
            tariff_id=stored_tariff_id,
            access_mode=access_mode,
        )
        with self.store.transaction() as session:
            volume = self.engine.place(session, draft)
        return self.provision(volume)

    def admin_create_volume(
        self,
        caller: Caller,
        namespace_id: str,
        label: str,
        capacity: int,
        access_mode: AccessMode = AccessMode.READ_WRITE_MANY,
    ) -> Volume:
        """Create an untariffed volume of ``capacity`` on the least used storage."""

        _require_admin(caller)
        logger.info(
            "Admin create volume",
            extra={"namespace_id": namespace_id, "label": label, "capacity": capacity, "user_id": caller.user_id},
        )
        draft = VolumeDraft(
            namespace_id=namespace_id,
            label=label,
            owner_user_id=caller.user_id,
            capacity=capacity,
            access_mode=access_mode,
        )
        with self.store.transaction() as session:
            volume = self.engine.place(session, draft)
        return self.provision(volume)

    def direct_create_volume(
        self,
        caller: Caller,
        namespace_id: str,
        label: str,
        capacity: int,
        storage_name: str,
        access_mode: AccessMode = AccessMode.READ_WRITE_MANY,
    ) -> Volume:
        """Create an untariffed volume on the named storage."""

        _require_admin(caller)
        logger.info(
            "Direct create volume",
            extra={
                "namespace_id": namespace_id,
                "label": label,
                "capacity": capacity,
                "storage_name": storage_name,
                "user_id": caller.user_id,
            },
        )
        draft = VolumeDraft(
            namespace_id=namespace_id,
            label=label,
            owner_user_id=caller.user_id,
            capacity=capacity,
            access_mode=access_mode,
        )
        with self.store.transaction() as session:
            volume = self.engine.place_on(session, draft, storage_name)
        return self.provision(volume)

    def import_volume(
        self,
        caller: Caller,
        namespace_id: str,
        label: str,
        capacity: int,
        storage_name: str,
        owner_user_id: Optional[str] = None,
        access_mode: AccessMode = AccessMode.READ_WRITE_MANY,
    ) -> Volume:
        """Register a volume that already exists in the cluster; accounting only."""

        _require_admin(caller)
        logger.info(
            "Import volume",
            extra={"namespace_id": namespace_id, "label": label, "capacity": capacity, "storage_name": storage_name},
        )
        draft = VolumeDraft(
            namespace_id=namespace_id,
            label=label,
            owner_user_id=owner_user_id or ZERO_UUID,
            capacity=capacity,
            access_mode=access_mode,
            provisioning_state=ProvisioningState.READY,
        )
        with self.store.transaction() as session:
            return self.engine.place_on(session, draft, storage_name)

    def provision(self, volume: Volume, *, tolerate_existing: bool = False) -> Volume:
        """Materialize a pending volume in the cluster and billing, then mark it ready.

        With ``tolerate_existing`` a conflict from the orchestrator or billing
        counts as success, which makes retries of a half-finished creation safe.
        Raises :class:`NotFoundError` when the volume was deleted before it
        could be marked ready; the external side effects are undone first.
        """

        try:
            self.orchestrator.create_volume(volume.namespace_id, volume.to_orchestrator_spec())
        except AlreadyExistsError:
            if not tolerate_existing:
                raise self._external_failure("orchestrator create", volume, None)
            logger.info("Volume already present in cluster", extra=_volume_context(volume))
        except VolumeManagerError as exc:
            raise self._external_failure("orchestrator create", volume, exc) from exc

        if volume.is_tariffed:
            request = SubscribeRequest(
                tariff_id=str(volume.tariff_id),
                resource_id=volume.id,
                resource_label=volume.label,
                user_id=volume.owner_user_id,
            )
            try:
                self.billing.subscribe(request)
            except AlreadyExistsError:
                if not tolerate_existing:
                    raise self._external_failure("billing subscribe", volume, None)
                logger.info("Subscription already present in billing", extra=_volume_context(volume))
            except VolumeManagerError as exc:
                raise self._external_failure("billing subscribe", volume, exc) from exc

        with self.store.transaction() as session:
            ready = session.volumes.mark_provisioned(volume.id)
        if ready is None:
            logger.warning("Volume deleted during provisioning", extra=_volume_context(volume))
            try:
                self.deprovision(volume)
            except VolumeManagerError as exc:
                logger.warning(
                    "Cleanup of deleted volume failed",
                    extra={**_volume_context(volume), "error": exc.message},
                )
            raise NotFoundError(
                f"volume {volume.label} was deleted during provisioning",
                detail={"namespace_id": volume.namespace_id, "label": volume.label, "volume_id": volume.id},
            )
        return ready

    # Resizing and renaming

    def resize_volume(self, caller: Caller, namespace_id: str, label: str, new_tariff_id: str) -> Volume:
        """Grow a volume to the storage limit of another tariff."""

        logger.info(
            "Resize volume",
            extra={"namespace_id": namespace_id, "label": label, "tariff_id": new_tariff_id, "user_id": caller.user_id},
        )
        tariff = self.billing.get_volume_tariff(new_tariff_id)
        check_tariff(tariff, caller.is_admin)
        with self.store.transaction() as session:
            volume = session.volumes.volume_by_natural_key(namespace_id, label, for_update=True)
            resized = self.engine.resize(session, volume, tariff.storage_limit, tariff.id)
        self._sync_orchestrator(resized)
        return resized

    def admin_resize_volume(self, caller: Caller, namespace_id: str, label: str, new_capacity: int) -> Volume:
        """Grow a volume to an explicit capacity; the volume loses its tariff."""

        _require_admin(caller)
        logger.info(
            "Admin resize volume",
            extra={"namespace_id": namespace_id, "label": label, "capacity": new_capacity, "user_id": caller.user_id},
        )
        with self.store.transaction() as session:
            volume = session.volumes.volume_by_natural_key(namespace_id, label, for_update=True)
            resized = self.engine.resize(session, volume, new_capacity, None)
        self._sync_orchestrator(resized)
        return resized

    def rename_volume(self, caller: Caller, namespace_id: str, label: str, new_label: str) -> Volume:
        logger.info(
            "Rename volume",
            extra={"namespace_id": namespace_id, "label": label, "new_label": new_label, "user_id": caller.user_id},
        )
        with self.store.transaction() as session:
            volume = session.volumes.volume_by_natural_key(namespace_id, label, for_update=True)
            renamed = session.volumes.rename_volume(volume, new_label)
        self._sync_orchestrator(renamed, name=label)
        if renamed.is_tariffed:
            self._call_external("billing rename", renamed, lambda: self.billing.rename(renamed.id, new_label))
        return renamed

    # Reads

    def get_volume(self, caller: Caller, namespace_id: str, label: str) -> Volume:
        with self.store.transaction() as session:
            return session.volumes.volume_by_natural_key(namespace_id, label)

    def list_user_volumes(self, caller: Caller) -> List[Volume]:
        with self.store.transaction() as session:
            return session.volumes.volumes_by_owner(caller.user_id)

    def list_namespace_volumes(self, caller: Caller, namespace_id: str) -> List[Volume]:
        with self.store.transaction() as session:
            return session.volumes.volumes_by_namespace(namespace_id)

    def list_all_volumes(
        self,
        caller: Caller,
        *,
        page: int = 1,
        per_page: int = 0,
        filters: Iterable[str] = (),
    ) -> List[Volume]:
        _require_admin(caller)
        volume_filter = parse_volume_filter(filters, page=page, per_page=per_page)
        with self.store.transaction() as session:
            return session.volumes.all_volumes(volume_filter)

    # Deletion

    def delete_volume(self, caller: Caller, namespace_id: str, label: str) -> Volume:
        """Soft-delete a volume, then remove it from the cluster and billing."""

        logger.info(
            "Delete volume",
            extra={"namespace_id": namespace_id, "label": label, "user_id": caller.user_id},
        )
        with self.store.transaction() as session:
            volume = session.volumes.volume_by_natural_key(namespace_id, label, for_update=True)
            deleted = self.engine.release(session, volume)
        self.deprovision(deleted)
        return deleted

    def deprovision(self, volume: Volume) -> None:
        """Remove a released volume from the cluster and cancel its subscription."""

        try:
            self.orchestrator.delete_volume(volume.namespace_id, volume.label)
        except NotFoundError:
            logger.info("Volume already absent from cluster", extra=_volume_context(volume))
        except VolumeManagerError as exc:
            raise self._external_failure("orchestrator delete", volume, exc) from exc
        if volume.is_tariffed:
            self._call_external("billing unsubscribe", volume, lambda: self.billing.unsubscribe(volume.id))

    def delete_all_user_volumes(self, caller: Caller) -> List[Volume]:
        logger.info("Delete all user volumes", extra={"user_id": caller.user_id})
        with self.store.transaction() as session:
            volumes = session.volumes.volumes_by_owner(caller.user_id)
            deleted = self.engine.release_many(session, volumes)
        self._unsubscribe_all(deleted)
        return deleted

    def delete_all_namespace_volumes(self, caller: Caller, namespace_id: str) -> List[Volume]:
        logger.info("Delete all namespace volumes", extra={"namespace_id": namespace_id, "user_id": caller.user_id})
        with self.store.transaction() as session:
            volumes = session.volumes.volumes_by_namespace(namespace_id)
            deleted = self.engine.release_many(session, volumes)
        self._unsubscribe_all(deleted)
        return deleted

    def _unsubscribe_all(self, deleted: List[Volume]) -> None:
        resource_ids = [volume.id for volume in deleted if volume.is_tariffed]
        if not resource_ids:
            return
        try:
            self.billing.massive_unsubscribe(resource_ids)
        except VolumeManagerError as exc:
            logger.warning(
                "Massive unsubscribe failed",
                extra={"resource_ids": resource_ids, "error": exc.message},
            )
            raise ExternalServiceError(
                f"billing massive unsubscribe failed: {exc.message}",
                detail={"resource_ids": resource_ids},
            ) from exc

    # External call helpers

    def _sync_orchestrator(self, volume: Volume, *, name: Optional[str] = None) -> None:
        self._call_external(
            "orchestrator update",
            volume,
            lambda: self.orchestrator.update_volume(volume.namespace_id, volume.to_orchestrator_spec(), name=name),
        )

    def _call_external(self, action: str, volume: Volume, call: Callable[[], None]) -> None:
        try:
            call()
        except VolumeManagerError as exc:
            raise self._external_failure(action, volume, exc) from exc

    @staticmethod
    def _external_failure(
        action: str, volume: Volume, cause: Optional[VolumeManagerError]
    ) -> ExternalServiceError:
        reason = cause.message if cause is not None else "resource already exists"
        logger.warning(
            "External call failed",
            extra={**_volume_context(volume), "action": action, "error": reason},
        )
        return ExternalServiceError(
            f"{action} failed for volume {volume.label}: {reason}",
            detail={"namespace_id": volume.namespace_id, "label": volume.label, "volume_id": volume.id},
        )


__all__ = ["Caller", "VolumeService", "check_tariff"]
