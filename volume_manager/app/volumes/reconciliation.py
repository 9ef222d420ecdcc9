"""Completion or rollback of volume creations whose external steps failed."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..errors import NotFoundError, VolumeManagerError
from .models import ProvisioningState, Volume
from .service import VolumeService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationSummary:
    examined: int = 0
    provisioned: int = 0
    compensated: int = 0
    failed: int = 0


@dataclass
class ProvisioningReconciler:
    """Retries provisioning of ``pending`` volumes and compensates hopeless ones.

    A volume is picked up once it has been pending for ``grace_period``. Each
    failed retry bumps ``provision_attempts``; on reaching ``max_attempts`` the
    row is soft-deleted (releasing its capacity) and the cluster and billing
    are cleaned up on a best-effort basis.
    """

    service: VolumeService
    grace_period: timedelta = timedelta(minutes=2)
    max_attempts: int = 5
    batch_size: int = 100

    def sweep(self, now: Optional[datetime] = None) -> ReconciliationSummary:
        current_time = now or datetime.now(timezone.utc)
        if current_time.tzinfo is None:
            current_time = current_time.replace(tzinfo=timezone.utc)

        with self.service.store.transaction() as session:
            pending = session.volumes.pending_volumes(
                older_than=current_time - self.grace_period,
                limit=self.batch_size,
            )

        provisioned = compensated = failed = 0
        for snapshot in pending:
            volume = self._current(snapshot)
            if volume is None:
                continue
            try:
                self.service.provision(volume, tolerate_existing=True)
            except NotFoundError:
                logger.info("Pending volume deleted during retry", extra={"volume_id": volume.id})
                continue
            except VolumeManagerError as exc:
                if self._record_failure(volume, exc):
                    compensated += 1
                else:
                    failed += 1
            else:
                provisioned += 1
                logger.info("Pending volume provisioned", extra={"volume_id": volume.id, "label": volume.label})

        summary = ReconciliationSummary(
            examined=len(pending),
            provisioned=provisioned,
            compensated=compensated,
            failed=failed,
        )
        if pending:
            logger.info(
                "Provisioning sweep finished",
                extra={
                    "examined": summary.examined,
                    "provisioned": summary.provisioned,
                    "compensated": summary.compensated,
                    "failed": summary.failed,
                },
            )
        return summary

    def _current(self, snapshot: Volume) -> Optional[Volume]:
        """Re-read a scanned row; ``None`` when it is gone or no longer pending."""

        try:
            with self.service.store.transaction() as session:
                volume = session.volumes.volume_by_id(snapshot.id)
        except NotFoundError:
            logger.info("Pending volume deleted before retry", extra={"volume_id": snapshot.id})
            return None
        if volume.provisioning_state != ProvisioningState.PENDING:
            return None
        return volume

    def _record_failure(self, volume: Volume, error: VolumeManagerError) -> bool:
        """Count a failed retry; return ``True`` when the volume was compensated."""

        with self.service.store.transaction() as session:
            attempts = session.volumes.record_provision_attempt(volume.id)
        logger.warning(
            "Provisioning retry failed",
            extra={"volume_id": volume.id, "label": volume.label, "attempts": attempts, "error": error.message},
        )
        if attempts < self.max_attempts:
            return False
        self.compensate(volume)
        return True

    def compensate(self, volume: Volume) -> None:
        """Undo a creation that could not be completed."""

        try:
            with self.service.store.transaction() as session:
                released = self.service.engine.release(session, volume)
        except NotFoundError:
            logger.info("Pending volume already deleted", extra={"volume_id": volume.id})
            return
        logger.warning(
            "Pending volume compensated",
            extra={"volume_id": volume.id, "label": volume.label, "storage_name": volume.storage_name},
        )
        try:
            self.service.deprovision(released)
        except VolumeManagerError as exc:
            logger.warning(
                "Cleanup after compensation failed",
                extra={"volume_id": volume.id, "error": exc.message},
            )


__all__ = ["ProvisioningReconciler", "ReconciliationSummary"]
