"""Application wiring for the volume and storage services."""
from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache

from ...app_context import get_config
from ...config import STORE_MEMORY
from ..accounting.engine import PlacementEngine, VolumeStore
from ..accounting.memory import InMemoryVolumeStore
from ..accounting.store import PostgresVolumeStore
from ..clients.billing import create_billing_client
from ..clients.orchestrator import create_orchestrator_client
from ..storages.service import StorageService
from ..volumes.reconciliation import ProvisioningReconciler
from ..volumes.service import VolumeService

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_volume_store() -> VolumeStore:
    config = get_config()
    if config.volume_store == STORE_MEMORY:
        logger.warning("Using in-memory volume store; state is lost on restart")
        return InMemoryVolumeStore()
    return PostgresVolumeStore(statement_timeout_seconds=config.request_timeout_seconds)


@lru_cache(maxsize=1)
def get_volume_service() -> VolumeService:
    config = get_config()
    billing = create_billing_client(config)
    orchestrator = create_orchestrator_client(config)
    logger.info("Volume service clients", extra={"billing": repr(billing), "orchestrator": repr(orchestrator)})
    return VolumeService(
        store=get_volume_store(),
        billing=billing,
        orchestrator=orchestrator,
        engine=PlacementEngine(),
    )


@lru_cache(maxsize=1)
def get_storage_service() -> StorageService:
    return StorageService(store=get_volume_store())


@lru_cache(maxsize=1)
def get_reconciler() -> ProvisioningReconciler:
    config = get_config()
    return ProvisioningReconciler(
        service=get_volume_service(),
        grace_period=timedelta(seconds=config.reconcile_grace_seconds),
        max_attempts=config.reconcile_max_attempts,
    )


def reset_services() -> None:
    """Drop cached services so the next call rebuilds them from the current config."""

    for factory in (get_reconciler, get_storage_service, get_volume_service, get_volume_store):
        factory.cache_clear()


__all__ = [
    "get_reconciler",
    "get_storage_service",
    "get_volume_service",
    "get_volume_store",
    "reset_services",
]
