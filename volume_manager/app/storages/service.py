"""Administrative use cases for storage backends."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from ..accounting.engine import VolumeStore
from .models import Storage, StorageUpdate

logger = logging.getLogger(__name__)


@dataclass
class StorageService:
    store: VolumeStore

    def create_storage(self, name: str, size: int, replicas: int = 1) -> Storage:
        logger.info("Create storage", extra={"storage_name": name, "size": size, "replicas": replicas})
        with self.store.transaction() as session:
            return session.storages.create_storage(name, size, replicas)

    def get_storage(self, name: str) -> Storage:
        with self.store.transaction() as session:
            return session.storages.storage_by_name(name)

    def list_storages(self) -> List[Storage]:
        with self.store.transaction() as session:
            return session.storages.all_storages()

    def update_storage(self, name: str, update: StorageUpdate) -> Storage:
        logger.info(
            "Update storage",
            extra={"storage_name": name, "new_name": update.name, "size": update.size, "replicas": update.replicas},
        )
        with self.store.transaction() as session:
            return session.storages.update_storage(name, update)

    def delete_storage(self, name: str) -> Storage:
        logger.info("Delete storage", extra={"storage_name": name})
        with self.store.transaction() as session:
            return session.storages.delete_storage(name)


__all__ = ["StorageService"]
