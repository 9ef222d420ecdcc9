"""API schemas for storage administration."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..storages.models import Storage, StorageUpdate


class StorageCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    size: int = Field(ge=0)
    replicas: int = Field(default=1, ge=1)

    model_config = ConfigDict(populate_by_name=True)


class StorageUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    size: Optional[int] = Field(default=None, ge=0)
    replicas: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(populate_by_name=True)

    def to_update(self) -> StorageUpdate:
        return StorageUpdate(name=self.name, size=self.size, replicas=self.replicas)


class StorageResponse(BaseModel):
    name: str
    size: int
    used: int
    free: int
    replicas: int
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_storage(cls, storage: Storage) -> "StorageResponse":
        return cls(
            name=storage.name,
            size=storage.size,
            used=storage.used,
            free=storage.free,
            replicas=storage.replicas,
            created_at=storage.created_at,
        )


class StorageListResponse(BaseModel):
    storages: List[StorageResponse]

    model_config = ConfigDict(populate_by_name=True)
