"""Domain models for volumes."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

ZERO_UUID = "00000000-0000-0000-0000-000000000000"


def is_zero_tariff(tariff_id: Optional[str]) -> bool:
    """Return ``True`` when the tariff id denotes a namespace-funded volume."""

    return not tariff_id or tariff_id == ZERO_UUID


class AccessMode(str, Enum):
    """Persistent volume access modes understood by the orchestrator."""

    READ_WRITE_ONCE = "ReadWriteOnce"
    READ_ONLY_MANY = "ReadOnlyMany"
    READ_WRITE_MANY = "ReadWriteMany"


class ProvisioningState(str, Enum):
    """Progress of the external side effects of a volume creation."""

    PENDING = "pending"
    READY = "ready"


class VolumeDraft(BaseModel):
    """A volume that has not been placed on a storage yet."""

    namespace_id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    owner_user_id: str = Field(min_length=1)
    capacity: int = Field(gt=0)
    tariff_id: Optional[str] = None
    access_mode: AccessMode = AccessMode.READ_WRITE_MANY
    provisioning_state: ProvisioningState = ProvisioningState.PENDING

    model_config = ConfigDict(frozen=True)

    def on_storage(self, storage_name: str) -> "Volume":
        return Volume(
            id=str(uuid4()),
            namespace_id=self.namespace_id,
            label=self.label,
            owner_user_id=self.owner_user_id,
            capacity=self.capacity,
            tariff_id=self.tariff_id,
            storage_name=storage_name,
            access_mode=self.access_mode,
            provisioning_state=self.provisioning_state,
        )


class Volume(BaseModel):
    """Persistent storage allocated to a namespace and owner."""

    id: str
    namespace_id: str
    label: str
    owner_user_id: str
    capacity: int = Field(gt=0)
    tariff_id: Optional[str] = None
    storage_name: str
    access_mode: AccessMode = AccessMode.READ_WRITE_MANY
    provisioning_state: ProvisioningState = ProvisioningState.PENDING
    provision_attempts: int = Field(default=0, ge=0)
    deleted: bool = False
    delete_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @property
    def is_tariffed(self) -> bool:
        return not is_zero_tariff(self.tariff_id)

    def to_orchestrator_spec(self) -> Dict[str, object]:
        """Payload describing the volume to the cluster orchestrator."""

        return {
            "name": self.label,
            "owner": self.owner_user_id,
            "capacity": self.capacity,
            "storage_name": self.storage_name,
            "access_mode": self.access_mode.value,
        }


__all__ = [
    "AccessMode",
    "ProvisioningState",
    "Volume",
    "VolumeDraft",
    "ZERO_UUID",
    "is_zero_tariff",
]
