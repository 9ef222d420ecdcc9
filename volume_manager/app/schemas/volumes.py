"""API schemas for volume endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..volumes.models import AccessMode, ProvisioningState, Volume


class VolumeCreateRequest(BaseModel):
    label: str = Field(min_length=1, max_length=63)
    tariff_id: Optional[str] = Field(default=None, alias="tariffId")
    access_mode: AccessMode = Field(default=AccessMode.READ_WRITE_MANY, alias="accessMode")

    model_config = ConfigDict(populate_by_name=True)


class AdminVolumeCreateRequest(BaseModel):
    label: str = Field(min_length=1, max_length=63)
    capacity: int = Field(gt=0)
    access_mode: AccessMode = Field(default=AccessMode.READ_WRITE_MANY, alias="accessMode")

    model_config = ConfigDict(populate_by_name=True)


class DirectVolumeCreateRequest(AdminVolumeCreateRequest):
    storage_name: str = Field(
        min_length=1,
        alias="storageName",
        validation_alias=AliasChoices("storageName", "storage_name", "storage"),
    )


class VolumeImportRequest(BaseModel):
    label: str = Field(min_length=1, max_length=63, validation_alias=AliasChoices("label", "name"))
    capacity: int = Field(gt=0)
    storage_name: str = Field(
        min_length=1,
        alias="storageName",
        validation_alias=AliasChoices("storageName", "storage_name"),
    )
    owner_user_id: Optional[str] = Field(
        default=None,
        alias="ownerUserId",
        validation_alias=AliasChoices("ownerUserId", "owner_user_id", "owner"),
    )
    access_mode: AccessMode = Field(default=AccessMode.READ_WRITE_MANY, alias="accessMode")

    model_config = ConfigDict(populate_by_name=True)


class VolumeResizeRequest(BaseModel):
    tariff_id: str = Field(min_length=1, alias="tariffId")

    model_config = ConfigDict(populate_by_name=True)


class AdminVolumeResizeRequest(BaseModel):
    capacity: int = Field(gt=0)

    model_config = ConfigDict(populate_by_name=True)


class VolumeRenameRequest(BaseModel):
    label: str = Field(min_length=1, max_length=63, validation_alias=AliasChoices("label", "name"))

    model_config = ConfigDict(populate_by_name=True)


class VolumeResponse(BaseModel):
    """Volume as returned by the API; placement details are admin-only."""

    id: str
    label: str
    owner_user_id: str = Field(alias="ownerUserId")
    capacity: int
    tariff_id: Optional[str] = Field(default=None, alias="tariffId")
    namespace_id: Optional[str] = Field(default=None, alias="namespaceId")
    storage_name: Optional[str] = Field(default=None, alias="storageName")
    access_mode: Optional[AccessMode] = Field(default=None, alias="accessMode")
    provisioning_state: ProvisioningState = Field(alias="provisioningState")
    deleted: bool = False
    delete_time: Optional[datetime] = Field(default=None, alias="deleteTime")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_volume(cls, volume: Volume, *, is_admin: bool) -> "VolumeResponse":
        response = cls(
            id=volume.id,
            label=volume.label,
            owner_user_id=volume.owner_user_id,
            capacity=volume.capacity,
            tariff_id=volume.tariff_id,
            provisioning_state=volume.provisioning_state,
            deleted=volume.deleted,
            delete_time=volume.delete_time,
            created_at=volume.created_at,
        )
        if is_admin:
            response.namespace_id = volume.namespace_id
            response.storage_name = volume.storage_name
            response.access_mode = volume.access_mode
        return response


class VolumeListResponse(BaseModel):
    volumes: List[VolumeResponse]

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_volumes(cls, volumes: List[Volume], *, is_admin: bool) -> "VolumeListResponse":
        return cls(volumes=[VolumeResponse.from_volume(volume, is_admin=is_admin) for volume in volumes])


class VolumeDeleteResponse(BaseModel):
    deleted: int
    volume_ids: List[str] = Field(default_factory=list, alias="volumeIds")

    model_config = ConfigDict(populate_by_name=True)
