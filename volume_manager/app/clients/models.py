"""Payloads exchanged with the billing service."""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class VolumeTariff(BaseModel):
    """A billing plan that fixes the capacity of a user volume."""

    id: str
    label: str = ""
    active: bool = Field(default=True, alias="is_active")
    public: bool = Field(default=True, alias="is_public")
    storage_limit: int = Field(ge=0)
    price: Decimal = Decimal("0")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class NamespaceTariff(BaseModel):
    """Namespace plan; ``volume_size`` is the capacity of the bundled volume."""

    id: str
    label: str = ""
    active: bool = Field(default=True, alias="is_active")
    public: bool = Field(default=True, alias="is_public")
    volume_size: int = Field(default=0, ge=0)
    cpu_limit: Optional[int] = None
    memory_limit: Optional[int] = None
    price: Decimal = Decimal("0")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class SubscribeRequest(BaseModel):
    tariff_id: str
    resource_type: str = "volume"
    resource_id: str
    resource_label: str
    user_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


__all__ = ["NamespaceTariff", "SubscribeRequest", "VolumeTariff"]
