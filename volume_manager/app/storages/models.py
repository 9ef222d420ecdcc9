"""Domain models for storage backends."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Storage(BaseModel):
    """A capacity pool from which volumes draw space."""

    name: str = Field(min_length=1)
    size: int = Field(ge=0)
    used: int = Field(default=0, ge=0)
    replicas: int = Field(default=1, ge=1)
    deleted: bool = False
    delete_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @property
    def free(self) -> int:
        """Capacity still available for placement."""
        return self.size - self.used


class StorageUpdate(BaseModel):
    """Partial update applied by ``update_storage``; ``None`` keeps the field."""

    name: Optional[str] = Field(default=None, min_length=1)
    size: Optional[int] = Field(default=None, ge=0)
    replicas: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(frozen=True)


__all__ = ["Storage", "StorageUpdate"]
