"""Error taxonomy shared by the ledger, repositories and services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class VolumeManagerError(Exception):
    """Domain failure surfaced unchanged to API callers."""

    message: str
    detail: Optional[Mapping[str, Any]] = None

    code: ClassVar[str] = "internal_error"
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class NotFoundError(VolumeManagerError):
    """Entity is absent or soft-deleted."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyExistsError(VolumeManagerError):
    """Natural key is already held by a live row."""

    code = "already_exists"
    status_code = status.HTTP_409_CONFLICT


class StorageInUseError(VolumeManagerError):
    """Storage still hosts live volumes."""

    code = "storage_in_use"
    status_code = status.HTTP_409_CONFLICT


class NoCapacityAvailableError(VolumeManagerError):
    """No storage has enough free space for the requested capacity."""

    code = "no_capacity_available"
    status_code = status.HTTP_507_INSUFFICIENT_STORAGE


class InvalidResizeError(VolumeManagerError):
    """Requested size would shrink a volume or a storage below its use."""

    code = "invalid_resize"
    status_code = status.HTTP_400_BAD_REQUEST


class QuotaExceededError(VolumeManagerError):
    code = "quota_exceeded"
    status_code = status.HTTP_403_FORBIDDEN


class TariffUnavailableError(VolumeManagerError):
    code = "tariff_unavailable"
    status_code = status.HTTP_403_FORBIDDEN


class AdminRequiredError(VolumeManagerError):
    code = "admin_required"
    status_code = status.HTTP_403_FORBIDDEN


class ExternalServiceError(VolumeManagerError):
    """Billing or orchestrator call failed."""

    code = "external_service_error"
    status_code = status.HTTP_502_BAD_GATEWAY


class InternalError(VolumeManagerError):
    """Unexpected database or ledger failure."""


__all__ = [
    "AdminRequiredError",
    "AlreadyExistsError",
    "ExternalServiceError",
    "InternalError",
    "InvalidResizeError",
    "NoCapacityAvailableError",
    "NotFoundError",
    "QuotaExceededError",
    "StorageInUseError",
    "TariffUnavailableError",
    "VolumeManagerError",
]
