"""Admin API routes for storage backends."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from ..schemas.storages import (
    StorageCreateRequest,
    StorageListResponse,
    StorageResponse,
    StorageUpdateRequest,
)
from ..services.volumes import get_storage_service
from ..volumes.service import Caller
from .dependencies import domain_errors, require_admin

router = APIRouter(prefix="/admin/storages", tags=["storages"])


@router.post("", response_model=StorageResponse, status_code=status.HTTP_201_CREATED)
def create_storage(
    payload: StorageCreateRequest,
    *,
    caller: Caller = Depends(require_admin),
) -> StorageResponse:
    service = get_storage_service()
    with domain_errors():
        storage = service.create_storage(payload.name, payload.size, payload.replicas)
    return StorageResponse.from_storage(storage)


@router.get("", response_model=StorageListResponse)
def list_storages(*, caller: Caller = Depends(require_admin)) -> StorageListResponse:
    service = get_storage_service()
    with domain_errors():
        storages = service.list_storages()
    return StorageListResponse(storages=[StorageResponse.from_storage(storage) for storage in storages])


@router.get("/{name}", response_model=StorageResponse)
def get_storage(name: str, *, caller: Caller = Depends(require_admin)) -> StorageResponse:
    service = get_storage_service()
    with domain_errors():
        storage = service.get_storage(name)
    return StorageResponse.from_storage(storage)


@router.put("/{name}", response_model=StorageResponse)
def update_storage(
    name: str,
    payload: StorageUpdateRequest,
    *,
    caller: Caller = Depends(require_admin),
) -> StorageResponse:
    service = get_storage_service()
    with domain_errors():
        storage = service.update_storage(name, payload.to_update())
    return StorageResponse.from_storage(storage)


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
def delete_storage(name: str, *, caller: Caller = Depends(require_admin)) -> Response:
    service = get_storage_service()
    with domain_errors():
        service.delete_storage(name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
