"""API routes for volume lifecycle operations."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ..schemas.volumes import (
    AdminVolumeCreateRequest,
    AdminVolumeResizeRequest,
    DirectVolumeCreateRequest,
    VolumeCreateRequest,
    VolumeDeleteResponse,
    VolumeImportRequest,
    VolumeListResponse,
    VolumeRenameRequest,
    VolumeResizeRequest,
    VolumeResponse,
)
from ..services.volumes import get_volume_service
from ..volumes.filters import split_filter_param
from ..volumes.service import Caller
from .dependencies import domain_errors, get_caller, require_admin

router = APIRouter(tags=["volumes"])

_MAX_PAGE_SIZE = 1000


@router.post(
    "/namespaces/{namespace_id}/volumes",
    response_model=VolumeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_volume(
    namespace_id: str,
    payload: VolumeCreateRequest,
    *,
    caller: Caller = Depends(get_caller),
) -> VolumeResponse:
    """Create a volume sized by a tariff, or by the namespace tariff for the zero id."""

    service = get_volume_service()
    with domain_errors():
        volume = service.create_volume(
            caller,
            namespace_id,
            payload.label,
            tariff_id=payload.tariff_id,
            access_mode=payload.access_mode,
        )
    return VolumeResponse.from_volume(volume, is_admin=caller.is_admin)


@router.post(
    "/admin/namespaces/{namespace_id}/volumes",
    response_model=VolumeResponse,
    status_code=status.HTTP_201_CREATED,
)
def admin_create_volume(
    namespace_id: str,
    payload: AdminVolumeCreateRequest,
    *,
    caller: Caller = Depends(require_admin),
) -> VolumeResponse:
    service = get_volume_service()
    with domain_errors():
        volume = service.admin_create_volume(
            caller,
            namespace_id,
            payload.label,
            payload.capacity,
            access_mode=payload.access_mode,
        )
    return VolumeResponse.from_volume(volume, is_admin=True)


@router.post(
    "/admin/namespaces/{namespace_id}/volumes/direct",
    response_model=VolumeResponse,
    status_code=status.HTTP_201_CREATED,
)
def direct_create_volume(
    namespace_id: str,
    payload: DirectVolumeCreateRequest,
    *,
    caller: Caller = Depends(require_admin),
) -> VolumeResponse:
    service = get_volume_service()
    with domain_errors():
        volume = service.direct_create_volume(
            caller,
            namespace_id,
            payload.label,
            payload.capacity,
            payload.storage_name,
            access_mode=payload.access_mode,
        )
    return VolumeResponse.from_volume(volume, is_admin=True)


@router.post(
    "/admin/namespaces/{namespace_id}/volumes/import",
    response_model=VolumeResponse,
    status_code=status.HTTP_201_CREATED,
)
def import_volume(
    namespace_id: str,
    payload: VolumeImportRequest,
    *,
    caller: Caller = Depends(require_admin),
) -> VolumeResponse:
    """Register a volume that already exists in the cluster."""

    service = get_volume_service()
    with domain_errors():
        volume = service.import_volume(
            caller,
            namespace_id,
            payload.label,
            payload.capacity,
            payload.storage_name,
            owner_user_id=payload.owner_user_id,
            access_mode=payload.access_mode,
        )
    return VolumeResponse.from_volume(volume, is_admin=True)


@router.get("/namespaces/{namespace_id}/volumes/{label}", response_model=VolumeResponse)
def get_volume(
    namespace_id: str,
    label: str,
    *,
    caller: Caller = Depends(get_caller),
) -> VolumeResponse:
    service = get_volume_service()
    with domain_errors():
        volume = service.get_volume(caller, namespace_id, label)
    return VolumeResponse.from_volume(volume, is_admin=caller.is_admin)


@router.get("/namespaces/{namespace_id}/volumes", response_model=VolumeListResponse)
def list_namespace_volumes(
    namespace_id: str,
    *,
    caller: Caller = Depends(get_caller),
) -> VolumeListResponse:
    service = get_volume_service()
    with domain_errors():
        volumes = service.list_namespace_volumes(caller, namespace_id)
    return VolumeListResponse.from_volumes(volumes, is_admin=caller.is_admin)


@router.get("/volumes", response_model=VolumeListResponse)
def list_user_volumes(*, caller: Caller = Depends(get_caller)) -> VolumeListResponse:
    service = get_volume_service()
    with domain_errors():
        volumes = service.list_user_volumes(caller)
    return VolumeListResponse.from_volumes(volumes, is_admin=caller.is_admin)


@router.get("/admin/volumes", response_model=VolumeListResponse)
def list_all_volumes(
    *,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=0, ge=0, le=_MAX_PAGE_SIZE),
    filters: Optional[str] = Query(default=None),
    caller: Caller = Depends(require_admin),
) -> VolumeListResponse:
    """List volumes of every user; ``filters`` is a comma separated list of names."""

    service = get_volume_service()
    with domain_errors():
        volumes = service.list_all_volumes(
            caller,
            page=page,
            per_page=per_page,
            filters=split_filter_param(filters or ""),
        )
    return VolumeListResponse.from_volumes(volumes, is_admin=True)


@router.put("/namespaces/{namespace_id}/volumes/{label}", response_model=VolumeResponse)
def resize_volume(
    namespace_id: str,
    label: str,
    payload: VolumeResizeRequest,
    *,
    caller: Caller = Depends(get_caller),
) -> VolumeResponse:
    service = get_volume_service()
    with domain_errors():
        volume = service.resize_volume(caller, namespace_id, label, payload.tariff_id)
    return VolumeResponse.from_volume(volume, is_admin=caller.is_admin)


@router.put("/admin/namespaces/{namespace_id}/volumes/{label}", response_model=VolumeResponse)
def admin_resize_volume(
    namespace_id: str,
    label: str,
    payload: AdminVolumeResizeRequest,
    *,
    caller: Caller = Depends(require_admin),
) -> VolumeResponse:
    service = get_volume_service()
    with domain_errors():
        volume = service.admin_resize_volume(caller, namespace_id, label, payload.capacity)
    return VolumeResponse.from_volume(volume, is_admin=True)


@router.put("/namespaces/{namespace_id}/volumes/{label}/name", response_model=VolumeResponse)
def rename_volume(
    namespace_id: str,
    label: str,
    payload: VolumeRenameRequest,
    *,
    caller: Caller = Depends(get_caller),
) -> VolumeResponse:
    service = get_volume_service()
    with domain_errors():
        volume = service.rename_volume(caller, namespace_id, label, payload.label)
    return VolumeResponse.from_volume(volume, is_admin=caller.is_admin)


@router.delete("/namespaces/{namespace_id}/volumes/{label}", status_code=status.HTTP_204_NO_CONTENT)
def delete_volume(
    namespace_id: str,
    label: str,
    *,
    caller: Caller = Depends(get_caller),
) -> Response:
    service = get_volume_service()
    with domain_errors():
        service.delete_volume(caller, namespace_id, label)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/namespaces/{namespace_id}/volumes", response_model=VolumeDeleteResponse)
def delete_namespace_volumes(
    namespace_id: str,
    *,
    caller: Caller = Depends(get_caller),
) -> VolumeDeleteResponse:
    service = get_volume_service()
    with domain_errors():
        deleted = service.delete_all_namespace_volumes(caller, namespace_id)
    return VolumeDeleteResponse(deleted=len(deleted), volume_ids=[volume.id for volume in deleted])


@router.delete("/volumes", response_model=VolumeDeleteResponse)
def delete_user_volumes(*, caller: Caller = Depends(get_caller)) -> VolumeDeleteResponse:
    service = get_volume_service()
    with domain_errors():
        deleted = service.delete_all_user_volumes(caller)
    return VolumeDeleteResponse(deleted=len(deleted), volume_ids=[volume.id for volume in deleted])


__all__ = ["router"]
