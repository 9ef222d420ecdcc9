"""Request identity and error translation shared by the routers."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Depends, Header, HTTPException, status

from ..errors import AdminRequiredError, VolumeManagerError
from ..volumes.service import Caller

ADMIN_ROLE = "admin"


def get_caller(
    user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> Caller:
    """Identify the caller from the headers set by the API gateway."""

    if not user_id or not user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-ID header required")
    role = (user_role or "").strip().lower()
    return Caller(user_id=user_id.strip(), is_admin=role == ADMIN_ROLE)


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise AdminRequiredError("admin role required", detail={"user_id": caller.user_id}).to_http_exception()
    return caller


@contextmanager
def domain_errors() -> Iterator[None]:
    """Re-raise domain failures as HTTP errors carrying their payload."""

    try:
        yield
    except VolumeManagerError as exc:
        raise exc.to_http_exception() from exc


__all__ = ["ADMIN_ROLE", "domain_errors", "get_caller", "require_admin"]
