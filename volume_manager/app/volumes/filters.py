"""Listing filters for volume queries."""
from __future__ import annotations

from typing import Iterable, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Query-string filter names and the VolumeFilter flag each one sets.
FILTER_FIELDS = {
    "not_deleted": "not_deleted",
    "deleted": "deleted",
    "limited": "limited",
    "not_limited": "not_limited",
}


class VolumeFilter(BaseModel):
    """Selects soft-deleted state, tariff state and a page of volumes."""

    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=0, ge=0)
    not_deleted: bool = False
    deleted: bool = False
    limited: bool = False
    not_limited: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    def where_clauses(self, alias: str = "v") -> List[str]:
        clauses: List[str] = []
        if self.not_deleted:
            clauses.append(f"NOT {alias}.deleted")
        if self.deleted:
            clauses.append(f"{alias}.deleted")
        if self.limited:
            clauses.append(f"{alias}.tariff_id IS NOT NULL")
        if self.not_limited:
            clauses.append(f"{alias}.tariff_id IS NULL")
        return clauses


STANDARD_VOLUME_FILTER = VolumeFilter(not_deleted=True)


def parse_volume_filter(filters: Iterable[str], *, page: int = 1, per_page: int = 0) -> VolumeFilter:
    """Build a filter from query names; unknown names are ignored.

    With no recognised names the standard ``not_deleted`` filter applies.
    """

    flags = {
        FILTER_FIELDS[name.strip()]: True
        for name in filters
        if name and name.strip() in FILTER_FIELDS
    }
    if not flags:
        flags = {"not_deleted": True}
    return VolumeFilter(page=page, per_page=per_page, **flags)


def split_filter_param(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in (raw or "").split(",") if part.strip())


__all__ = [
    "FILTER_FIELDS",
    "STANDARD_VOLUME_FILTER",
    "VolumeFilter",
    "parse_volume_filter",
    "split_filter_param",
]
