"""Placement of volumes on storages and transactional capacity accounting."""

from .engine import PlacementEngine, StorageLedger, StoreSession, VolumeRepository, VolumeStore
from .memory import InMemoryVolumeStore

__all__ = [
    "InMemoryVolumeStore",
    "PlacementEngine",
    "StorageLedger",
    "StoreSession",
    "VolumeRepository",
    "VolumeStore",
]
