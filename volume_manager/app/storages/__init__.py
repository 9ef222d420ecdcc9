"""Storage backends and their capacity ledger."""

from .models import Storage, StorageUpdate

__all__ = ["Storage", "StorageUpdate"]
