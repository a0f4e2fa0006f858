from src.store.memory import MemoryStore, StoreError, StoreUnavailable, VersionConflict
from src.store.repository import PickupRepository
from src.store.fixtures import load_fixtures

__all__ = [
    "MemoryStore",
    "StoreError",
    "StoreUnavailable",
    "VersionConflict",
    "PickupRepository",
    "load_fixtures",
]
