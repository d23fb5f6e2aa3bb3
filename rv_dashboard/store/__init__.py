"""Document store for dashboard configuration and simulated readings.

Live telemetry never lands here; it only flows from the MQTT bridge to
WebSocket clients.
"""

from .documents import (
    ASCENDING,
    DESCENDING,
    Collection,
    DocumentStore,
    DuplicateKeyError,
    StoreError,
    new_id,
)
from .seed import MAIN_ID, seed_database

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "Collection",
    "DocumentStore",
    "DuplicateKeyError",
    "StoreError",
    "MAIN_ID",
    "new_id",
    "seed_database",
]
