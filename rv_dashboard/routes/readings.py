"""Read-only endpoints for stored readings and user settings."""

import logging
from typing import TYPE_CHECKING, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from ..store import MAIN_ID
from ..utils import iso_timestamp

if TYPE_CHECKING:
    from ..store import DocumentStore

# Collections exposed as GET /api/<path> returning the "main" document
READING_COLLECTIONS = {
    "energy": "energy",
    "airquality": "airquality",
    "level": "trailer_level",
    "water": "water",
}

logger = logging.getLogger(__name__)


class SettingsUpdate(BaseModel):
    theme: Optional[Literal["dark", "light"]] = None
    timezone: Optional[str] = None
    clock_format: Optional[Literal["12h", "24h"]] = None


def create_readings_router(store: "DocumentStore") -> APIRouter:
    """Create GET endpoints for each stored reading."""
    router = APIRouter(prefix="/api", tags=["readings"])

    def add_reading_route(path: str, collection_name: str) -> None:
        collection = store.collection(collection_name)

        async def get_reading():
            return await collection.find_one({"_id": MAIN_ID})

        router.add_api_route(f"/{path}", get_reading, methods=["GET"], name=f"get_{path}")

    for path, collection_name in READING_COLLECTIONS.items():
        add_reading_route(path, collection_name)

    return router


def create_settings_router(store: "DocumentStore") -> APIRouter:
    """Create the /api/settings router."""
    router = APIRouter(prefix="/api/settings", tags=["settings"])
    settings = store.collection("settings")

    @router.get("")
    async def get_settings():
        return await settings.find_one({"_id": MAIN_ID})

    @router.put("")
    async def update_settings(update: SettingsUpdate):
        changes = update.model_dump(exclude_none=True)
        if changes:
            changes["updated_at"] = iso_timestamp()
            await settings.update_one({"_id": MAIN_ID}, {"$set": changes})
            logger.info(f"Updated settings: {sorted(changes)}")
        return await settings.find_one({"_id": MAIN_ID})

    return router
