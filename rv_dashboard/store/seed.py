"""Initial documents for a fresh store."""

import logging
from typing import TYPE_CHECKING

from ..utils import iso_timestamp

if TYPE_CHECKING:
    from .documents import DocumentStore

MAIN_ID = "main"

LIGHT_NAMES = (
    "Living Room",
    "Kitchen",
    "Bedroom",
    "Bathroom",
    "Exterior",
    "Awning",
    "Porch",
    "Storage",
)

logger = logging.getLogger(__name__)


async def seed_database(store: "DocumentStore") -> None:
    """Insert seed rows for any collection that is still empty.

    Energy, air quality and thermostat readings arrive over MQTT only and
    are not seeded.
    """
    # Light metadata only; on/off state comes from the light controller
    lights = store.collection("lights")
    if await lights.count_documents() == 0:
        await lights.insert_many(
            {"_id": index, "name": name, "updated_at": iso_timestamp()}
            for index, name in enumerate(LIGHT_NAMES, start=1)
        )
        logger.info("Seeded lights")

    trailer_level = store.collection("trailer_level")
    if await trailer_level.find_one({"_id": MAIN_ID}) is None:
        await trailer_level.insert_one(
            {"_id": MAIN_ID, "front_back": 0.0, "side_to_side": 0.0, "updated_at": iso_timestamp()}
        )
        logger.info("Seeded trailer level")

    settings = store.collection("settings")
    if await settings.find_one({"_id": MAIN_ID}) is None:
        await settings.insert_one(
            {
                "_id": MAIN_ID,
                "theme": "dark",
                "timezone": "America/New_York",
                "clock_format": "12h",
                "updated_at": iso_timestamp(),
            }
        )
        logger.info("Seeded settings")

    water = store.collection("water")
    if await water.find_one({"_id": MAIN_ID}) is None:
        await water.insert_one(
            {"_id": MAIN_ID, "fresh": 75.0, "grey": 30.0, "black": 15.0, "updated_at": iso_timestamp()}
        )
        logger.info("Seeded water tanks")

    logger.info("Database seeding complete")
