"""Thermostat and light command endpoints.

Commands are published to MQTT and acknowledged immediately; the resulting
device state reaches the browser later through the status topics.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..store import ASCENDING, MAIN_ID

if TYPE_CHECKING:
    from ..mqtt import TelemetryBridge
    from ..store import DocumentStore

MIN_TARGET_TEMP = 50
MAX_TARGET_TEMP = 90
THERMOSTAT_MODES = ("heat", "cool", "auto", "off")
LIGHT_STATES = ("on", "off")

logger = logging.getLogger(__name__)


class ThermostatCommand(BaseModel):
    target_temp: Optional[float] = None
    mode: Optional[str] = None


class LightCommand(BaseModel):
    state: Optional[str] = None
    brightness: Optional[int] = None


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_thermostat_router(store: "DocumentStore", bridge: "TelemetryBridge") -> APIRouter:
    """Create the /api/thermostat router."""
    router = APIRouter(prefix="/api/thermostat", tags=["thermostat"])
    thermostat = store.collection("thermostat")

    @router.get("")
    async def get_thermostat():
        return await thermostat.find_one({"_id": MAIN_ID})

    @router.put("")
    async def set_thermostat(command: ThermostatCommand):
        if command.target_temp is not None and not (
            MIN_TARGET_TEMP <= command.target_temp <= MAX_TARGET_TEMP
        ):
            return _error(f"Temperature must be between {MIN_TARGET_TEMP} and {MAX_TARGET_TEMP}°F")
        if command.mode is not None and command.mode not in THERMOSTAT_MODES:
            return _error("Invalid mode")
        if command.target_temp is None and command.mode is None:
            return _error("No valid fields to update")

        if not bridge.publish_thermostat_command(command.target_temp, command.mode):
            logger.warning("Thermostat command was not delivered to the broker")

        response: Dict[str, Any] = {"success": True}
        response.update(command.model_dump(exclude_none=True))
        return response

    return router


def create_lights_router(store: "DocumentStore", bridge: "TelemetryBridge") -> APIRouter:
    """Create the /api/lights router."""
    router = APIRouter(prefix="/api/lights", tags=["lights"])
    lights = store.collection("lights")

    @router.get("")
    async def list_lights():
        return await lights.find(sort=[("_id", ASCENDING)])

    @router.put("/{light_id}")
    async def set_light(light_id: int, command: LightCommand):
        if command.state not in LIGHT_STATES:
            return _error("State must be 'on' or 'off'")
        if command.brightness is not None and not 0 <= command.brightness <= 100:
            return _error("Brightness must be between 0 and 100")
        if await lights.find_one({"_id": light_id}) is None:
            return _error("Light not found", status_code=404)

        if not bridge.publish_light_command(light_id, command.state, command.brightness):
            logger.warning(f"Light {light_id} command was not delivered to the broker")

        response: Dict[str, Any] = {"success": True, "id": light_id}
        response.update(command.model_dump(exclude_none=True))
        return response

    return router
