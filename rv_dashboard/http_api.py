"""HTTP API: health endpoints, the dashboard WebSocket and REST routers."""

import logging
import os
import time
from typing import TYPE_CHECKING, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.staticfiles import StaticFiles

from . import routes

if TYPE_CHECKING:
    from .config import AppConfig
    from .hub import BroadcastHub
    from .mqtt import TelemetryBridge
    from .simulation import SimulationManager
    from .store import DocumentStore

SERVICE_NAME = "rv-dashboard"
VERSION = "1.0.0"


class DashboardHTTPAPI:
    """FastAPI application wiring for the RV dashboard backend."""

    def __init__(
        self,
        bridge: "TelemetryBridge",
        hub: "BroadcastHub",
        store: "DocumentStore",
        config: "AppConfig",
        simulation: Optional["SimulationManager"] = None,
        lifespan=None,
    ):
        """Initialize the HTTP API.

        Args:
            bridge: MQTT bridge used for health and command publishing
            hub: Broadcast hub that WebSocket clients register with
            store: Document store backing the REST routers
            config: Application configuration
            simulation: Simulated sensor tickers, reported in /metrics
            lifespan: Optional FastAPI lifespan context for startup/shutdown
        """
        self.bridge = bridge
        self.hub = hub
        self.store = store
        self.config = config
        self.simulation = simulation
        self.start_time = time.time()
        self.logger = logging.getLogger(__name__)
        self.app = FastAPI(
            title="RV Dashboard",
            description="Telemetry bridge and control API for the RV dashboard",
            version=VERSION,
            lifespan=lifespan,
        )

        self._setup_routes()
        self._setup_api()
        self._setup_frontend()

    def _setup_routes(self):
        """Set up health endpoints and the WebSocket channel."""

        @self.app.get("/health")
        async def health_check():
            """Liveness probe."""
            return {"status": "healthy", "service": SERVICE_NAME}

        @self.app.get("/ready")
        async def readiness_check():
            """Readiness probe: ready once the broker connection is up."""
            if self.bridge.connected:
                return {"status": "ready", "mqtt_connected": True}
            return {"status": "not ready", "mqtt_connected": False}

        @self.app.get("/metrics")
        async def metrics():
            """Basic metrics endpoint for monitoring."""
            return {
                "uptime_seconds": round(time.time() - self.start_time, 2),
                "websocket_clients": len(self.hub),
                "mqtt_connected": self.bridge.connected,
                "simulations_running": self.simulation.running_count if self.simulation else 0,
                "service": SERVICE_NAME,
                "version": VERSION,
            }

        @self.app.websocket("/ws")
        async def websocket_endpoint(websocket: WebSocket):
            """Register a dashboard client; inbound frames are ignored."""
            await websocket.accept()
            self.hub.register(websocket)
            try:
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass
            except Exception as e:
                self.logger.error(f"WebSocket error: {e}")
            finally:
                self.hub.unregister(websocket)

    def _setup_api(self):
        """Mount the REST routers behind session auth."""
        self.app.middleware("http")(routes.create_auth_middleware(self.store))

        self.app.include_router(routes.create_auth_router(self.store, self.config.auth))
        self.app.include_router(routes.create_thermostat_router(self.store, self.bridge))
        self.app.include_router(routes.create_lights_router(self.store, self.bridge))
        self.app.include_router(routes.create_readings_router(self.store))
        self.app.include_router(routes.create_settings_router(self.store))
        self.app.include_router(
            routes.create_deployments_router(self.store, self.bridge, self.config.deployments)
        )
        self.app.include_router(routes.create_download_router(self.store, self.config.deployments))

    def _setup_frontend(self):
        """Serve the dashboard frontend at /, behind every API route."""
        directory = self.config.frontend_dir
        if not directory:
            return
        if not os.path.isdir(directory):
            self.logger.warning(f"Frontend directory {directory} not found, not serving /")
            return
        self.app.mount("/", StaticFiles(directory=directory, html=True), name="frontend")
        self.logger.info(f"Serving dashboard frontend from {directory}")


def create_app(
    bridge: "TelemetryBridge",
    hub: "BroadcastHub",
    store: "DocumentStore",
    config: "AppConfig",
    simulation: Optional["SimulationManager"] = None,
    lifespan=None,
) -> FastAPI:
    """Create FastAPI application instance.

    Returns:
        FastAPI application
    """
    api = DashboardHTTPAPI(bridge, hub, store, config, simulation, lifespan)
    return api.app
