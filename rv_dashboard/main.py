"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn

from .config import AppConfig
from .http_api import create_app
from .hub import BroadcastHub
from .logger import configure_logging
from .mqtt import TelemetryBridge
from .routes import init_default_user
from .simulation import SimulationManager
from .store import DocumentStore, seed_database


def build_lifespan(config, store, bridge, simulation):
    """Startup/shutdown sequence run by the ASGI server."""
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app):
        await seed_database(store)
        await init_default_user(store, config.auth.admin_password)

        await bridge.start()
        simulation.start_all()
        logger.info("RV dashboard backend started")
        try:
            yield
        finally:
            logger.info("Shutting down...")
            await simulation.stop_all()
            await bridge.stop()
            store.close()

    return lifespan


def main():
    """Main application entry point."""
    logger = logging.getLogger(__name__)
    try:
        # Load configuration from environment first
        config = AppConfig.from_env()

        # Configure logging globally (once)
        configure_logging(config)
        logger.info("Configuration loaded successfully")

        store = DocumentStore(config.database_path)
        hub = BroadcastHub()
        bridge = TelemetryBridge(config.mqtt, hub.broadcast)
        simulation = SimulationManager.create(
            store,
            hub,
            level_interval=config.simulation.level_interval,
            water_interval=config.simulation.water_interval,
        )

        app = create_app(
            bridge,
            hub,
            store,
            config,
            simulation=simulation,
            lifespan=build_lifespan(config, store, bridge, simulation),
        )

        logger.info(f"Starting HTTP API server on port {config.http_port}")
        uvicorn.run(app, host="0.0.0.0", port=config.http_port, log_level=config.log_level.lower())

    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Error starting application: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
