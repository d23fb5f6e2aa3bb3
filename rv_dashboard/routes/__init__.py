"""REST routers for the dashboard.

Each router factory receives the collaborators it needs (store, bridge,
configuration) instead of importing process-wide singletons.
"""

from .auth import create_auth_middleware, init_default_user
from .auth import create_router as create_auth_router
from .controls import create_lights_router, create_thermostat_router
from .deployments import create_deployments_router, create_download_router
from .readings import create_readings_router, create_settings_router

__all__ = [
    "create_auth_middleware",
    "create_auth_router",
    "create_deployments_router",
    "create_download_router",
    "create_lights_router",
    "create_readings_router",
    "create_settings_router",
    "create_thermostat_router",
    "init_default_user",
]
