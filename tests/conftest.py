"""Pytest configuration and fixtures for RV dashboard tests."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from rv_dashboard.config import (
    AppConfig,
    AuthConfig,
    DeploymentConfig,
    MQTTConfig,
    SimulationConfig,
    TLSConfig,
)
from rv_dashboard.http_api import create_app
from rv_dashboard.hub import BroadcastHub
from rv_dashboard.routes import init_default_user
from rv_dashboard.store import DocumentStore, seed_database

ADMIN_PASSWORD = "rv-admin-pass"

# ============================================================================
# Helper Functions for Creating Test Configurations
# ============================================================================


def create_test_mqtt_config(
    url: str = "mqtt://localhost:1883",
    username: str = None,
    password: str = None,
    client_id_prefix: str = "rv-backend",
    keepalive: int = 60,
    reconnect_period: int = 5,
    tls: TLSConfig = None,
) -> MQTTConfig:
    """Create an MQTTConfig for testing with sensible defaults."""
    return MQTTConfig(
        url=url,
        username=username,
        password=password,
        client_id_prefix=client_id_prefix,
        keepalive=keepalive,
        reconnect_period=reconnect_period,
        tls=tls,
    )


def create_test_app_config(
    mqtt_config: MQTTConfig = None,
    deployment_path: str = "/tmp/rv-dashboard-test-deployments",
    max_upload_bytes: int = 10 * 1024 * 1024,
    admin_password: str = ADMIN_PASSWORD,
    database_path: str = ":memory:",
) -> AppConfig:
    """Create an AppConfig for testing with sensible defaults.

    Examples:
        >>> config = create_test_app_config()
        >>> mqtt = create_test_mqtt_config(url="mqtts://broker:8883")
        >>> config = create_test_app_config(mqtt_config=mqtt)
    """
    return AppConfig(
        mqtt=mqtt_config or create_test_mqtt_config(),
        simulation=SimulationConfig(level_interval=2, water_interval=10),
        deployments=DeploymentConfig(storage_path=deployment_path, max_bytes=max_upload_bytes),
        auth=AuthConfig(admin_password=admin_password, session_hours=24),
        database_path=database_path,
    )


def run_async(coro):
    """Run a coroutine on a private event loop in a worker thread.

    Keeps sync fixtures from touching the loop pytest-asyncio manages.
    """
    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


class FakeConnection:
    """Stand-in for a Starlette WebSocket."""

    def __init__(self, state=WebSocketState.CONNECTED, fail: bool = False):
        self.application_state = state
        self.fail = fail
        self.sent = []

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(text)


def create_mock_bridge(connected: bool = True) -> Mock:
    """Bridge double whose publish operations report success while connected."""
    bridge = Mock()
    bridge.connected = connected
    for name in (
        "publish_thermostat_command",
        "publish_light_command",
        "publish_light_status",
        "publish_deployment_available",
    ):
        getattr(bridge, name).return_value = connected
    return bridge


# ============================================================================
# Pytest Fixtures
# ============================================================================


@pytest.fixture
def test_mqtt_config():
    """Fixture providing a standard MQTTConfig for testing."""
    return create_test_mqtt_config()


@pytest.fixture
def test_app_config(tmp_path):
    """Fixture providing a standard AppConfig for testing."""
    return create_test_app_config(deployment_path=str(tmp_path / "deployments"))


@pytest.fixture
def store():
    """In-memory document store, closed after the test."""
    document_store = DocumentStore(":memory:")
    yield document_store
    document_store.close()


@pytest.fixture
def seeded_store(store):
    """In-memory store holding the seed documents."""
    run_async(seed_database(store))
    return store


@pytest.fixture
def mock_bridge():
    """Connected bridge double."""
    return create_mock_bridge()


@pytest.fixture
def broadcast_hub():
    return BroadcastHub()


@pytest.fixture
def client(seeded_store, test_app_config, mock_bridge, broadcast_hub):
    """TestClient for an app with a seeded store and the admin user."""
    run_async(init_default_user(seeded_store, ADMIN_PASSWORD))
    app = create_app(mock_bridge, broadcast_hub, seeded_store, test_app_config)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client):
    """Authorization header for a logged-in admin session."""
    response = client.post(
        "/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD}
    )
    return {"Authorization": f"Bearer {response.json()['token']}"}
