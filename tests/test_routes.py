"""Tests for the REST routers."""

import hashlib
import time

import pytest
from fastapi.testclient import TestClient

from rv_dashboard.http_api import create_app
from rv_dashboard.hub import BroadcastHub
from tests.conftest import ADMIN_PASSWORD, create_mock_bridge, create_test_app_config, run_async


def login(client, password=ADMIN_PASSWORD):
    return client.post("/api/auth/login", json={"username": "admin", "password": password})


class TestAuth:
    """Test login sessions and the /api guard."""

    def test_login_returns_token_and_user(self, client):
        response = login(client)

        assert response.status_code == 200
        data = response.json()
        assert len(data["token"]) == 64
        assert data["user"]["username"] == "admin"
        assert data["user"]["display_name"] == "Administrator"
        assert data["expires_at"].endswith("Z")

    def test_login_requires_both_fields(self, client):
        response = client.post("/api/auth/login", json={"username": "admin"})
        assert response.status_code == 400

    def test_login_rejects_wrong_password(self, client):
        response = login(client, password="nope")

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}

    def test_login_rejects_unknown_user(self, client):
        response = client.post("/api/auth/login", json={"username": "guest", "password": "x"})
        assert response.status_code == 401

    def test_check(self, client, auth_headers):
        response = client.get("/api/auth/check", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["authenticated"] is True

    def test_check_without_token(self, client):
        response = client.get("/api/auth/check")

        assert response.status_code == 401
        assert response.json() == {"authenticated": False}

    def test_logout_ends_session(self, client, auth_headers):
        assert client.post("/api/auth/logout", headers=auth_headers).status_code == 200
        assert client.get("/api/auth/check", headers=auth_headers).status_code == 401
        assert client.get("/api/settings", headers=auth_headers).status_code == 401

    def test_protected_route_requires_token(self, client):
        response = client.get("/api/settings")

        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}

    def test_protected_route_rejects_unknown_token(self, client):
        response = client.get("/api/settings", headers={"Authorization": "Bearer deadbeef"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or expired session"}

    def test_expired_session_rejected(self, client, seeded_store):
        user = run_async(seeded_store.collection("users").find_one({"username": "admin"}))
        run_async(
            seeded_store.collection("sessions").insert_one(
                {"user_id": user["_id"], "token": "old", "expires_at": "2020-01-01T00:00:00.000Z"}
            )
        )

        response = client.get("/api/settings", headers={"Authorization": "Bearer old"})
        assert response.status_code == 401

    def test_browser_navigation_redirects_to_login(self, client):
        response = client.get(
            "/api/settings", headers={"Accept": "text/html"}, follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/#login"

    def test_change_password(self, client, auth_headers):
        response = client.post(
            "/api/auth/change-password",
            headers=auth_headers,
            json={"current_password": ADMIN_PASSWORD, "new_password": "new-secret"},
        )

        assert response.status_code == 200
        assert login(client).status_code == 401
        assert login(client, password="new-secret").status_code == 200

    @pytest.mark.parametrize(
        "body,status",
        [
            ({"current_password": ADMIN_PASSWORD}, 400),
            ({"current_password": ADMIN_PASSWORD, "new_password": "short"}, 400),
            ({"current_password": "wrong", "new_password": "long-enough"}, 401),
        ],
    )
    def test_change_password_rejections(self, client, auth_headers, body, status):
        response = client.post("/api/auth/change-password", headers=auth_headers, json=body)
        assert response.status_code == status

    def test_change_password_requires_session(self, client):
        response = client.post(
            "/api/auth/change-password",
            json={"current_password": ADMIN_PASSWORD, "new_password": "new-secret"},
        )
        assert response.status_code == 401


class TestThermostat:
    """Test thermostat command validation and publishing."""

    def test_get_before_any_status_is_null(self, client, auth_headers):
        response = client.get("/api/thermostat", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() is None

    def test_target_temp_only(self, client, auth_headers, mock_bridge):
        response = client.put("/api/thermostat", headers=auth_headers, json={"target_temp": 72})

        assert response.status_code == 200
        assert response.json() == {"success": True, "target_temp": 72}
        mock_bridge.publish_thermostat_command.assert_called_once_with(72, None)

    def test_mode_only(self, client, auth_headers, mock_bridge):
        response = client.put("/api/thermostat", headers=auth_headers, json={"mode": "cool"})

        assert response.json() == {"success": True, "mode": "cool"}
        mock_bridge.publish_thermostat_command.assert_called_once_with(None, "cool")

    @pytest.mark.parametrize(
        "body",
        [{"target_temp": 49}, {"target_temp": 91}, {"mode": "fan"}, {}],
    )
    def test_invalid_commands(self, client, auth_headers, mock_bridge, body):
        response = client.put("/api/thermostat", headers=auth_headers, json=body)

        assert response.status_code == 400
        assert "error" in response.json()
        mock_bridge.publish_thermostat_command.assert_not_called()

    def test_success_reported_while_broker_down(self, client, auth_headers, mock_bridge):
        mock_bridge.publish_thermostat_command.return_value = False
        response = client.put("/api/thermostat", headers=auth_headers, json={"mode": "off"})
        assert response.json()["success"] is True


class TestLights:
    """Test light listing and commands."""

    def test_list_seeded_lights(self, client, auth_headers):
        lights = client.get("/api/lights", headers=auth_headers).json()

        assert [light["_id"] for light in lights] == list(range(1, 9))
        assert lights[4]["name"] == "Exterior"

    def test_command(self, client, auth_headers, mock_bridge):
        response = client.put(
            "/api/lights/3", headers=auth_headers, json={"state": "on", "brightness": 50}
        )

        assert response.json() == {"success": True, "id": 3, "state": "on", "brightness": 50}
        mock_bridge.publish_light_command.assert_called_once_with(3, "on", 50)

    @pytest.mark.parametrize(
        "light_id,body,status",
        [
            (3, {"state": "dim"}, 400),
            (3, {"brightness": 10}, 400),
            (3, {"state": "on", "brightness": 150}, 400),
            (99, {"state": "off"}, 404),
        ],
    )
    def test_rejected_commands(self, client, auth_headers, mock_bridge, light_id, body, status):
        response = client.put(f"/api/lights/{light_id}", headers=auth_headers, json=body)

        assert response.status_code == status
        mock_bridge.publish_light_command.assert_not_called()


class TestReadingsAndSettings:
    def test_level_reading(self, client, auth_headers):
        level = client.get("/api/level", headers=auth_headers).json()
        assert level["front_back"] == 0.0

    def test_water_reading(self, client, auth_headers):
        assert client.get("/api/water", headers=auth_headers).json()["fresh"] == 75.0

    def test_energy_without_reading(self, client, auth_headers):
        assert client.get("/api/energy", headers=auth_headers).json() is None

    def test_update_settings(self, client, auth_headers):
        before = client.get("/api/settings", headers=auth_headers).json()

        response = client.put(
            "/api/settings", headers=auth_headers, json={"theme": "light", "clock_format": "24h"}
        )

        settings = response.json()
        assert settings["theme"] == "light"
        assert settings["clock_format"] == "24h"
        assert settings["timezone"] == before["timezone"]
        assert settings["updated_at"] >= before["updated_at"]

    def test_invalid_theme_rejected(self, client, auth_headers):
        response = client.put("/api/settings", headers=auth_headers, json={"theme": "blue"})
        assert response.status_code == 422


PACKAGE = bytes(range(256)) * 8


class TestDeployments:
    """Test package upload, listing and device downloads."""

    def upload(self, client, headers, content=PACKAGE, version="1.2.0"):
        return client.post(
            "/api/deployments/upload",
            headers=headers,
            files={"file": ("rv-firmware.zip", content, "application/zip")},
            data={"version": version},
        )

    def test_upload_stores_and_announces(self, client, auth_headers, mock_bridge):
        response = self.upload(client, auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "1.2.0"
        assert data["filename"] == "rv-firmware.zip"
        assert data["size"] == len(PACKAGE)
        assert data["sha256"] == hashlib.sha256(PACKAGE).hexdigest()
        assert data["uploadedBy"] == "admin"
        assert data["downloadUrl"] == f"/api/deployment-download/{data['id']}"

        notice = mock_bridge.publish_deployment_available.call_args.args[0]
        assert notice["id"] == data["id"]
        assert notice["downloadUrl"] == data["downloadUrl"]
        assert notice["timestamp"] == data["uploadedAt"]

    def test_upload_too_large(self, seeded_store, tmp_path, auth_headers):
        config = create_test_app_config(deployment_path=str(tmp_path / "small"), max_upload_bytes=100)
        app = create_app(create_mock_bridge(), BroadcastHub(), seeded_store, config)

        with TestClient(app) as small_client:
            response = self.upload(small_client, auth_headers)

        assert response.status_code == 413
        assert list((tmp_path / "small").iterdir()) == []

    def test_list_newest_first(self, client, auth_headers):
        self.upload(client, auth_headers, version="1.0.0")
        time.sleep(0.01)
        self.upload(client, auth_headers, version="1.1.0")

        versions = [d["version"] for d in client.get("/api/deployments", headers=auth_headers).json()]
        assert versions == ["1.1.0", "1.0.0"]

    def test_latest_info(self, client, auth_headers):
        assert client.get("/api/deployment-download/latest/info", headers=auth_headers).status_code == 404

        uploaded = self.upload(client, auth_headers).json()
        info = client.get("/api/deployment-download/latest/info", headers=auth_headers).json()

        assert info["id"] == uploaded["id"]
        assert info["downloadUrl"] == uploaded["downloadUrl"]
        assert "uploadedBy" not in info

    def test_full_download(self, client, auth_headers):
        uploaded = self.upload(client, auth_headers).json()

        response = client.get(uploaded["downloadUrl"], headers=auth_headers)

        assert response.status_code == 200
        assert response.content == PACKAGE
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["x-checksum-sha256"] == uploaded["sha256"]
        assert 'filename="rv-firmware.zip"' in response.headers["content-disposition"]

    def test_range_download(self, client, auth_headers):
        uploaded = self.upload(client, auth_headers).json()

        response = client.get(
            uploaded["downloadUrl"], headers={**auth_headers, "Range": "bytes=100-199"}
        )

        assert response.status_code == 206
        assert response.content == PACKAGE[100:200]
        assert response.headers["content-range"] == f"bytes 100-199/{len(PACKAGE)}"

    def test_open_ended_range(self, client, auth_headers):
        uploaded = self.upload(client, auth_headers).json()

        response = client.get(
            uploaded["downloadUrl"], headers={**auth_headers, "Range": "bytes=2000-"}
        )

        assert response.status_code == 206
        assert response.content == PACKAGE[2000:]

    def test_unsatisfiable_range(self, client, auth_headers):
        uploaded = self.upload(client, auth_headers).json()

        response = client.get(
            uploaded["downloadUrl"], headers={**auth_headers, "Range": "bytes=5000-6000"}
        )

        assert response.status_code == 416
        assert response.headers["content-range"] == f"bytes */{len(PACKAGE)}"

    def test_download_validation(self, client, auth_headers):
        assert client.get("/api/deployment-download/not-an-id", headers=auth_headers).status_code == 400
        missing = "/api/deployment-download/" + "0" * 32
        assert client.get(missing, headers=auth_headers).status_code == 404

    def test_delete(self, client, auth_headers):
        uploaded = self.upload(client, auth_headers).json()

        response = client.delete(f"/api/deployments/{uploaded['id']}", headers=auth_headers)

        assert response.status_code == 200
        assert client.get(uploaded["downloadUrl"], headers=auth_headers).status_code == 404
        assert client.delete(f"/api/deployments/{uploaded['id']}", headers=auth_headers).status_code == 404
