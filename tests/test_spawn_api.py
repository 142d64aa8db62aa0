"""
Tests for the HTTP and WebSocket boundary.

The lab manager and terminal relay are replaced through FastAPI dependency
overrides, so no cluster is needed.
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch
from fastapi.testclient import TestClient

from lab_api.main import app
from lab_api.routers.web_shell import get_terminal_relay
from lab_api.services.errors import (
    InvalidLabType,
    ReadinessTimeout,
    UpstreamUnavailable,
    WorkloadFailed,
)
from lab_api.services.lab_manager import SessionResult, get_lab_manager
from lab_api.services.terminal_relay import TerminalRelay

SESSION_ID = "456756d9-a348-4fce-8659-b70c1e17985b"


@pytest.fixture
def mock_lab_manager():
    manager = Mock()
    manager.spawn = AsyncMock(return_value=SessionResult(
        external_identifier=f"terminal-{SESSION_ID}",
        access_url=f"ws://lab-api.test:8085/spawn/webshell/terminal-{SESSION_ID}",
    ))
    manager.stop = AsyncMock(return_value=None)
    manager.status = AsyncMock(return_value="Running")
    return manager


@pytest.fixture
def api_client(mock_lab_manager):
    app.dependency_overrides[get_lab_manager] = lambda: mock_lab_manager
    yield TestClient(app)
    app.dependency_overrides.clear()


def _spawn_body(**overrides):
    body = {
        "session_id": SESSION_ID,
        "lab_type": "terminal",
        "template_path": "registry.example/img:tag",
    }
    body.update(overrides)
    return body


class TestHealth:

    def test_health(self, api_client):
        response = api_client.get("/health")

        assert response.status_code == 200
        assert response.text == "OK"


class TestSpawnEndpoint:

    def test_spawn(self, api_client, mock_lab_manager):
        response = api_client.post("/spawn", json=_spawn_body())

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": {
                "pod_name": f"terminal-{SESSION_ID}",
                "webshell_url": f"ws://lab-api.test:8085/spawn/webshell/terminal-{SESSION_ID}",
                "status": "RUNNING",
            },
        }
        request = mock_lab_manager.spawn.await_args.args[0]
        assert request.session_id == SESSION_ID
        assert request.lab_type == "terminal"
        assert request.template_path == "registry.example/img:tag"

    @pytest.mark.parametrize("body", [
        _spawn_body(session_id="not-a-uuid"),
        {"session_id": SESSION_ID, "lab_type": "terminal"},
        {},
    ])
    def test_malformed_body(self, api_client, mock_lab_manager, body):
        response = api_client.post("/spawn", json=body)

        assert response.status_code == 422
        mock_lab_manager.spawn.assert_not_awaited()

    @pytest.mark.parametrize("error,status_code", [
        (InvalidLabType("desktop", "terminal, web"), 400),
        (UpstreamUnavailable("Failed to create pod"), 502),
        (WorkloadFailed("terminal-x", "container lab-container exited with code 1"), 500),
        (ReadinessTimeout("Pod", "terminal-x", 60), 504),
    ])
    def test_errors_map_to_status_codes(self, api_client, mock_lab_manager, error, status_code):
        mock_lab_manager.spawn.side_effect = error

        response = api_client.post("/spawn", json=_spawn_body())

        assert response.status_code == status_code
        assert response.json() == {"detail": error.message}


class TestStopAndStatus:

    def test_stop(self, api_client, mock_lab_manager):
        response = api_client.post("/spawn/stop", json={"container_id": f"terminal-{SESSION_ID}"})

        assert response.status_code == 200
        assert response.json() == {"status": "Stopped"}
        mock_lab_manager.stop.assert_awaited_once_with(f"terminal-{SESSION_ID}")

    def test_stop_failure(self, api_client, mock_lab_manager):
        mock_lab_manager.stop.side_effect = UpstreamUnavailable("Failed to delete pod")

        response = api_client.post("/spawn/stop", json={"container_id": "terminal-x"})

        assert response.status_code == 502

    def test_stop_requires_container_id(self, api_client):
        response = api_client.post("/spawn/stop", json={})

        assert response.status_code == 422

    def test_status(self, api_client, mock_lab_manager):
        response = api_client.get(f"/spawn/status/terminal-{SESSION_ID}")

        assert response.status_code == 200
        assert response.json() == {"status": "Running"}
        mock_lab_manager.status.assert_awaited_once_with(f"terminal-{SESSION_ID}")

    def test_status_unknown(self, api_client, mock_lab_manager):
        mock_lab_manager.status.return_value = "Unknown"

        response = api_client.get("/spawn/status/terminal-missing")

        assert response.json() == {"status": "Unknown"}


class TestWebShellEndpoint:

    def test_relays_output(self, api_client, fake_k8s, fake_exec_stream_cls, test_settings):
        fake_k8s.exec_stream = fake_exec_stream_cls([b"student@lab:~$ ", b""])
        app.dependency_overrides[get_terminal_relay] = lambda: TerminalRelay(fake_k8s, settings=test_settings)

        with api_client.websocket_connect(f"/spawn/webshell/terminal-{SESSION_ID}") as websocket:
            assert websocket.receive_bytes() == b"student@lab:~$ "

        assert fake_k8s.exec_requests[0]["pod_name"] == f"terminal-{SESSION_ID}"


class TestStartup:

    def test_missing_cluster_configuration_aborts_startup(self):
        error = RuntimeError("Cannot load Kubernetes configuration")
        with patch("lab_api.services.lab_manager.get_lab_manager", side_effect=error):
            with pytest.raises(RuntimeError, match="Cannot load Kubernetes configuration"):
                with TestClient(app):
                    pass
