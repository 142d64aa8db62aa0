"""
Test configuration and fixtures for pytest.

Fixtures include: test settings, an in-memory fake Kubernetes client, fake exec
streams and WebSockets for the terminal relay, and factories for Kubernetes
pod/service objects in a given state.
"""

import sys
import os
import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

# Add the project root to sys.path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))


def pytest_configure(config):
    """
    Pytest hook called before test collection.
    Sets up test environment variables and registers custom markers.
    """
    # CRITICAL: Set test environment variables BEFORE any app imports
    os.environ["K8S_NAMESPACE"] = "labs-test"
    os.environ["WEBSHELL_BASE_URL"] = "ws://lab-api.test:8085"
    os.environ["LOG_LEVEL"] = "DEBUG"

    # Import and clear settings cache after env vars are set
    from lab_api.config import get_settings
    get_settings.cache_clear()

    # Register custom markers
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "kubernetes: mark test as requiring Kubernetes")


# =============================================================================
# Kubernetes object factories
# =============================================================================

def build_pod(name, phase="Pending", ready=None, exit_code=None, resource_version="1", reason=None):
    """
    Build a V1Pod in a given state.

    ready: list of readiness flags, one container status per entry
    exit_code: if set, the first container is terminated with this code
    """
    statuses = None
    if ready is not None or exit_code is not None:
        statuses = []
        for i, is_ready in enumerate(ready if ready is not None else [False]):
            state = client.V1ContainerState()
            if i == 0 and exit_code is not None:
                state = client.V1ContainerState(
                    terminated=client.V1ContainerStateTerminated(exit_code=exit_code, reason=reason)
                )
            statuses.append(client.V1ContainerStatus(
                name=f"lab-container-{i}" if i else "lab-container",
                image="registry.example/img:tag",
                image_id="",
                ready=is_ready,
                restart_count=0,
                state=state
            ))

    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, resource_version=resource_version),
        status=client.V1PodStatus(phase=phase, container_statuses=statuses)
    )


def build_service(name, ip=None, hostname=None, resource_version="1"):
    ingress = None
    if ip or hostname:
        ingress = [client.V1LoadBalancerIngress(ip=ip, hostname=hostname)]
    return client.V1Service(
        metadata=client.V1ObjectMeta(name=name, resource_version=resource_version),
        status=client.V1ServiceStatus(
            load_balancer=client.V1LoadBalancerStatus(ingress=ingress)
        )
    )


@pytest.fixture
def pod_factory():
    return build_pod


@pytest.fixture
def service_factory():
    return build_service


# =============================================================================
# Fake cluster
# =============================================================================

class FakeSubscription:
    """
    Scripted watch subscription.

    Yields the given events and then ends, like an API server closing the
    watch. With hang=True it never yields anything.
    """

    def __init__(self, events=None, hang=False, error=None):
        self.events = list(events or [])
        self.hang = hang
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.events:
            return self.events.pop(0)
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()
        raise StopAsyncIteration

    def close(self):
        self.closed = True


class FakeExecStream:
    """In-memory ExecStream: output is fed through a queue, b"" means EOF."""

    def __init__(self, output=None):
        self.output = asyncio.Queue()
        for chunk in output or []:
            self.output.put_nowait(chunk)
        self.written = []
        self.read_sizes = []
        self.stdin_closed = False
        self.closed = False

    async def read(self, max_bytes):
        self.read_sizes.append(max_bytes)
        return await self.output.get()

    async def write(self, data):
        if self.closed:
            raise ConnectionError("exec stream is closed")
        self.written.append(data)

    async def close_stdin(self):
        self.stdin_closed = True

    def close(self):
        self.closed = True


class FakeKubernetesClient:
    """
    In-memory stand-in for KubernetesClient.

    Objects live in dicts keyed by name. Watch behaviour is scripted per
    subscription through pod_watch_script / service_watch_script: each entry is
    a list of (event_type, object) pairs, or a FakeSubscription. When the script
    is exhausted, pod watches report the pod ready and service watches report
    an external IP.
    """

    def __init__(self):
        self.pods = {}
        self.secrets = {}
        self.services = {}
        self.calls = []
        self.pod_watch_script = []
        self.service_watch_script = []
        self.subscriptions = []
        self.watch_requests = []
        self.errors = {}
        self.exec_stream = FakeExecStream()
        self.exec_requests = []
        self._version = 0

    def _next_version(self):
        self._version += 1
        return str(self._version)

    def _maybe_fail(self, method):
        error = self.errors.get(method)
        if error is not None:
            raise error

    def _subscribe(self, script, default_events, kind, field_selector, resource_version, timeout_seconds):
        self.watch_requests.append((kind, field_selector, resource_version, timeout_seconds))
        entry = script.pop(0) if script else default_events
        subscription = entry if isinstance(entry, FakeSubscription) else FakeSubscription(entry)
        self.subscriptions.append(subscription)
        return subscription

    async def create_pod(self, namespace, pod):
        name = pod.metadata.name
        self.calls.append(("create_pod", name))
        self._maybe_fail("create_pod")
        if name in self.pods:
            raise ApiException(status=409, reason="AlreadyExists")
        pod.metadata.resource_version = self._next_version()
        self.pods[name] = pod
        return pod

    async def read_pod(self, namespace, name):
        self.calls.append(("read_pod", name))
        self._maybe_fail("read_pod")
        if name not in self.pods:
            raise ApiException(status=404, reason="Not Found")
        return self.pods[name]

    async def delete_pod(self, namespace, name):
        self.calls.append(("delete_pod", name))
        self._maybe_fail("delete_pod")
        return self.pods.pop(name, None) is not None

    def watch_pods(self, namespace, field_selector, resource_version=None, timeout_seconds=None):
        self.calls.append(("watch_pods", field_selector))
        name = field_selector.split("=", 1)[1]
        ready = build_pod(name, phase="Running", ready=[True], resource_version=self._next_version())
        return self._subscribe(
            self.pod_watch_script, [("MODIFIED", ready)],
            "Pod", field_selector, resource_version, timeout_seconds
        )

    async def create_secret(self, namespace, secret):
        name = secret.metadata.name
        self.calls.append(("create_secret", name))
        self._maybe_fail("create_secret")
        if name in self.secrets:
            raise ApiException(status=409, reason="AlreadyExists")
        self.secrets[name] = secret
        return secret

    async def delete_secret(self, namespace, name):
        self.calls.append(("delete_secret", name))
        self._maybe_fail("delete_secret")
        return self.secrets.pop(name, None) is not None

    async def create_service(self, namespace, service):
        name = service.metadata.name
        self.calls.append(("create_service", name))
        self._maybe_fail("create_service")
        if name in self.services:
            raise ApiException(status=409, reason="AlreadyExists")
        service.metadata.resource_version = self._next_version()
        self.services[name] = service
        return service

    async def delete_service(self, namespace, name):
        self.calls.append(("delete_service", name))
        self._maybe_fail("delete_service")
        return self.services.pop(name, None) is not None

    def watch_services(self, namespace, field_selector, resource_version=None, timeout_seconds=None):
        self.calls.append(("watch_services", field_selector))
        name = field_selector.split("=", 1)[1]
        assigned = build_service(name, ip="203.0.113.10", resource_version=self._next_version())
        return self._subscribe(
            self.service_watch_script, [("MODIFIED", assigned)],
            "Service", field_selector, resource_version, timeout_seconds
        )

    async def open_exec(self, namespace, pod_name, command, container=None,
                        stdin=True, stdout=True, stderr=False, tty=True):
        self.calls.append(("open_exec", pod_name))
        self.exec_requests.append({
            "namespace": namespace,
            "pod_name": pod_name,
            "command": command,
            "container": container,
            "stdin": stdin,
            "stdout": stdout,
            "stderr": stderr,
            "tty": tty,
        })
        self._maybe_fail("open_exec")
        return self.exec_stream


class FakeWebSocket:
    """
    Minimal server-side WebSocket as seen by the terminal relay.

    Incoming ASGI messages are fed through a queue; an empty queue blocks
    receive() like an idle client.
    """

    def __init__(self, messages=None):
        self.incoming = asyncio.Queue()
        for message in messages or []:
            self.incoming.put_nowait(message)
        self.sent = []
        self.closed = False

    async def receive(self):
        return await self.incoming.get()

    async def send_bytes(self, data):
        if self.closed:
            raise RuntimeError("WebSocket is closed")
        self.sent.append(data)

    async def close(self, code=1000):
        if self.closed:
            raise RuntimeError("WebSocket is already closed")
        self.closed = True


def binary_frame(data: bytes):
    return {"type": "websocket.receive", "bytes": data}


def text_frame(text: str):
    return {"type": "websocket.receive", "text": text}


def disconnect_frame(code: int = 1000):
    return {"type": "websocket.disconnect", "code": code}


@pytest.fixture
def fake_k8s():
    return FakeKubernetesClient()


@pytest.fixture
def fake_exec_stream_cls():
    return FakeExecStream


@pytest.fixture
def fake_websocket_cls():
    return FakeWebSocket


@pytest.fixture
def frames():
    """Builders for ASGI WebSocket messages."""
    class Frames:
        binary = staticmethod(binary_frame)
        text = staticmethod(text_frame)
        disconnect = staticmethod(disconnect_frame)
    return Frames


@pytest.fixture
def watch_subscription_cls():
    return FakeSubscription


@pytest.fixture
def mock_token_provider():
    """Token provider returning a fixed access token."""
    provider = AsyncMock()
    provider.token = AsyncMock(return_value="ya29.test-token")
    return provider


@pytest.fixture
def test_settings():
    """Settings with short readiness deadlines for fast tests."""
    from lab_api.config import Settings
    return Settings(
        k8s_namespace="labs-test",
        webshell_base_url="ws://lab-api.test:8085",
        pod_ready_timeout_seconds=0.5,
        service_ready_timeout_seconds=1.0,
        watch_resubscribe_delay_seconds=0
    )


@pytest.fixture
def lab_manager(fake_k8s, mock_token_provider, test_settings):
    from lab_api.services.lab_manager import LabManager
    return LabManager(fake_k8s, mock_token_provider, settings=test_settings)
