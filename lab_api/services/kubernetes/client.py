"""
Kubernetes Client for Lab Sessions

This module provides the narrow interface to the Kubernetes API that the lab
lifecycle needs: create/read/delete for Pods, Secrets and Services, name-scoped
watches, and interactive exec streams.

The official client is synchronous, so every blocking call is moved off the
event loop with asyncio.to_thread. One instance is shared by all requests; it
holds no per-session state.

Watch and exec reads can block for as long as a session lives. They run on
their own thread pool so idle sessions never occupy the default executor that
serves the short request/response calls.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Tuple

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream

logger = logging.getLogger(__name__)

# Ctrl-U (kill line) then Ctrl-D: end-of-input for a shell reading from a TTY.
# A lone Ctrl-D only flushes a partly typed line.
_EOT = b"\x15\x04"

# Upper bound on concurrently blocked watch/exec reads
STREAM_WORKERS = 256

_stream_executor = ThreadPoolExecutor(max_workers=STREAM_WORKERS, thread_name_prefix="k8s-stream")


async def run_stream_call(func: Callable, *args) -> Any:
    """Run a blocking streaming read on the stream pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_stream_executor, func, *args)


class WatchSubscription:
    """
    Async iterator over (event_type, object) pairs from one Kubernetes watch.

    The underlying watch is a blocking generator; each event is pulled in a
    worker thread. close() stops the watch, the API server closes the request
    at the latest after timeout_seconds.
    """

    def __init__(
        self,
        list_func: Callable,
        namespace: str,
        field_selector: str,
        resource_version: Optional[str] = None,
        timeout_seconds: Optional[int] = None
    ):
        self._watch = watch.Watch()
        kwargs = {
            "namespace": namespace,
            "field_selector": field_selector,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version
        if timeout_seconds:
            kwargs["timeout_seconds"] = timeout_seconds
        self._events = self._watch.stream(list_func, **kwargs)
        self._closed = False

    def __aiter__(self) -> "WatchSubscription":
        return self

    async def __anext__(self) -> Tuple[str, Any]:
        if self._closed:
            raise StopAsyncIteration
        event = await run_stream_call(next, self._events, None)
        if event is None:
            raise StopAsyncIteration
        return event["type"], event["object"]

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._watch.stop()


class ExecStream:
    """
    Duplex byte stream to a process started with `kubectl exec -it`.

    Wraps the kubernetes WSClient: stdin is channel 0, stdout channel 1.
    read() returns at most max_bytes and b"" once the stream has closed.
    Each worker-thread call polls the socket for at most poll_interval; the
    wait between polls happens on the event loop.
    """

    def __init__(self, ws_client, poll_interval: float = 0.1):
        self._ws = ws_client
        self._poll_interval = poll_interval
        self._pending = b""
        self._closed = False

    def _take_pending(self, max_bytes: int) -> bytes:
        chunk = self._pending[:max_bytes]
        self._pending = self._pending[max_bytes:]
        return chunk

    def _read_step(self, max_bytes: int) -> Optional[bytes]:
        """One bounded poll: data, b"" at EOF, or None if nothing arrived yet."""
        if self._pending:
            return self._take_pending(max_bytes)
        if self._closed:
            return b""
        # Drain what already arrived before reporting EOF
        if self._ws.peek_stdout():
            data = self._ws.read_stdout()
            if isinstance(data, str):
                data = data.encode("utf-8")
            self._pending = data or b""
            return self._take_pending(max_bytes) if self._pending else None
        if not self._ws.is_open():
            return b""
        self._ws.update(timeout=self._poll_interval)
        return None

    async def read(self, max_bytes: int) -> bytes:
        while True:
            chunk = await run_stream_call(self._read_step, max_bytes)
            if chunk is not None:
                return chunk

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionError("exec stream is closed")
        await asyncio.to_thread(self._ws.write_stdin, data)

    async def close_stdin(self) -> None:
        """Signal end-of-input to the remote shell."""
        if self._closed or not self._ws.is_open():
            return
        await asyncio.to_thread(self._ws.write_stdin, _EOT)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._ws.close()
        except Exception as e:
            logger.debug(f"[K8S:EXEC] Error closing exec stream: {e}")


class KubernetesClient:
    """
    Manages the Kubernetes objects that make up a lab session.

    Pods (the sandbox), Secrets (registry pull credentials) and Services
    (LoadBalancer exposure for web labs) are created, read, watched and deleted
    here. Errors surface as kubernetes ApiException; delete methods treat 404 as
    success.
    """

    def __init__(self):
        """Initialize Kubernetes client with in-cluster or kubeconfig."""
        try:
            # Try in-cluster config first (for production)
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except config.ConfigException:
            try:
                # Fall back to kubeconfig (for development)
                config.load_kube_config()
                logger.info("Loaded kubeconfig for development")
            except config.ConfigException as e:
                logger.error(f"Failed to load Kubernetes config: {e}")
                raise RuntimeError("Cannot load Kubernetes configuration") from e

        self.core_v1 = client.CoreV1Api()

        logger.info("Kubernetes client initialized")

    # =========================================================================
    # POD LIFECYCLE
    # =========================================================================

    async def create_pod(self, namespace: str, pod: client.V1Pod) -> client.V1Pod:
        """Create a Pod. A name conflict (409) is raised, never patched over."""
        created = await asyncio.to_thread(
            self.core_v1.create_namespaced_pod,
            namespace=namespace,
            body=pod
        )
        logger.info(f"[K8S] ✅ Created pod: {pod.metadata.name}")
        return created

    async def read_pod(self, namespace: str, name: str) -> client.V1Pod:
        return await asyncio.to_thread(
            self.core_v1.read_namespaced_pod,
            name=name,
            namespace=namespace
        )

    async def delete_pod(self, namespace: str, name: str) -> bool:
        """Delete a Pod. Returns False if it did not exist."""
        try:
            await asyncio.to_thread(
                self.core_v1.delete_namespaced_pod,
                name=name,
                namespace=namespace
            )
            logger.info(f"[K8S] Deleted pod: {name}")
            return True
        except ApiException as e:
            if e.status != 404:
                raise
            logger.debug(f"[K8S] Pod {name} not found, nothing to delete")
            return False

    def watch_pods(
        self,
        namespace: str,
        field_selector: str,
        resource_version: Optional[str] = None,
        timeout_seconds: Optional[int] = None
    ) -> WatchSubscription:
        return WatchSubscription(
            self.core_v1.list_namespaced_pod,
            namespace,
            field_selector,
            resource_version,
            timeout_seconds
        )

    # =========================================================================
    # SECRET MANAGEMENT
    # =========================================================================

    async def create_secret(self, namespace: str, secret: client.V1Secret) -> client.V1Secret:
        """Create a Secret (Secrets are replaced, never updated in place)."""
        created = await asyncio.to_thread(
            self.core_v1.create_namespaced_secret,
            namespace=namespace,
            body=secret
        )
        logger.info(f"[K8S] ✅ Created secret: {secret.metadata.name}")
        return created

    async def delete_secret(self, namespace: str, name: str) -> bool:
        """Delete a Secret. Returns False if it did not exist."""
        try:
            await asyncio.to_thread(
                self.core_v1.delete_namespaced_secret,
                name=name,
                namespace=namespace
            )
            logger.info(f"[K8S] Deleted secret: {name}")
            return True
        except ApiException as e:
            if e.status != 404:
                raise
            return False

    # =========================================================================
    # SERVICE MANAGEMENT
    # =========================================================================

    async def create_service(self, namespace: str, service: client.V1Service) -> client.V1Service:
        created = await asyncio.to_thread(
            self.core_v1.create_namespaced_service,
            namespace=namespace,
            body=service
        )
        logger.info(f"[K8S] ✅ Created service: {service.metadata.name}")
        return created

    async def delete_service(self, namespace: str, name: str) -> bool:
        """Delete a Service. Returns False if it did not exist."""
        try:
            await asyncio.to_thread(
                self.core_v1.delete_namespaced_service,
                name=name,
                namespace=namespace
            )
            logger.info(f"[K8S] Deleted service: {name}")
            return True
        except ApiException as e:
            if e.status != 404:
                raise
            return False

    def watch_services(
        self,
        namespace: str,
        field_selector: str,
        resource_version: Optional[str] = None,
        timeout_seconds: Optional[int] = None
    ) -> WatchSubscription:
        return WatchSubscription(
            self.core_v1.list_namespaced_service,
            namespace,
            field_selector,
            resource_version,
            timeout_seconds
        )

    # =========================================================================
    # POD OPERATIONS
    # =========================================================================

    def _get_stream_client(self) -> client.CoreV1Api:
        """
        Create a fresh CoreV1Api client for stream operations.

        IMPORTANT: The kubernetes-python `stream()` function temporarily patches
        the api_client.request method to use WebSocket. If we use the shared
        self.core_v1 client, concurrent regular API calls (like read_namespaced_pod)
        will accidentally use the WebSocket-patched method, causing errors like:
        "WebSocketBadStatusException: Handshake status 200 OK"
        """
        return client.CoreV1Api()

    def _open_exec_blocking(
        self,
        namespace: str,
        pod_name: str,
        command: List[str],
        container: Optional[str],
        stdin: bool,
        stdout: bool,
        stderr: bool,
        tty: bool
    ):
        stream_client = self._get_stream_client()
        kwargs = {
            "command": command,
            "stdin": stdin,
            "stdout": stdout,
            "stderr": stderr,
            "tty": tty,
            "binary": True,
            "_preload_content": False,  # Required for streaming
        }
        if container:
            kwargs["container"] = container
        return stream(
            stream_client.connect_get_namespaced_pod_exec,
            pod_name,
            namespace,
            **kwargs
        )

    async def open_exec(
        self,
        namespace: str,
        pod_name: str,
        command: List[str],
        container: Optional[str] = None,
        stdin: bool = True,
        stdout: bool = True,
        stderr: bool = False,
        tty: bool = True
    ) -> ExecStream:
        """
        Start an interactive process in a pod and return its duplex stream.

        Raises:
            ApiException: pod missing, not running, or exec rejected
        """
        logger.debug(f"[K8S:EXEC] Opening exec in pod {pod_name}: {' '.join(command[:3])}")
        ws_client = await asyncio.to_thread(
            self._open_exec_blocking,
            namespace,
            pod_name,
            command,
            container,
            stdin,
            stdout,
            stderr,
            tty
        )
        return ExecStream(ws_client)


# Global instance - lazily initialized
_k8s_client_instance: Optional[KubernetesClient] = None


def get_k8s_client() -> KubernetesClient:
    """Get or create the global Kubernetes client instance."""
    global _k8s_client_instance
    if _k8s_client_instance is None:
        _k8s_client_instance = KubernetesClient()
    return _k8s_client_instance
