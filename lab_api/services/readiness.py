"""
Readiness Watcher

Waits for a lab pod (or a web lab's LoadBalancer service) to become usable by
folding over a name-scoped Kubernetes watch. Every observed object is
classified as READY, FAILED or PENDING; the first conclusive state wins. A hard
deadline races the fold, and the watch is stopped on every exit path.

Pod rules:
- READY: phase Running, container statuses present and all ready. Phase can
  lag container reality, so an empty status list is never ready.
- FAILED: phase Failed, or any container terminated with a non-zero exit code.

Service rules:
- READY: the first load balancer ingress entry carrying an IP or a hostname.
"""

import asyncio
import logging
import math
from enum import Enum
from typing import Any, Callable, Optional, Tuple

import urllib3
from kubernetes.client.rest import ApiException

from .errors import ReadinessTimeout, UpstreamUnavailable, WorkloadFailed

logger = logging.getLogger(__name__)

# Only these watch events carry an object state worth classifying
_STATE_EVENTS = ("ADDED", "MODIFIED")


class ReadinessState(str, Enum):
    READY = "ready"
    FAILED = "failed"
    PENDING = "pending"


# =============================================================================
# Pod classification
# =============================================================================

def is_pod_ready(pod) -> bool:
    """Check if a pod is running with every container ready."""
    status = getattr(pod, "status", None)
    if status is None:
        return False

    statuses = status.container_statuses or []
    return (
        status.phase == "Running"
        and len(statuses) > 0
        and all(cs.ready for cs in statuses)
    )


def _terminated_with_error(container_status) -> bool:
    state = container_status.state
    if state is None or state.terminated is None:
        return False
    return state.terminated.exit_code != 0


def is_pod_failed(pod) -> bool:
    """Check if a pod failed or any of its containers exited non-zero."""
    status = getattr(pod, "status", None)
    if status is None:
        return False

    if status.phase == "Failed":
        return True
    return any(_terminated_with_error(cs) for cs in (status.container_statuses or []))


def get_pod_failure_reason(pod) -> str:
    status = pod.status
    for cs in status.container_statuses or []:
        if _terminated_with_error(cs):
            terminated = cs.state.terminated
            reason = f"container {cs.name} exited with code {terminated.exit_code}"
            if terminated.reason:
                reason += f" ({terminated.reason})"
            return reason
    return status.reason or status.message or f"phase {status.phase}"


def classify_pod(pod) -> Tuple[ReadinessState, Any]:
    """Failure is checked first: a broken pod never counts as ready."""
    if is_pod_failed(pod):
        return ReadinessState.FAILED, get_pod_failure_reason(pod)
    if is_pod_ready(pod):
        return ReadinessState.READY, pod
    return ReadinessState.PENDING, None


# =============================================================================
# Service classification
# =============================================================================

def get_service_address(service) -> Optional[str]:
    """
    Get the external address of a LoadBalancer service.

    Only the first ingress entry is considered; its IP is preferred over its
    hostname.
    """
    status = getattr(service, "status", None)
    load_balancer = getattr(status, "load_balancer", None)
    ingress = getattr(load_balancer, "ingress", None)
    if not ingress:
        return None

    entry = ingress[0]
    return entry.ip or entry.hostname or None


def classify_service(service) -> Tuple[ReadinessState, Any]:
    address = get_service_address(service)
    if address:
        return ReadinessState.READY, address
    return ReadinessState.PENDING, None


# =============================================================================
# Watcher
# =============================================================================

class ReadinessWatcher:
    """Bounded waits on a single named object, driven by Kubernetes watches."""

    def __init__(self, k8s_client, resubscribe_delay: float = 1.0):
        self.k8s_client = k8s_client
        self.resubscribe_delay = resubscribe_delay

    async def wait_for_pod_ready(
        self,
        namespace: str,
        name: str,
        resource_version: Optional[str],
        timeout: float
    ):
        """
        Wait until the pod is ready.

        Returns:
            The ready V1Pod

        Raises:
            WorkloadFailed: the pod failed
            ReadinessTimeout: deadline elapsed first
            UpstreamUnavailable: the watch could not be opened or read
        """
        return await self._wait(
            kind="Pod",
            name=name,
            subscribe=lambda rv, server_timeout: self.k8s_client.watch_pods(
                namespace, f"metadata.name={name}", rv, server_timeout
            ),
            classify=classify_pod,
            resource_version=resource_version,
            timeout=timeout
        )

    async def wait_for_service_address(
        self,
        namespace: str,
        name: str,
        resource_version: Optional[str],
        timeout: float
    ) -> str:
        """Wait until the LoadBalancer service has an external address and return it."""
        return await self._wait(
            kind="Service",
            name=name,
            subscribe=lambda rv, server_timeout: self.k8s_client.watch_services(
                namespace, f"metadata.name={name}", rv, server_timeout
            ),
            classify=classify_service,
            resource_version=resource_version,
            timeout=timeout
        )

    async def _wait(
        self,
        kind: str,
        name: str,
        subscribe: Callable,
        classify: Callable,
        resource_version: Optional[str],
        timeout: float
    ):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        async def fold():
            version = resource_version
            while True:
                server_timeout = max(1, math.ceil(deadline - loop.time()))
                subscription = subscribe(version, server_timeout)
                try:
                    async for event_type, obj in subscription:
                        if event_type not in _STATE_EVENTS:
                            logger.debug(f"[READINESS] Ignoring {event_type} event for {kind} {name}")
                            continue

                        metadata = getattr(obj, "metadata", None)
                        if metadata is not None and metadata.resource_version:
                            version = metadata.resource_version

                        state, value = classify(obj)
                        if state == ReadinessState.READY:
                            return value
                        if state == ReadinessState.FAILED:
                            raise WorkloadFailed(name, value)
                finally:
                    subscription.close()

                # API server ended the watch early, resume from the last seen version
                logger.debug(f"[READINESS] Watch on {kind} {name} closed by server, reopening")
                await asyncio.sleep(self.resubscribe_delay)

        try:
            result = await asyncio.wait_for(fold(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[READINESS] {kind} {name} not ready after {timeout:g}s")
            raise ReadinessTimeout(kind, name, timeout) from None
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            logger.error(f"[READINESS] Watch on {kind} {name} failed: {e}")
            raise UpstreamUnavailable(f"Failed to watch {kind} {name}: {e}") from e

        logger.info(f"[READINESS] {kind} {name} is ready")
        return result
