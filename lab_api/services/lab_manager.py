"""
Lab Manager

Lifecycle of ephemeral lab sessions on Kubernetes: spawn, stop and status.

Spawn is strictly sequential, each step gating the next:
1. Install the session's image pull secret
2. Create the lab pod
3. Wait for the pod to become ready
4. Web labs only: create the LoadBalancer service and wait for its address

A failure after step 2 leaves the pod in place. Cleanup is the caller's job
(stop), which keeps failed sessions inspectable.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import google.auth.exceptions
import urllib3
from kubernetes.client.rest import ApiException

from .credential_provisioner import CredentialProvisioner
from .errors import ProvisionError, UpstreamUnavailable
from .kubernetes.helpers import (
    create_lab_pod_manifest,
    create_lab_service_manifest,
    get_lab_labels,
    get_lab_selector,
)
from .lab_type import LabType
from .readiness import ReadinessWatcher
from ..utils.resource_naming import (
    get_exposure_name,
    get_pod_name,
    get_pull_secret_name,
    get_webshell_url,
    split_pod_name,
)

logger = logging.getLogger(__name__)

UNKNOWN_STATUS = "Unknown"

# Errors raised by the kubernetes client for failed API calls
_CLUSTER_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


@dataclass(frozen=True)
class SessionRequest:
    """A validated-on-spawn request for one lab session."""

    session_id: str
    lab_type: str
    template_path: str


@dataclass(frozen=True)
class SessionResult:
    external_identifier: str
    access_url: str


class LabManager:
    """
    Spawns, stops and inspects lab sessions.

    Holds no per-session state: sessions are told apart purely by the object
    names derived from their session id, so one instance serves all requests.
    """

    def __init__(self, k8s_client, token_provider, settings=None):
        if settings is None:
            from ..config import get_settings
            settings = get_settings()

        self.k8s_client = k8s_client
        self.token_provider = token_provider
        self.settings = settings
        self.namespace = settings.k8s_namespace
        self.credentials = CredentialProvisioner(
            k8s_client,
            self.namespace,
            default_registry_host=settings.default_registry_host
        )
        self.watcher = ReadinessWatcher(
            k8s_client,
            resubscribe_delay=settings.watch_resubscribe_delay_seconds
        )

        logger.info(f"[LAB] Lab manager initialized - namespace: {self.namespace}")

    # =========================================================================
    # SPAWN
    # =========================================================================

    async def spawn(self, request: SessionRequest) -> SessionResult:
        """
        Spawn a lab session and wait until it is usable.

        Returns:
            SessionResult with the pod name and the URL the client connects to

        Raises:
            InvalidLabType: unknown lab type (no cluster call is made)
            ProvisionError: pull secret could not be installed
            UpstreamUnavailable: pod/service creation or watch failed
            WorkloadFailed: the pod failed while starting
            ReadinessTimeout: pod or service not ready before its deadline
        """
        lab_type = LabType.from_string(request.lab_type)
        session_id = str(request.session_id)
        pod_name = get_pod_name(lab_type, session_id)
        labels = get_lab_labels(self.settings.lab_app_label, session_id, lab_type)

        logger.info(f"[LAB] Spawning {lab_type} lab {pod_name} from {request.template_path}")

        # 1. Pull credential
        token = await self._get_registry_token()
        secret_name = await self.credentials.provision(
            session_id,
            request.template_path,
            token,
            labels=labels
        )

        # 2. Lab pod
        pod = create_lab_pod_manifest(
            pod_name=pod_name,
            session_id=session_id,
            lab_type=lab_type,
            image=request.template_path,
            pull_secret_name=secret_name,
            app_label=self.settings.lab_app_label,
            container_name=self.settings.lab_container_name,
            memory_request=self.settings.lab_memory_request,
            cpu_request=self.settings.lab_cpu_request,
            memory_limit=self.settings.lab_memory_limit,
            cpu_limit=self.settings.lab_cpu_limit,
            active_deadline_seconds=self.settings.lab_active_deadline_seconds,
            container_port=self.settings.lab_web_target_port if lab_type.requires_exposure else None
        )
        try:
            created_pod = await self.k8s_client.create_pod(self.namespace, pod)
        except _CLUSTER_ERRORS as e:
            logger.error(f"[LAB] ❌ Failed to create pod {pod_name}: {e}")
            raise UpstreamUnavailable(f"Failed to create pod {pod_name}: {e}") from e

        # 3. Pod readiness
        await self.watcher.wait_for_pod_ready(
            self.namespace,
            pod_name,
            _resource_version(created_pod),
            self.settings.pod_ready_timeout_seconds
        )

        if not lab_type.requires_exposure:
            access_url = get_webshell_url(
                self.settings.webshell_base_url,
                self.settings.webshell_path,
                pod_name
            )
            logger.info(f"[LAB] ✅ Lab {pod_name} ready at {access_url}")
            return SessionResult(external_identifier=pod_name, access_url=access_url)

        # 4. Web exposure
        address = await self._expose(session_id, labels)
        access_url = self._web_url(address)

        logger.info(f"[LAB] ✅ Lab {pod_name} ready at {access_url}")
        return SessionResult(external_identifier=pod_name, access_url=access_url)

    async def _get_registry_token(self) -> str:
        try:
            return await self.token_provider.token(self.settings.token_scopes)
        except google.auth.exceptions.GoogleAuthError as e:
            logger.error(f"[LAB] Failed to obtain registry access token: {e}")
            raise ProvisionError(f"Failed to obtain registry access token: {e}") from e

    async def _expose(self, session_id: str, labels) -> str:
        service_name = get_exposure_name(session_id)
        service = create_lab_service_manifest(
            service_name=service_name,
            selector=get_lab_selector(self.settings.lab_app_label, session_id),
            port=self.settings.lab_web_port,
            target_port=self.settings.lab_web_target_port,
            labels=labels
        )
        try:
            created_service = await self.k8s_client.create_service(self.namespace, service)
        except _CLUSTER_ERRORS as e:
            logger.error(f"[LAB] ❌ Failed to create service {service_name}: {e}")
            raise UpstreamUnavailable(f"Failed to create service {service_name}: {e}") from e

        return await self.watcher.wait_for_service_address(
            self.namespace,
            service_name,
            _resource_version(created_service),
            self.settings.service_ready_timeout_seconds
        )

    def _web_url(self, address: str) -> str:
        port = self.settings.lab_web_port
        if port == 80:
            return f"{self.settings.lab_web_scheme}://{address}"
        return f"{self.settings.lab_web_scheme}://{address}:{port}"

    # =========================================================================
    # STOP
    # =========================================================================

    async def stop(self, external_identifier: str) -> None:
        """
        Tear down a lab session, best effort.

        The service goes first (missing is fine, other errors are logged), then
        the pod (missing is fine, other errors raise), then the pull secret
        (errors are logged).

        Raises:
            UpstreamUnavailable: if the pod delete call fails
        """
        parsed = split_pod_name(external_identifier)
        session_id: Optional[str] = parsed[1] if parsed else None

        if session_id is None:
            logger.warning(f"[LAB] {external_identifier} has no known lab prefix, deleting pod only")
        else:
            service_name = get_exposure_name(session_id)
            try:
                await self.k8s_client.delete_service(self.namespace, service_name)
            except _CLUSTER_ERRORS as e:
                logger.warning(f"[LAB] Failed to delete service {service_name}, continuing: {e}")

        try:
            await self.k8s_client.delete_pod(self.namespace, external_identifier)
        except _CLUSTER_ERRORS as e:
            logger.error(f"[LAB] ❌ Failed to delete pod {external_identifier}: {e}")
            raise UpstreamUnavailable(f"Failed to delete pod {external_identifier}: {e}") from e

        if session_id is not None:
            secret_name = get_pull_secret_name(session_id)
            try:
                await self.k8s_client.delete_secret(self.namespace, secret_name)
            except _CLUSTER_ERRORS as e:
                logger.warning(f"[LAB] Failed to delete pull secret {secret_name}: {e}")

        logger.info(f"[LAB] Stopped lab {external_identifier}")

    # =========================================================================
    # STATUS
    # =========================================================================

    async def status(self, external_identifier: str) -> str:
        """
        Get the pod phase of a lab session.

        Advisory only: any lookup failure or missing phase yields "Unknown".
        """
        try:
            pod = await self.k8s_client.read_pod(self.namespace, external_identifier)
        except _CLUSTER_ERRORS as e:
            logger.debug(f"[LAB] Status lookup for {external_identifier} failed: {e}")
            return UNKNOWN_STATUS

        status = getattr(pod, "status", None)
        phase = getattr(status, "phase", None)
        return phase or UNKNOWN_STATUS


def _resource_version(obj) -> Optional[str]:
    metadata = getattr(obj, "metadata", None)
    return getattr(metadata, "resource_version", None)


# Global instance - lazily initialized
_lab_manager_instance: Optional[LabManager] = None


def get_lab_manager() -> LabManager:
    """
    Get or create the global lab manager.

    The first call loads the Kubernetes configuration and raises RuntimeError
    if none is available; the app calls this at startup so that failure stops
    the process before it serves traffic.
    """
    global _lab_manager_instance
    if _lab_manager_instance is None:
        from .kubernetes.client import get_k8s_client
        from .token_provider import get_token_provider
        _lab_manager_instance = LabManager(get_k8s_client(), get_token_provider())
    return _lab_manager_instance
