"""
Kubernetes Manifest Helpers for Lab Sessions

Builders for the three objects a lab session owns:
- Lab Pod: the sandbox itself, one container, never restarted
- Pull Secret: dockerconfigjson credential for the session's private image
- Lab Service: LoadBalancer exposing one port of a web lab

Builders only assemble manifests; they never talk to the API server.
"""

import base64
import json
from typing import Dict, Optional

from kubernetes import client

from ..lab_type import LabType


# =============================================================================
# Labels
# =============================================================================

def get_lab_labels(app_label: str, session_id: str, lab_type: LabType) -> Dict[str, str]:
    """
    Get standard labels for lab session resources.

    Args:
        app_label: Value of the "app" label shared by all lab pods
        session_id: Session identifier
        lab_type: Lab variant

    Returns:
        Dict of labels
    """
    return {
        "app": app_label,
        "session_id": str(session_id),
        "lab_type": lab_type.value,
    }


def get_lab_selector(app_label: str, session_id: str) -> Dict[str, str]:
    """Selector matching exactly one session's pod."""
    return {
        "app": app_label,
        "session_id": str(session_id),
    }


# =============================================================================
# Lab Pod
# =============================================================================

def create_lab_pod_manifest(
    pod_name: str,
    session_id: str,
    lab_type: LabType,
    image: str,
    pull_secret_name: str,
    app_label: str = "altair-lab",
    container_name: str = "lab-container",
    memory_request: str = "256Mi",
    cpu_request: str = "250m",
    memory_limit: str = "512Mi",
    cpu_limit: str = "500m",
    active_deadline_seconds: int = 7200,
    container_port: Optional[int] = None
) -> client.V1Pod:
    """
    Create the pod manifest for a lab session.

    The pod runs the session image with a TTY attached to stdin so the
    terminal relay gets an interactive shell. It is never restarted: a lab
    that exits stays exited until it is deleted.

    Args:
        pod_name: Pod name (<prefix>-<session_id>)
        session_id: Session identifier (label)
        lab_type: Lab variant (label)
        image: Session image reference
        pull_secret_name: Name of the session's image pull secret
        app_label: Value of the "app" label
        container_name: Name of the single container
        memory_request/cpu_request/memory_limit/cpu_limit: Resource tier
        active_deadline_seconds: Hard lifetime ceiling
        container_port: Port declared for web labs

    Returns:
        V1Pod manifest
    """
    ports = None
    if container_port:
        ports = [client.V1ContainerPort(container_port=container_port, name="http")]

    container = client.V1Container(
        name=container_name,
        image=image,
        stdin=True,
        tty=True,
        ports=ports,
        resources=client.V1ResourceRequirements(
            requests={"memory": memory_request, "cpu": cpu_request},
            limits={"memory": memory_limit, "cpu": cpu_limit}
        ),
        volume_mounts=[
            client.V1VolumeMount(name="var-log", mount_path="/var/log")
        ]
    )

    return client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=client.V1ObjectMeta(
            name=pod_name,
            labels=get_lab_labels(app_label, session_id, lab_type)
        ),
        spec=client.V1PodSpec(
            containers=[container],
            image_pull_secrets=[client.V1LocalObjectReference(name=pull_secret_name)],
            volumes=[
                client.V1Volume(name="var-log", empty_dir=client.V1EmptyDirVolumeSource())
            ],
            restart_policy="Never",
            active_deadline_seconds=active_deadline_seconds
        )
    )


# =============================================================================
# Pull Secret
# =============================================================================

def build_docker_config_json(registry_host: str, token: str) -> str:
    """
    Build a single-registry dockerconfigjson payload for an OAuth access token.

    Google registries accept the literal user "oauth2accesstoken" with the
    access token as password.
    """
    auth = base64.b64encode(f"oauth2accesstoken:{token}".encode("utf-8")).decode("ascii")
    return json.dumps({"auths": {registry_host: {"auth": auth}}})


def create_pull_secret_manifest(
    secret_name: str,
    registry_host: str,
    token: str,
    labels: Optional[Dict[str, str]] = None
) -> client.V1Secret:
    """
    Create the image pull secret manifest for a lab session.

    Returns:
        V1Secret manifest of type kubernetes.io/dockerconfigjson
    """
    payload = build_docker_config_json(registry_host, token)
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(name=secret_name, labels=labels),
        type="kubernetes.io/dockerconfigjson",
        data={
            ".dockerconfigjson": base64.b64encode(payload.encode("utf-8")).decode("ascii")
        }
    )


# =============================================================================
# Lab Service
# =============================================================================

def create_lab_service_manifest(
    service_name: str,
    selector: Dict[str, str],
    port: int = 80,
    target_port: int = 80,
    labels: Optional[Dict[str, str]] = None
) -> client.V1Service:
    """
    Create the LoadBalancer service manifest for a web lab.

    Args:
        service_name: Service name (lab-web-<session_id>)
        selector: Pod selector (app + session_id)
        port: Externally exposed port
        target_port: Container port
        labels: Optional labels for the service itself

    Returns:
        V1Service manifest
    """
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=service_name, labels=labels),
        spec=client.V1ServiceSpec(
            type="LoadBalancer",
            selector=selector,
            ports=[
                client.V1ServicePort(
                    name="http",
                    port=port,
                    target_port=target_port,
                    protocol="TCP"
                )
            ]
        )
    )
