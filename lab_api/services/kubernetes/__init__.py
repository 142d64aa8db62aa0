"""
Kubernetes Module

Kubernetes-specific code for lab sessions:
- KubernetesClient: Low-level Kubernetes API interactions (pods, secrets, services, watches, exec)
- Helpers: Manifest builders for the lab pod, pull secret and LoadBalancer service

These are used internally by LabManager and TerminalRelay.
"""

from .client import KubernetesClient, WatchSubscription, ExecStream, get_k8s_client
from .helpers import (
    get_lab_labels,
    get_lab_selector,
    create_lab_pod_manifest,
    build_docker_config_json,
    create_pull_secret_manifest,
    create_lab_service_manifest,
)

__all__ = [
    # Client
    "KubernetesClient",
    "WatchSubscription",
    "ExecStream",
    "get_k8s_client",
    # Manifest Helpers
    "get_lab_labels",
    "get_lab_selector",
    "create_lab_pod_manifest",
    "build_docker_config_json",
    "create_pull_secret_manifest",
    "create_lab_service_manifest",
]
