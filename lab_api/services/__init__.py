"""
Services Module

Backend services for ephemeral lab sessions.

Key Submodules:
- kubernetes: Kubernetes client and manifest builders
- lab_manager: Spawn, stop and status of lab sessions
- readiness: Watch-driven readiness waits for pods and services
- credential_provisioner: Per-session image pull secrets
- terminal_relay: WebSocket <-> pod shell bridge

Usage:
    from lab_api.services.lab_manager import get_lab_manager, SessionRequest
"""

from .errors import (
    LabError,
    InvalidLabType,
    UpstreamUnavailable,
    ProvisionError,
    WorkloadFailed,
    ReadinessTimeout,
)
from .lab_type import LabType

__all__ = [
    # Errors
    "LabError",
    "InvalidLabType",
    "UpstreamUnavailable",
    "ProvisionError",
    "WorkloadFailed",
    "ReadinessTimeout",
    # Lab types
    "LabType",
]
