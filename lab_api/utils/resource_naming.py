"""
Resource naming utilities for lab sessions.

Centralized functions for generating the Kubernetes object names that belong
to one lab session. These names are part of the external contract (clients
store the pod name and pass it back for stop/status/webshell), so they must not
change:

- Pod:     "<prefix>-<session_id>"  (prefix depends on the lab type)
- Secret:  "gcr-secret-<session_id>"
- Service: "lab-web-<session_id>"
"""

from typing import Optional, Tuple, Union
from uuid import UUID

from ..services.lab_type import LabType

PULL_SECRET_PREFIX = "gcr-secret"
EXPOSURE_PREFIX = "lab-web"


def get_pod_name(lab_type: LabType, session_id: Union[UUID, str]) -> str:
    """
    Get the pod name for a lab session.

    Examples:
        >>> get_pod_name(LabType.CTF_TERMINAL_GUIDED, "456756d9-a348-4fce-8659-b70c1e17985b")
        "ctf-session-456756d9-a348-4fce-8659-b70c1e17985b"
    """
    return f"{lab_type.name_prefix}-{session_id}"


def get_pull_secret_name(session_id: Union[UUID, str]) -> str:
    """Get the image pull secret name for a lab session."""
    return f"{PULL_SECRET_PREFIX}-{session_id}"


def get_exposure_name(session_id: Union[UUID, str]) -> str:
    """Get the LoadBalancer service name for a web lab session."""
    return f"{EXPOSURE_PREFIX}-{session_id}"


def split_pod_name(pod_name: str) -> Optional[Tuple[LabType, str]]:
    """
    Recover the lab type and session id embedded in a pod name.

    Prefixes are matched longest first so "ctf-session-x" is never read as a
    shorter prefix. Returns None when no known prefix matches or the session
    component is empty.
    """
    for lab_type in sorted(LabType, key=lambda t: len(t.name_prefix), reverse=True):
        prefix = f"{lab_type.name_prefix}-"
        if pod_name.startswith(prefix) and len(pod_name) > len(prefix):
            return lab_type, pod_name[len(prefix):]
    return None


def get_webshell_url(base_url: str, path: str, pod_name: str) -> str:
    """
    Get the terminal relay URL for a pod.

    Examples:
        >>> get_webshell_url("ws://lab-api-service:8080/", "/spawn/webshell", "terminal-abc")
        "ws://lab-api-service:8080/spawn/webshell/terminal-abc"
    """
    return f"{base_url.rstrip('/')}/{path.strip('/')}/{pod_name}"
