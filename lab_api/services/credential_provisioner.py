"""
Credential Provisioner

Installs the per-session image pull secret a lab pod needs to pull its image
from a private registry.
"""

import logging

import urllib3
from kubernetes.client.rest import ApiException

from .errors import ProvisionError
from .kubernetes.helpers import create_pull_secret_manifest
from ..utils.resource_naming import get_pull_secret_name

logger = logging.getLogger(__name__)


def extract_registry_host(template_path: str, default_host: str = "gcr.io") -> str:
    """
    Get the registry host of an image reference.

    This is a heuristic, not an image reference parser: everything before the
    first "/" is taken as the host, so "library/debian" yields "library".
    References without any "/" fall back to default_host.

    Examples:
        >>> extract_registry_host("europe-west9-docker.pkg.dev/proj/labs/lab:latest")
        "europe-west9-docker.pkg.dev"
        >>> extract_registry_host("debian:latest")
        "gcr.io"
    """
    host, separator, _ = template_path.partition("/")
    if not separator:
        return default_host
    return host


class CredentialProvisioner:
    """Creates gcr-secret-<session_id> pull secrets."""

    def __init__(self, k8s_client, namespace: str, default_registry_host: str = "gcr.io"):
        self.k8s_client = k8s_client
        self.namespace = namespace
        self.default_registry_host = default_registry_host

    async def provision(self, session_id: str, template_path: str, token: str, labels=None) -> str:
        """
        Replace the session's pull secret with a fresh one.

        Secrets are immutable once created, and a retried session must not
        collide with a stale secret, so any existing object of the same name is
        deleted first.

        Returns:
            The secret name

        Raises:
            ProvisionError: if the delete or create call fails
        """
        secret_name = get_pull_secret_name(session_id)
        registry_host = extract_registry_host(template_path, self.default_registry_host)

        secret = create_pull_secret_manifest(
            secret_name=secret_name,
            registry_host=registry_host,
            token=token,
            labels=labels
        )

        try:
            if await self.k8s_client.delete_secret(self.namespace, secret_name):
                logger.info(f"[CREDENTIALS] Replaced stale pull secret {secret_name}")
            await self.k8s_client.create_secret(self.namespace, secret)
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            logger.error(f"[CREDENTIALS] Failed to install pull secret {secret_name}: {e}")
            raise ProvisionError(f"Failed to install pull secret {secret_name}: {e}") from e

        logger.info(f"[CREDENTIALS] Pull secret {secret_name} installed for registry {registry_host}")
        return secret_name
