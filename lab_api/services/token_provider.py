"""
Access Token Provider

Short-lived OAuth access tokens from Google application-default credentials
(workload identity in the cluster, `gcloud auth application-default login`
locally). Used only to build registry pull credentials.
"""

import asyncio
import logging
from typing import Dict, Optional, Sequence, Tuple

import google.auth
from google.auth.transport.requests import Request

logger = logging.getLogger(__name__)


class GoogleTokenProvider:
    """
    Hands out bearer tokens per scope set.

    Credentials are loaded once per scope set and refreshed only when the
    cached token is missing or expired.
    """

    def __init__(self):
        self._credentials: Dict[Tuple[str, ...], object] = {}

    def _token_blocking(self, scopes: Tuple[str, ...]) -> str:
        credentials = self._credentials.get(scopes)
        if credentials is None:
            credentials, project = google.auth.default(scopes=list(scopes))
            self._credentials[scopes] = credentials
            logger.info(f"[TOKEN] Loaded application-default credentials (project: {project})")

        if not credentials.valid:
            credentials.refresh(Request())
        return credentials.token

    async def token(self, scopes: Sequence[str]) -> str:
        """
        Get a short-lived bearer token for the given scopes.

        Raises:
            google.auth.exceptions.GoogleAuthError: credentials missing or refresh failed
        """
        return await asyncio.to_thread(self._token_blocking, tuple(scopes))


# Global instance - lazily initialized
_token_provider_instance: Optional[GoogleTokenProvider] = None


def get_token_provider() -> GoogleTokenProvider:
    """Get or create the global token provider instance."""
    global _token_provider_instance
    if _token_provider_instance is None:
        _token_provider_instance = GoogleTokenProvider()
    return _token_provider_instance
