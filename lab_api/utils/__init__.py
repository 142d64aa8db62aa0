"""Utility modules for the lab API service."""

from .resource_naming import (
    get_pod_name,
    get_pull_secret_name,
    get_exposure_name,
    split_pod_name,
    get_webshell_url,
)

__all__ = [
    'get_pod_name',
    'get_pull_secret_name',
    'get_exposure_name',
    'split_pod_name',
    'get_webshell_url',
]
