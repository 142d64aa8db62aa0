import shlex
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    # HTTP server binding (used by `lab-api` / `python -m lab_api.main`)
    host: str = "0.0.0.0"
    port: int = 8085

    # CORS Configuration
    # Comma-separated list of allowed origins, "*" allows any origin
    cors_origins: str = "*"

    # ==========================================================================
    # Kubernetes General Settings
    # ==========================================================================
    k8s_namespace: str = "default"

    # Base URL handed back to clients for the terminal relay
    # Format: "wss://labs.example.com" (no trailing path)
    webshell_base_url: str = "ws://localhost:8085"
    webshell_path: str = "/spawn/webshell"

    # ==========================================================================
    # Lab Pod Settings
    # ==========================================================================
    lab_app_label: str = "altair-lab"
    lab_container_name: str = "lab-container"

    # Fixed resource tier for every lab pod
    lab_memory_request: str = "256Mi"
    lab_cpu_request: str = "250m"
    lab_memory_limit: str = "512Mi"
    lab_cpu_limit: str = "500m"

    # Hard ceiling on a lab pod's lifetime (activeDeadlineSeconds)
    lab_active_deadline_seconds: int = 7200

    # Shell started for each terminal relay
    lab_shell_command: str = "/bin/bash -lc 'exec su - student'"

    # Web labs: LoadBalancer service port -> container port
    lab_web_port: int = 80
    lab_web_target_port: int = 80
    lab_web_scheme: str = "http"

    # ==========================================================================
    # Readiness Settings
    # ==========================================================================
    pod_ready_timeout_seconds: float = 60.0
    # External address assignment is slower than pod startup
    service_ready_timeout_seconds: float = 180.0
    # Pause before reopening a watch the API server closed early
    watch_resubscribe_delay_seconds: float = 1.0

    # ==========================================================================
    # Registry Credentials
    # ==========================================================================
    # Used when an image reference has no registry component
    default_registry_host: str = "gcr.io"
    # Comma-separated OAuth scopes for the registry access token
    registry_token_scopes: str = "https://www.googleapis.com/auth/cloud-platform"

    @property
    def shell_command(self) -> List[str]:
        """Terminal command as an argv list."""
        return shlex.split(self.lab_shell_command)

    @property
    def token_scopes(self) -> List[str]:
        return [s.strip() for s in self.registry_token_scopes.split(",") if s.strip()]

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    class Config:
        # Environment variables are passed directly in the cluster
        # For native development: looks for .env in the working directory
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields from .env file
        case_sensitive = False  # Allow lowercase env vars to match uppercase field names


@lru_cache()
def get_settings():
    return Settings()
