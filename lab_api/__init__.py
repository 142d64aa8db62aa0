"""Lab API: ephemeral lab sessions on Kubernetes."""

__version__ = "0.1.0"
