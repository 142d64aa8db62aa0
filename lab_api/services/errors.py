"""
Lab Errors

Exception hierarchy for the lab lifecycle. Every error carries the HTTP status
code the routers translate it to, so the boundary never has to inspect
messages to pick a response.

- InvalidLabType: unrecognized lab type, rejected before any cluster call
- UpstreamUnavailable: a cluster call (create/delete/watch) failed
- ProvisionError: the pull credential could not be built or installed
- WorkloadFailed: the cluster reported the lab pod as failed
- ReadinessTimeout: nothing conclusive happened before the deadline
"""


class LabError(Exception):
    """Base class for lab lifecycle errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidLabType(LabError):
    status_code = 400

    def __init__(self, lab_type: str, valid_types: str):
        super().__init__(f"Invalid lab type: '{lab_type}'. Valid types: {valid_types}")
        self.lab_type = lab_type


class UpstreamUnavailable(LabError):
    status_code = 502


class ProvisionError(UpstreamUnavailable):
    pass


class WorkloadFailed(LabError):
    status_code = 500

    def __init__(self, name: str, reason: str = ""):
        message = f"Lab pod {name} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.name = name


class ReadinessTimeout(LabError):
    status_code = 504

    def __init__(self, kind: str, name: str, timeout: float):
        super().__init__(f"{kind} {name} did not become ready within {timeout:g} seconds")
        self.kind = kind
        self.name = name
        self.timeout = timeout
