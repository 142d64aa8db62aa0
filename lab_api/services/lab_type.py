"""
Lab Type Enumeration

Closed set of lab variants accepted by the spawn endpoint. Each variant decides
the pod name prefix and whether the lab needs a browser-reachable Service.
"""

from enum import Enum

from .errors import InvalidLabType


class LabType(str, Enum):
    """
    Supported lab variants.

    Attributes:
        TERMINAL: Plain shell lab reached through the terminal relay
        CTF_TERMINAL_GUIDED: Guided CTF lab reached through the terminal relay
        WEB: Lab serving a web application on a LoadBalancer address
        CTF_WEB_GUIDED: Guided CTF lab serving a web application
    """

    TERMINAL = "terminal"
    CTF_TERMINAL_GUIDED = "ctf_terminal_guided"
    WEB = "web"
    CTF_WEB_GUIDED = "ctf_web_guided"

    @classmethod
    def from_string(cls, value: str) -> "LabType":
        """
        Convert a string to LabType enum.

        Args:
            value: Lab type tag from the request

        Returns:
            LabType enum value

        Raises:
            InvalidLabType: If value is not a recognized lab type
        """
        if isinstance(value, str):
            for lab_type in cls:
                if lab_type.value == value:
                    return lab_type
        valid_types = ", ".join([t.value for t in cls])
        raise InvalidLabType(str(value), valid_types)

    @property
    def name_prefix(self) -> str:
        """Prefix of the pod name: <prefix>-<session_id>."""
        return _NAME_PREFIXES[self]

    @property
    def requires_exposure(self) -> bool:
        """Whether the lab needs a LoadBalancer Service."""
        return self in (LabType.WEB, LabType.CTF_WEB_GUIDED)

    def __str__(self) -> str:
        return self.value


_NAME_PREFIXES = {
    LabType.TERMINAL: "terminal",
    LabType.CTF_TERMINAL_GUIDED: "ctf-session",
    LabType.WEB: "web",
    LabType.CTF_WEB_GUIDED: "ctf-web",
}
