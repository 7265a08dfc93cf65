"""openvpn-proc - OpenVPN launcher and process supervisor.

Environment variables:
    OVP_OPENVPN_BIN: OpenVPN executable (default "openvpn")
    OVP_STOP_TIMEOUT: graceful shutdown deadline (default 5.0 seconds)
    OVP_LOG_DEBUG: DEBUG log to a temp file (default false)

Usage:
    openvpn-proc run profile.json
"""

__version__ = "0.1.0"

from .command import OpenVpnCommand
from .errors import ContractViolation, MissingProxyPortError
from .runtime import OpenVpnProcHandle, ProcessSpec

__all__ = [
    "__version__",
    "ContractViolation",
    "MissingProxyPortError",
    "OpenVpnCommand",
    "OpenVpnProcHandle",
    "ProcessSpec",
]
