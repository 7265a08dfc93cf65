"""openvpn-proc exception types.

I/O failures are reported as the builtin ``OSError`` family and are not
wrapped. The types here cover caller mistakes only.
"""

from __future__ import annotations

__all__ = [
    "ContractViolation",
    "MissingProxyPortError",
]


class ContractViolation(RuntimeError):
    """A precondition was broken by the caller, not by the environment."""
    pass


class MissingProxyPortError(ContractViolation):
    """Dynamic proxy selected but no local proxy port was recorded.

    Attributes:
        peer: The proxy peer the arguments were being generated for
    """

    def __init__(self, peer: str = "") -> None:
        self.peer = peer
        message = "Dynamic proxy port was not registered with OpenVpnCommand"
        if peer:
            message = f"{message} (peer={peer})"
        super().__init__(message)
