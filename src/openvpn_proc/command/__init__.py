"""OpenVPN command line construction."""

from __future__ import annotations

from .builder import ALLOWED_TLS1_3_CIPHERS, OpenVpnCommand, base_arguments

__all__ = [
    "ALLOWED_TLS1_3_CIPHERS",
    "OpenVpnCommand",
    "base_arguments",
]
