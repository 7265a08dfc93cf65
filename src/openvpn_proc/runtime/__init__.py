"""Runtime module for OpenVPN process management.

This module provides spawning with a stdin shutdown pipe and a bounded
graceful shutdown for the OpenVPN subprocess.
"""

from __future__ import annotations

from .proc_handle import OpenVpnProcHandle, ProcessSpec

__all__ = [
    "OpenVpnProcHandle",
    "ProcessSpec",
]
