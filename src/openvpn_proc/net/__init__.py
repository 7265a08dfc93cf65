"""Network input types consumed by the command builder."""

from __future__ import annotations

from .types import (
    Endpoint,
    LocalProxySettings,
    ProxyAuth,
    ProxySettings,
    RemoteProxySettings,
    ShadowsocksProxySettings,
    SocketAddress,
    TransportProtocol,
    TunnelOptions,
    parse_proxy_settings,
)

__all__ = [
    "Endpoint",
    "LocalProxySettings",
    "ProxyAuth",
    "ProxySettings",
    "RemoteProxySettings",
    "ShadowsocksProxySettings",
    "SocketAddress",
    "TransportProtocol",
    "TunnelOptions",
    "parse_proxy_settings",
]
