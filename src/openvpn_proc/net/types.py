"""Network and tunnel input types.

openvpn-proc net v0.1.0

These models are the already-validated input data the command builder
consumes. Unknown fields are ignored so that newer producers keep working
against an older launcher, except on ``TunnelOptions`` which keeps them.
"""

from __future__ import annotations

from enum import Enum
from ipaddress import IPv6Address
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    IPvAnyAddress,
    SecretStr,
    TypeAdapter,
)

__all__ = [
    "TransportProtocol",
    "SocketAddress",
    "Endpoint",
    "TunnelOptions",
    "ProxyAuth",
    "LocalProxySettings",
    "RemoteProxySettings",
    "ShadowsocksProxySettings",
    "ProxySettings",
    "parse_proxy_settings",
]

Port = Annotated[int, Field(ge=0, le=65535)]


class TransportProtocol(str, Enum):
    """Transport protocol of a tunnel endpoint."""

    UDP = "udp"
    TCP = "tcp"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class SocketAddress(_FrozenModel):
    """IP address and port pair."""

    ip: IPvAnyAddress
    port: Port

    def __str__(self) -> str:
        if isinstance(self.ip, IPv6Address):
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


class Endpoint(_FrozenModel):
    """A remote address together with the transport protocol to reach it.

    Attributes:
        address: Remote socket address
        protocol: UDP or TCP
    """

    address: SocketAddress
    protocol: TransportProtocol = TransportProtocol.UDP

    @classmethod
    def new(cls, ip: Any, port: int, protocol: TransportProtocol | str) -> "Endpoint":
        return cls(
            address=SocketAddress(ip=ip, port=port),
            protocol=TransportProtocol(protocol),
        )

    def __str__(self) -> str:
        return f"{self.address}/{self.protocol.value.upper()}"


class TunnelOptions(BaseModel):
    """Extra tunnel options.

    Attributes:
        mssfix: Optional --mssfix value
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    mssfix: Annotated[int, Field(ge=1, le=65535)] | None = None


class ProxyAuth(_FrozenModel):
    """Credentials for a remote SOCKS proxy.

    The launcher only checks that credentials exist. The file handed to
    OpenVPN is written by the caller.
    """

    username: str
    password: SecretStr


class LocalProxySettings(_FrozenModel):
    """SOCKS proxy already listening on the loopback interface.

    Attributes:
        port: Local listening port
        peer: Address the proxy forwards to, routed outside the tunnel
    """

    type: Literal["local"] = "local"
    port: Port
    peer: SocketAddress


class RemoteProxySettings(_FrozenModel):
    """SOCKS proxy on another host."""

    type: Literal["remote"] = "remote"
    address: SocketAddress
    auth: ProxyAuth | None = None


class ShadowsocksProxySettings(_FrozenModel):
    """Shadowsocks client started next to OpenVPN.

    Its local port is picked when the client binds, so it is not part of
    these settings. See ``OpenVpnCommand.with_proxy_port``.
    """

    type: Literal["shadowsocks"] = "shadowsocks"
    peer: SocketAddress
    password: SecretStr
    cipher: str


ProxySettings = Annotated[
    Union[LocalProxySettings, RemoteProxySettings, ShadowsocksProxySettings],
    Field(discriminator="type"),
]

_proxy_settings_adapter: TypeAdapter[Any] = TypeAdapter(ProxySettings)


def parse_proxy_settings(data: Any) -> LocalProxySettings | RemoteProxySettings | ShadowsocksProxySettings:
    """Validate a mapping into the matching proxy settings variant.

    Args:
        data: Mapping with a ``type`` key of local/remote/shadowsocks

    Returns:
        The validated settings model

    Raises:
        pydantic.ValidationError: On unknown type or invalid fields
    """
    return _proxy_settings_adapter.validate_python(data)
