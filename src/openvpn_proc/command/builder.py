"""OpenVPN command builder.

openvpn-proc command v0.1.0

Turns a frozen launch configuration into the argument vector of an OpenVPN
client process.

Command format:
    openvpn \
      {base arguments} \
      [--config {path}] \
      [--proto udp|tcp-client --remote {ip} {port}] \
      [--auth-user-pass {path}] \
      [--ca {path}] [--crl-verify {path}] \
      [--plugin {path} {args...}] \
      [--log {path}] \
      [--mssfix {value}] \
      [--pull-filter ignore route-ipv6 --pull-filter ignore ifconfig-ipv6] \
      [--dev-node {alias}] \
      --tls-ciphersuites {ciphers} \
      [{proxy arguments}] \
      [--mark {fwmark}]
"""

from __future__ import annotations

import logging
import os
import shlex
import sys
from dataclasses import dataclass, field, replace
from typing import Sequence

from ..errors import MissingProxyPortError
from ..net.types import (
    Endpoint,
    LocalProxySettings,
    RemoteProxySettings,
    ShadowsocksProxySettings,
    TransportProtocol,
    TunnelOptions,
)
from ..runtime.proc_handle import ProcessSpec

__all__ = [
    "OpenVpnCommand",
    "ALLOWED_TLS1_3_CIPHERS",
    "base_arguments",
]

logger = logging.getLogger(__name__)

StrPath = str | os.PathLike[str]
AnyProxySettings = LocalProxySettings | RemoteProxySettings | ShadowsocksProxySettings

ALLOWED_TLS1_3_CIPHERS = ("TLS_AES_256_GCM_SHA384", "TLS_CHACHA20_POLY1305_SHA256")

# Values OpenVPN expects for --proto
PROTOCOL_MAP: dict[TransportProtocol, str] = {
    TransportProtocol.UDP: "udp",
    TransportProtocol.TCP: "tcp-client",
}

LOOPBACK = "127.0.0.1"
SINGLE_HOST_MASK = "255.255.255.255"


def _is_windows(platform: str) -> bool:
    return platform == "win32"


def _is_linux(platform: str) -> bool:
    return platform.startswith("linux")


def base_arguments(platform: str = sys.platform) -> list[str]:
    """Return the fixed arguments every invocation starts with.

    Args:
        platform: A ``sys.platform`` value

    Returns:
        Flat list of arguments
    """
    windows = _is_windows(platform)

    args = [
        "--client",
        "--tls-client",
        "--nobind",
        "--mute-replay-warnings",
    ]
    args.extend(["--dev-type", "tun"] if windows else ["--dev", "tun"])
    args.extend([
        "--ping", "4",
        "--ping-exit", "25",
        "--connect-timeout", "30",
        "--connect-retry", "0", "0",
        "--connect-retry-max", "1",
        "--remote-cert-tls", "server",
        "--rcvbuf", "1048576",
        "--sndbuf", "1048576",
        "--fast-io",
        "--data-ciphers-fallback", "AES-256-GCM",
        "--tls-version-min", "1.3",
        "--verb", "3",
    ])

    if windows:
        args.extend([
            "--route-gateway", "dhcp",
            "--route", "0.0.0.0", "0.0.0.0", "vpn_gateway", "1",
        ])
    # Routes are added by the route manager, not by OpenVPN
    if _is_linux(platform):
        args.append("--route-noexec")
    if windows:
        args.extend(["--ip-win32", "ipapi"])
        args.extend(["--windows-driver", "wintun"])

    return args


@dataclass(frozen=True)
class OpenVpnCommand:
    """Launch configuration for one OpenVPN process.

    Every ``with_*`` method returns an updated copy, so a command can be
    shared freely once built.

    Example:
        command = (
            OpenVpnCommand("/usr/sbin/openvpn")
            .with_remote(Endpoint.new("10.0.0.1", 1194, TransportProtocol.UDP))
            .with_user_pass("/run/openvpn/auth.txt")
            .with_enable_ipv6(False)
        )
        handle = await OpenVpnProcHandle.spawn(command.build())

    Attributes:
        openvpn_bin: Path of the OpenVPN executable
        config: --config file
        remote: Remote endpoint
        user_pass_path: --auth-user-pass credential file
        proxy_auth_path: Credential file for an authenticated SOCKS proxy
        ca: CA certificate file
        crl: Certificate revocation list file
        plugin: Plugin path and its arguments
        log: --log file
        tunnel_options: Extra tunnel options
        proxy_settings: SOCKS proxy to reach the remote through
        tunnel_alias: Tunnel device to use (--dev-node)
        enable_ipv6: Accept IPv6 routes and addresses pushed by the server
        proxy_port: Local port bound by a dynamic proxy
        fwmark: Firewall mark for tunnel traffic (Linux only)
        target_platform: ``sys.platform`` value the arguments are built for
    """

    openvpn_bin: str
    config: str | None = None
    remote: Endpoint | None = None
    user_pass_path: str | None = None
    proxy_auth_path: str | None = None
    ca: str | None = None
    crl: str | None = None
    plugin: tuple[str, tuple[str, ...]] | None = None
    log: str | None = None
    tunnel_options: TunnelOptions = field(default_factory=TunnelOptions)
    proxy_settings: AnyProxySettings | None = None
    tunnel_alias: str | None = None
    enable_ipv6: bool = True
    proxy_port: int | None = None
    fwmark: int | None = None
    target_platform: str = sys.platform

    def __post_init__(self) -> None:
        """Normalize path-like values to strings."""
        object.__setattr__(self, "openvpn_bin", os.fspath(self.openvpn_bin))

    # -------------------------------------------------------------------------
    # Setters
    # -------------------------------------------------------------------------

    def with_config(self, path: StrPath) -> "OpenVpnCommand":
        return replace(self, config=os.fspath(path))

    def with_remote(self, remote: Endpoint) -> "OpenVpnCommand":
        return replace(self, remote=remote)

    def with_user_pass(self, path: StrPath) -> "OpenVpnCommand":
        """Set the --auth-user-pass file holding username and password."""
        return replace(self, user_pass_path=os.fspath(path))

    def with_proxy_auth(self, path: StrPath) -> "OpenVpnCommand":
        return replace(self, proxy_auth_path=os.fspath(path))

    def with_ca(self, path: StrPath) -> "OpenVpnCommand":
        return replace(self, ca=os.fspath(path))

    def with_crl(self, path: StrPath) -> "OpenVpnCommand":
        return replace(self, crl=os.fspath(path))

    def with_plugin(self, path: StrPath, args: Sequence[str] = ()) -> "OpenVpnCommand":
        return replace(self, plugin=(os.fspath(path), tuple(args)))

    def with_log(self, path: StrPath) -> "OpenVpnCommand":
        return replace(self, log=os.fspath(path))

    def with_tunnel_options(self, tunnel_options: TunnelOptions) -> "OpenVpnCommand":
        return replace(self, tunnel_options=tunnel_options)

    def with_tunnel_alias(self, tunnel_alias: str | None) -> "OpenVpnCommand":
        return replace(self, tunnel_alias=tunnel_alias)

    def with_enable_ipv6(self, enable_ipv6: bool) -> "OpenVpnCommand":
        return replace(self, enable_ipv6=enable_ipv6)

    def with_proxy_port(self, proxy_port: int) -> "OpenVpnCommand":
        """Record the port a dynamic proxy bound to.

        Only known once the proxy process has started.
        """
        return replace(self, proxy_port=proxy_port)

    def with_proxy_settings(self, proxy_settings: AnyProxySettings | None) -> "OpenVpnCommand":
        return replace(self, proxy_settings=proxy_settings)

    def with_fwmark(self, fwmark: int | None) -> "OpenVpnCommand":
        """Set the firewall mark. Ignored unless targeting Linux."""
        return replace(self, fwmark=fwmark)

    # -------------------------------------------------------------------------
    # Argument generation
    # -------------------------------------------------------------------------

    def build(self) -> ProcessSpec:
        """Build a runnable process spec from the current state.

        Raises:
            MissingProxyPortError: Dynamic proxy without a recorded port
        """
        argv = [self.openvpn_bin, *self.get_arguments()]
        logger.debug(f"Building expression: {self._format(argv)}")
        return ProcessSpec(argv=argv)

    def get_arguments(self) -> list[str]:
        """Return all arguments the process would be spawned with.

        Returns:
            Argument list, not including the executable

        Raises:
            MissingProxyPortError: Dynamic proxy without a recorded port
        """
        args = base_arguments(self.target_platform)

        if self.config is not None:
            args.extend(["--config", self.config])

        args.extend(self._remote_arguments())
        args.extend(self._authentication_arguments())

        if self.ca is not None:
            args.extend(["--ca", self.ca])
        if self.crl is not None:
            args.extend(["--crl-verify", self.crl])

        if self.plugin is not None:
            path, plugin_args = self.plugin
            args.extend(["--plugin", path])
            args.extend(plugin_args)

        if self.log is not None:
            args.extend(["--log", self.log])

        if self.tunnel_options.mssfix is not None:
            args.extend(["--mssfix", str(self.tunnel_options.mssfix)])

        if not self.enable_ipv6:
            args.extend(["--pull-filter", "ignore", "route-ipv6"])
            args.extend(["--pull-filter", "ignore", "ifconfig-ipv6"])

        if self.tunnel_alias is not None:
            args.extend(["--dev-node", self.tunnel_alias])

        args.extend(self._tls_cipher_arguments())
        args.extend(self._proxy_arguments())

        if _is_linux(self.target_platform) and self.fwmark is not None:
            args.extend(["--mark", str(self.fwmark)])

        return args

    @staticmethod
    def _tls_cipher_arguments() -> list[str]:
        return ["--tls-ciphersuites", ":".join(ALLOWED_TLS1_3_CIPHERS)]

    def _remote_arguments(self) -> list[str]:
        if self.remote is None:
            return []
        return [
            "--proto", PROTOCOL_MAP[self.remote.protocol],
            "--remote", str(self.remote.address.ip), str(self.remote.address.port),
        ]

    def _authentication_arguments(self) -> list[str]:
        if self.user_pass_path is None:
            return []
        return ["--auth-user-pass", self.user_pass_path]

    def _proxy_arguments(self) -> list[str]:
        settings = self.proxy_settings
        args: list[str] = []

        if isinstance(settings, LocalProxySettings):
            args.extend(["--socks-proxy", LOOPBACK, str(settings.port)])
            args.extend(_gateway_route(str(settings.peer.ip)))

        elif isinstance(settings, RemoteProxySettings):
            address = str(settings.address.ip)
            args.extend(["--socks-proxy", address, str(settings.address.port)])
            if settings.auth is not None:
                if self.proxy_auth_path is not None:
                    args.append(self.proxy_auth_path)
                else:
                    logger.error("Proxy credentials present but credentials file missing")
            args.extend(_gateway_route(address))

        elif isinstance(settings, ShadowsocksProxySettings):
            if self.proxy_port is None:
                raise MissingProxyPortError(str(settings.peer))
            args.extend(["--socks-proxy", LOOPBACK, str(self.proxy_port)])
            args.extend(_gateway_route(str(settings.peer.ip)))

        return args

    # -------------------------------------------------------------------------
    # Display
    # -------------------------------------------------------------------------

    @staticmethod
    def _format(argv: Sequence[str]) -> str:
        return " ".join(shlex.quote(arg) for arg in argv)

    def __str__(self) -> str:
        """Shell-escaped program and arguments, for diagnostics."""
        return self._format([self.openvpn_bin, *self.get_arguments()])


def _gateway_route(ip: str) -> list[str]:
    """Route a single host outside the tunnel, via the original gateway."""
    return ["--route", ip, SINGLE_HOST_MASK, "net_gateway"]
