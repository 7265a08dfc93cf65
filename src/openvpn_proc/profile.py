"""JSON launch profiles.

A profile holds everything needed to build an OpenVpnCommand, so that the
CLI can launch a tunnel from a file:

    {
      "remote": {"address": {"ip": "185.213.154.68", "port": 1194}, "protocol": "udp"},
      "user_pass": "/run/openvpn/auth.txt",
      "ca": "/etc/openvpn/ca.crt",
      "enable_ipv6": false,
      "proxy": {"type": "local", "port": 1080, "peer": {"ip": "1.2.3.4", "port": 443}}
    }
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from .command.builder import OpenVpnCommand
from .net.types import Endpoint, ProxySettings, TunnelOptions

__all__ = ["LaunchProfile", "PluginSpec", "load_profile"]

logger = logging.getLogger(__name__)


class PluginSpec(BaseModel):
    """OpenVPN plugin and its arguments."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    args: list[str] = Field(default_factory=list)


class LaunchProfile(BaseModel):
    """Validated launch profile.

    Unknown keys are rejected so that typos do not silently drop options.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    openvpn_bin: str | None = None
    config: str | None = None
    remote: Endpoint | None = None
    user_pass: str | None = None
    proxy_auth: str | None = None
    ca: str | None = None
    crl: str | None = None
    plugin: PluginSpec | None = None
    log: str | None = None
    tunnel_options: TunnelOptions = Field(default_factory=TunnelOptions)
    proxy: ProxySettings | None = None
    tunnel_alias: str | None = None
    enable_ipv6: bool = True
    proxy_port: int | None = Field(default=None, ge=1, le=65535)
    fwmark: int | None = Field(default=None, ge=0, le=0xFFFFFFFF)

    def to_command(self, default_bin: str = "openvpn") -> OpenVpnCommand:
        """Create the OpenVpnCommand described by this profile.

        Args:
            default_bin: Executable used when the profile does not name one
        """
        command = OpenVpnCommand(self.openvpn_bin or default_bin)

        if self.config is not None:
            command = command.with_config(self.config)
        if self.remote is not None:
            command = command.with_remote(self.remote)
        if self.user_pass is not None:
            command = command.with_user_pass(self.user_pass)
        if self.proxy_auth is not None:
            command = command.with_proxy_auth(self.proxy_auth)
        if self.ca is not None:
            command = command.with_ca(self.ca)
        if self.crl is not None:
            command = command.with_crl(self.crl)
        if self.plugin is not None:
            command = command.with_plugin(self.plugin.path, self.plugin.args)
        if self.log is not None:
            command = command.with_log(self.log)
        if self.proxy_port is not None:
            command = command.with_proxy_port(self.proxy_port)

        return (
            command
            .with_tunnel_options(self.tunnel_options)
            .with_proxy_settings(self.proxy)
            .with_tunnel_alias(self.tunnel_alias)
            .with_enable_ipv6(self.enable_ipv6)
            .with_fwmark(self.fwmark)
        )


def load_profile(path: str | Path) -> LaunchProfile:
    """Read and validate a JSON launch profile.

    Raises:
        OSError: If the file cannot be read
        pydantic.ValidationError: If the content is not a valid profile
    """
    text = Path(path).read_text(encoding="utf-8")
    profile = LaunchProfile.model_validate_json(text)
    logger.debug(f"Loaded launch profile from {path}")
    return profile
