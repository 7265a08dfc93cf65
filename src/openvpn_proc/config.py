"""openvpn-proc environment configuration.

Environment variables:
    OVP_OPENVPN_BIN: OpenVPN executable
        - default "openvpn" (resolved through PATH)
        - overridden by "openvpn_bin" in a launch profile

    OVP_STOP_TIMEOUT: graceful shutdown deadline in seconds
        - default 5.0, clamped to 0.1-60
        - after the deadline the process is killed

    OVP_LOG_DEBUG: debug logging
        - true/1/yes = on (DEBUG log written to a temp file)
        - false/0/no = off (default, INFO log to stderr)

    OVP_SIGINT_MODE: what Ctrl+C does to a running tunnel
        - stop = close stdin and wait for the deadline (default)
        - kill = kill OpenVPN immediately

    OVP_SIGINT_DOUBLE_TAP_WINDOW: double-tap window in seconds
        - default 1.0
        - a second Ctrl+C inside the window kills OpenVPN
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config", "SigintMode"]


class SigintMode(Enum):
    """SIGINT handling mode.

    - STOP: cooperative shutdown, killed only after the stop timeout
    - KILL: kill OpenVPN right away
    """

    STOP = "stop"
    KILL = "kill"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """Parse a mode string, falling back to STOP on unknown values."""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.STOP


DEFAULT_OPENVPN_BIN = "openvpn"
DEFAULT_STOP_TIMEOUT = 5.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """Parse a float environment variable and clamp it to [low, high]."""
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


@dataclass
class Config:
    """openvpn-proc configuration.

    Attributes:
        openvpn_bin: OpenVPN executable
        stop_timeout: Graceful shutdown deadline (seconds)
        log_debug: Write DEBUG logs to a temp file
        log_file: Log file path (set when log_debug=True)
        sigint_mode: SIGINT handling mode
        sigint_double_tap_window: Double-tap window (seconds)
    """

    openvpn_bin: str = DEFAULT_OPENVPN_BIN
    stop_timeout: float = DEFAULT_STOP_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None
    sigint_mode: SigintMode = SigintMode.STOP
    sigint_double_tap_window: float = 1.0

    def __repr__(self) -> str:
        return (
            f"Config(openvpn_bin={self.openvpn_bin}, "
            f"stop_timeout={self.stop_timeout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """Return a timestamped log file path under the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "openvpn-proc"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"ovp_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("OVP_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None
    sigint_mode = os.environ.get("OVP_SIGINT_MODE")

    return Config(
        openvpn_bin=os.environ.get("OVP_OPENVPN_BIN") or DEFAULT_OPENVPN_BIN,
        stop_timeout=_parse_float(
            os.environ.get("OVP_STOP_TIMEOUT"), DEFAULT_STOP_TIMEOUT, 0.1, 60.0
        ),
        log_debug=log_debug,
        log_file=log_file,
        sigint_mode=SigintMode.from_string(sigint_mode) if sigint_mode else SigintMode.STOP,
        sigint_double_tap_window=_parse_float(
            os.environ.get("OVP_SIGINT_DOUBLE_TAP_WINDOW"), 1.0, 0.1, 10.0
        ),
    )


# Global instance, loaded lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the global configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config
