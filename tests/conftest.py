"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FAKE_OPENVPN = Path(__file__).parent / "fixtures" / "fake_openvpn.py"


@pytest.fixture
def fake_openvpn() -> Path:
    """Path of the fake OpenVPN script."""
    return FAKE_OPENVPN


@pytest.fixture
def fake_openvpn_argv():
    """Build an argv that runs the fake OpenVPN with extra options."""

    def _argv(*extra: str) -> list[str]:
        return [sys.executable, str(FAKE_OPENVPN), *extra]

    return _argv


@pytest.fixture
def fake_openvpn_bin(tmp_path: Path):
    """Create an executable wrapper usable as OpenVpnCommand.openvpn_bin.

    The wrapper forwards the given options plus all OpenVPN arguments to the
    fake script. POSIX only.
    """
    if sys.platform == "win32":
        pytest.skip("Shell wrapper requires POSIX")

    def _make(*extra: str) -> str:
        wrapper = tmp_path / "openvpn"
        options = " ".join(extra)
        wrapper.write_text(
            f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_OPENVPN}" {options} "$@"\n'
        )
        wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return os.fspath(wrapper)

    return _make
