"""SignalManager tests.

Covers:
- SIGINT handling modes
- Config defaults
- Double-tap kill
"""

from __future__ import annotations

import asyncio
import os
import sys
from unittest import mock

import pytest

from openvpn_proc.config import SigintMode, reload_config
from openvpn_proc.signal_manager import SignalManager


def make_manager(**kwargs) -> SignalManager:
    """A manager with events wired up but no handlers installed."""
    manager = SignalManager(**kwargs)
    manager._shutdown_event = asyncio.Event()
    manager._force_kill_event = asyncio.Event()
    manager._loop = mock.MagicMock()
    return manager


class TestSignalManagerInit:
    """Initialization tests."""

    def test_init_with_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop("OVP_SIGINT_MODE", None)
            os.environ.pop("OVP_SIGINT_DOUBLE_TAP_WINDOW", None)
            reload_config()

            manager = SignalManager()

            assert manager.sigint_mode == SigintMode.STOP
            assert manager.double_tap_window == 1.0
            assert manager.is_shutdown_requested is False
            assert manager.is_force_kill is False

    def test_init_from_environment(self):
        env = {"OVP_SIGINT_MODE": "kill", "OVP_SIGINT_DOUBLE_TAP_WINDOW": "2.5"}
        with mock.patch.dict(os.environ, env, clear=False):
            reload_config()
            manager = SignalManager()

        assert manager.sigint_mode == SigintMode.KILL
        assert manager.double_tap_window == 2.5
        reload_config()

    def test_init_with_custom_values(self):
        manager = SignalManager(sigint_mode=SigintMode.KILL, double_tap_window=2.0)

        assert manager.sigint_mode == SigintMode.KILL
        assert manager.double_tap_window == 2.0


class TestSigintStop:
    """SIGINT in stop mode."""

    def test_first_sigint_requests_graceful_stop(self):
        manager = make_manager(sigint_mode=SigintMode.STOP)

        manager._handle_sigint()

        assert manager.is_shutdown_requested is True
        assert manager.is_force_kill is False
        manager._loop.call_soon_threadsafe.assert_called_once_with(manager._shutdown_event.set)

    def test_double_tap_forces_kill(self):
        manager = make_manager(sigint_mode=SigintMode.STOP, double_tap_window=10.0)

        manager._handle_sigint()
        manager._handle_sigint()

        assert manager.is_force_kill is True
        manager._loop.call_soon_threadsafe.assert_any_call(manager._force_kill_event.set)

    def test_slow_second_sigint_is_not_a_double_tap(self):
        manager = make_manager(sigint_mode=SigintMode.STOP, double_tap_window=1.0)

        with mock.patch("openvpn_proc.signal_manager.time") as fake_time:
            fake_time.time.side_effect = [100.0, 105.0]
            manager._handle_sigint()
            manager._handle_sigint()

        assert manager.is_shutdown_requested is True
        assert manager.is_force_kill is False


class TestSigintKill:
    """SIGINT in kill mode."""

    def test_sigint_forces_kill(self):
        manager = make_manager(sigint_mode=SigintMode.KILL)

        manager._handle_sigint()

        assert manager.is_shutdown_requested is True
        assert manager.is_force_kill is True
        manager._loop.call_soon_threadsafe.assert_any_call(manager._shutdown_event.set)
        manager._loop.call_soon_threadsafe.assert_any_call(manager._force_kill_event.set)


class TestSigterm:
    """SIGTERM handling."""

    def test_sigterm_requests_graceful_stop(self):
        manager = make_manager(sigint_mode=SigintMode.KILL)

        manager._handle_sigterm()

        assert manager.is_shutdown_requested is True
        assert manager.is_force_kill is False


class TestShutdownCallback:
    """on_shutdown callback."""

    def test_callback_called(self):
        callback = mock.MagicMock()
        manager = make_manager(on_shutdown=callback)

        manager.request_graceful_shutdown()

        callback.assert_called_once_with()
        assert manager.is_shutdown_requested is True

    def test_callback_error_is_logged(self, caplog: pytest.LogCaptureFixture):
        callback = mock.MagicMock(side_effect=RuntimeError("boom"))
        manager = make_manager(on_shutdown=callback)

        manager.request_graceful_shutdown()

        assert "Error in shutdown callback" in caplog.text
        assert manager.is_shutdown_requested is True


class TestSignalManagerLifecycle:
    """start / stop / wait tests against a real event loop."""

    @pytest.mark.asyncio
    async def test_wait_for_shutdown(self):
        manager = SignalManager(sigint_mode=SigintMode.STOP)
        await manager.start()
        try:
            manager.request_graceful_shutdown()
            await asyncio.wait_for(manager.wait_for_shutdown(), timeout=1.0)
        finally:
            await manager.stop()

        assert manager.is_force_kill is False

    @pytest.mark.asyncio
    async def test_wait_for_force_kill(self):
        manager = SignalManager(sigint_mode=SigintMode.KILL)
        await manager.start()
        try:
            manager._handle_sigint()
            await asyncio.wait_for(manager.wait_for_force_kill(), timeout=1.0)
            await asyncio.wait_for(manager.wait_for_shutdown(), timeout=1.0)
        finally:
            await manager.stop()

    @pytest.mark.asyncio
    async def test_double_start_is_ignored(self, caplog: pytest.LogCaptureFixture):
        manager = SignalManager()
        await manager.start()
        try:
            await manager.start()
            assert "already running" in caplog.text
        finally:
            await manager.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        manager = SignalManager()
        await manager.stop()

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal handlers")
    async def test_handlers_installed_and_removed(self):
        manager = SignalManager()
        loop = asyncio.get_running_loop()

        with mock.patch.object(loop, "add_signal_handler") as add, \
                mock.patch.object(loop, "remove_signal_handler") as remove:
            await manager.start()
            await manager.stop()

        assert add.call_count == 2
        assert remove.call_count == 2
