"""Signal management.

Turns OS signals into tunnel shutdown requests instead of letting them
interrupt the supervisor half way:
- SIGINT: graceful stop (or immediate kill, depending on OVP_SIGINT_MODE)
- SIGTERM: graceful stop
- second SIGINT inside the double-tap window: immediate kill

The OpenVPN child runs in its own session, so it never sees these signals
directly. Whatever happens to it happens through OpenVpnProcHandle.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Callable, Optional

from .config import SigintMode, get_config

__all__ = ["SignalManager", "SigintMode"]

logger = logging.getLogger(__name__)


class SignalManager:
    """Signal manager for a supervised tunnel.

    Example:
        ```python
        signal_manager = SignalManager()

        async def main():
            await signal_manager.start()
            try:
                await signal_manager.wait_for_shutdown()
                if signal_manager.is_force_kill:
                    await handle.kill()
                else:
                    await handle.graceful_stop_then_kill(timeout)
            finally:
                await signal_manager.stop()
        ```

    Attributes:
        sigint_mode: SIGINT handling mode
        double_tap_window: Double-tap window (seconds)
    """

    def __init__(
        self,
        sigint_mode: Optional[SigintMode] = None,
        double_tap_window: Optional[float] = None,
        on_shutdown: Optional[Callable[[], None]] = None,
    ) -> None:
        """Initialize the signal manager.

        Args:
            sigint_mode: SIGINT handling mode (default from config)
            double_tap_window: Double-tap window (default from config)
            on_shutdown: Called whenever a shutdown is requested
        """
        config = get_config()
        self.sigint_mode = sigint_mode if sigint_mode is not None else config.sigint_mode
        self.double_tap_window = (
            double_tap_window if double_tap_window is not None else config.sigint_double_tap_window
        )
        self._on_shutdown = on_shutdown

        self._last_sigint_time: float = 0.0
        self._shutdown_requested: bool = False
        self._force_kill: bool = False
        self._shutdown_event: Optional[asyncio.Event] = None
        self._force_kill_event: Optional[asyncio.Event] = None
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._original_sigint_handler: Optional[signal.Handlers] = None

    @property
    def is_shutdown_requested(self) -> bool:
        return self._shutdown_requested

    @property
    def is_force_kill(self) -> bool:
        """Whether the tunnel should be killed without a graceful stop."""
        return self._force_kill

    async def start(self) -> None:
        """Install SIGINT/SIGTERM handlers.

        Must be called from inside the running event loop.
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()
        self._force_kill_event = asyncio.Event()
        self._running = True

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            self._loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)
            logger.debug(
                f"Signal handlers installed (mode={self.sigint_mode.value}, "
                f"double_tap_window={self.double_tap_window}s)"
            )
        else:
            self._original_sigint_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._handle_sigint(),
            )
            logger.debug(
                f"SIGINT handler installed on Windows (mode={self.sigint_mode.value})"
            )

    async def stop(self) -> None:
        """Remove the handlers installed by start()."""
        if not self._running:
            return

        self._running = False

        if sys.platform != "win32" and self._loop:
            try:
                self._loop.remove_signal_handler(signal.SIGINT)
                self._loop.remove_signal_handler(signal.SIGTERM)
            except (RuntimeError, ValueError) as e:
                logger.debug(f"Error removing signal handlers: {e}")
        elif sys.platform == "win32" and self._original_sigint_handler is not None:
            signal.signal(signal.SIGINT, self._original_sigint_handler)

        logger.debug("Signal handlers removed")

    async def wait_for_shutdown(self) -> None:
        """Return once a shutdown has been requested."""
        if self._shutdown_event:
            await self._shutdown_event.wait()

    async def wait_for_force_kill(self) -> None:
        """Return once a forced kill has been requested."""
        if self._force_kill_event:
            await self._force_kill_event.wait()

    def _handle_sigint(self) -> None:
        current_time = time.time()
        time_since_last = current_time - self._last_sigint_time
        self._last_sigint_time = current_time

        if time_since_last < self.double_tap_window and self._shutdown_requested:
            logger.warning("Double SIGINT detected, killing OpenVPN")
            self._request_shutdown(force_kill=True)
            return

        if self.sigint_mode == SigintMode.KILL:
            logger.info("SIGINT received (mode=kill), killing OpenVPN")
            self._request_shutdown(force_kill=True)
        else:
            logger.info(
                f"SIGINT received (mode=stop), stopping OpenVPN. "
                f"Press Ctrl+C again within {self.double_tap_window}s to kill it."
            )
            self._request_shutdown()

    def _handle_sigterm(self) -> None:
        logger.info("SIGTERM received, initiating graceful shutdown")
        self._request_shutdown()

    def _request_shutdown(self, force_kill: bool = False) -> None:
        self._shutdown_requested = True
        if force_kill:
            self._force_kill = True

        if self._on_shutdown:
            try:
                self._on_shutdown()
            except Exception as e:
                logger.warning(f"Error in shutdown callback: {e}")

        if self._shutdown_event and self._loop:
            self._loop.call_soon_threadsafe(self._shutdown_event.set)
            if force_kill and self._force_kill_event:
                self._loop.call_soon_threadsafe(self._force_kill_event.set)

    def request_graceful_shutdown(self) -> None:
        """Request a graceful shutdown from code."""
        logger.info("Programmatic shutdown requested")
        self._request_shutdown()
