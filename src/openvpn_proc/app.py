"""openvpn-proc application entry point.

Contains the tunnel supervision loop and the command line interface:

    openvpn-proc show PROFILE
    openvpn-proc run PROFILE [--stop-timeout SECONDS] [--openvpn-bin PATH]
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from typing import Sequence

from pydantic import ValidationError

from .command.builder import OpenVpnCommand
from .config import get_config
from .errors import ContractViolation
from .profile import load_profile
from .runtime.proc_handle import OpenVpnProcHandle
from .signal_manager import SignalManager

__all__ = ["run_tunnel", "main"]

logger = logging.getLogger(__name__)


def _release_stdin(handle: OpenVpnProcHandle) -> None:
    if handle.has_stdin:
        handle.stop()


async def _shutdown(
    handle: OpenVpnProcHandle,
    signal_manager: SignalManager,
    stop_timeout: float,
) -> None:
    """Stop the tunnel, switching to a kill if one is requested midway."""
    if signal_manager.is_force_kill:
        _release_stdin(handle)
        await handle.kill()
        return

    stop_task = asyncio.create_task(
        handle.graceful_stop_then_kill(stop_timeout), name="openvpn-stop"
    )
    force_watcher = asyncio.create_task(
        signal_manager.wait_for_force_kill(), name="force-kill-watcher"
    )
    try:
        done, _ = await asyncio.wait(
            {stop_task, force_watcher},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if stop_task in done:
            # Re-raise a failed forced kill
            stop_task.result()
            return

        logger.warning("Kill requested during graceful stop")
        stop_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stop_task
        # The stop task may have been cancelled before it closed stdin
        _release_stdin(handle)
        await handle.kill()
    finally:
        for task in (stop_task, force_watcher):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task


async def run_tunnel(
    command: OpenVpnCommand,
    stop_timeout: float | None = None,
    signal_manager: SignalManager | None = None,
) -> int:
    """Run OpenVPN until it exits or a shutdown is requested.

    Args:
        command: The command to launch
        stop_timeout: Graceful shutdown deadline (default from config)
        signal_manager: Signal manager to use (default: a new one, installed
            for the duration of the call)

    Returns:
        The OpenVPN exit code

    Raises:
        ContractViolation: If the command cannot produce valid arguments
        OSError: If spawning or killing the process fails
    """
    config = get_config()
    timeout = stop_timeout if stop_timeout is not None else config.stop_timeout

    # Argument errors surface before anything is spawned
    spec = command.build()

    own_manager = signal_manager is None
    manager = signal_manager or SignalManager()
    if own_manager:
        await manager.start()

    try:
        handle = await OpenVpnProcHandle.spawn(spec)
        logger.info(f"OpenVPN started pid={handle.pid}")
        return await _supervise(handle, manager, timeout)
    finally:
        if own_manager:
            await manager.stop()


async def _supervise(
    handle: OpenVpnProcHandle,
    manager: SignalManager,
    timeout: float,
) -> int:
    exit_task = asyncio.create_task(handle.wait(), name="openvpn-exit")
    shutdown_watcher = asyncio.create_task(manager.wait_for_shutdown(), name="shutdown-watcher")

    try:
        done, _ = await asyncio.wait(
            {exit_task, shutdown_watcher},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if exit_task in done:
            returncode = exit_task.result()
            logger.info(f"OpenVPN exited on its own returncode={returncode}")
            # Release the stdin writer
            handle.stop()
            return returncode

        logger.info("Shutdown requested, stopping OpenVPN")
        await _shutdown(handle, manager, timeout)
        returncode = await handle.wait()
        logger.info(f"OpenVPN stopped returncode={returncode}")
        return returncode

    except asyncio.CancelledError:
        logger.info("run_tunnel cancelled, stopping OpenVPN")
        if handle.has_stdin:
            await asyncio.shield(handle.graceful_stop_then_kill(timeout))
        else:
            # A stop was already under way
            await asyncio.shield(handle.kill())
        raise

    finally:
        for task in (exit_task, shutdown_watcher):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task


def _configure_logging() -> None:
    config = get_config()
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party loggers stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("openvpn_proc").setLevel(log_level)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openvpn-proc",
        description="Launch and supervise an OpenVPN client process",
    )
    subparsers = parser.add_subparsers(dest="action", required=True)

    show = subparsers.add_parser("show", help="Print the command line for a profile")
    show.add_argument("profile", help="JSON launch profile")
    show.add_argument("--openvpn-bin", default=None, help="OpenVPN executable")

    run = subparsers.add_parser("run", help="Run OpenVPN from a profile")
    run.add_argument("profile", help="JSON launch profile")
    run.add_argument("--openvpn-bin", default=None, help="OpenVPN executable")
    run.add_argument(
        "--stop-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a graceful stop before killing",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = _build_parser().parse_args(argv)
    _configure_logging()

    config = get_config()
    logger.debug(f"Starting openvpn-proc: {config}")

    try:
        profile = load_profile(args.profile)
        if args.openvpn_bin:
            profile = profile.model_copy(update={"openvpn_bin": args.openvpn_bin})
        command = profile.to_command(config.openvpn_bin)
        if args.action == "show":
            print(command)
            return 0
        return asyncio.run(run_tunnel(command, stop_timeout=args.stop_timeout))
    except (OSError, ValidationError, ContractViolation) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
