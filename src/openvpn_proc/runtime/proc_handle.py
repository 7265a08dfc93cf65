"""OpenVPN process handle with cooperative shutdown.

openvpn-proc runtime module v0.1.0

This module provides:
- Spawning OpenVPN with its stdin bound to a pipe we keep the write end of
- Graceful shutdown by closing that pipe (stdin EOF -> OpenVPN exits cleanly)
- A hard deadline after which the process is killed
- Process session isolation so terminal signals reach us, not the child

Key design points:
- The OpenVPN build we launch exits when stdin is closed, which lets it
  deconfigure routes and the tunnel device before exiting
- The stdin writer is taken exactly once; a second take is logged as a bug
- kill() and wait() are safe to call on a process that already exited
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

import anyio

__all__ = [
    "OpenVpnProcHandle",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default graceful shutdown deadline
DEFAULT_STOP_TIMEOUT = 5.0  # seconds to wait after closing stdin


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None


def _is_terminal(stream: Any) -> bool:
    try:
        return stream is not None and stream.isatty()
    except (AttributeError, ValueError):
        return False


def _build_subprocess_kwargs(spec: ProcessSpec) -> dict[str, Any]:
    """Build platform-specific subprocess kwargs.

    Args:
        spec: Process specification

    Returns:
        Dict of kwargs for asyncio.create_subprocess_exec
    """
    kwargs: dict[str, Any] = {}

    if spec.cwd is not None:
        kwargs["cwd"] = spec.cwd

    # Environment
    if spec.env is not None:
        kwargs["env"] = dict(spec.env)

    # Output goes nowhere unless someone is watching
    kwargs["stdout"] = None if _is_terminal(sys.stdout) else asyncio.subprocess.DEVNULL
    kwargs["stderr"] = None if _is_terminal(sys.stderr) else asyncio.subprocess.DEVNULL

    # Platform-specific isolation
    if IS_WINDOWS:
        # Windows: CREATE_NEW_PROCESS_GROUP
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        # POSIX: start_new_session (equivalent to setsid)
        kwargs["start_new_session"] = True

    return kwargs


class OpenVpnProcHandle:
    """Handle to a running OpenVPN process.

    Create with ``await OpenVpnProcHandle.spawn(spec)``. The handle may be
    shared between tasks; the process and the stdin writer sit behind
    separate locks.

    Example:
        handle = await OpenVpnProcHandle.spawn(command.build())
        try:
            await handle.wait()
        finally:
            await handle.graceful_stop_then_kill(timeout=5.0)
    """

    def __init__(self, process: asyncio.subprocess.Process, stdin: IO[bytes]) -> None:
        self._process = process
        self._process_lock = asyncio.Lock()
        self._stdin: IO[bytes] | None = stdin
        self._stdin_lock = threading.Lock()

    @classmethod
    async def spawn(cls, spec: ProcessSpec) -> "OpenVpnProcHandle":
        """Spawn the process with stdin connected to a fresh pipe.

        Args:
            spec: Process specification

        Returns:
            Handle owning the process and the pipe's write end

        Raises:
            OSError: If the pipe or the process cannot be created
        """
        kwargs = _build_subprocess_kwargs(spec)

        reader, writer = os.pipe()
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=reader,
                **kwargs,
            )
        except BaseException:
            os.close(writer)
            raise
        finally:
            # The child holds its own copy of the read end
            os.close(reader)

        logger.debug(f"Started subprocess pid={process.pid} argv={spec.argv[0]}")
        return cls(process, os.fdopen(writer, "wb", buffering=0))

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def graceful_stop_then_kill(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        """Stop the process gracefully within ``timeout``, otherwise kill it.

        Termination strategy:
        1. Close stdin (OpenVPN shuts itself down on EOF)
        2. Wait up to ``timeout`` for it to exit
        3. If still running, kill it and wait for it to be reaped

        Args:
            timeout: Seconds to allow for a graceful exit

        Raises:
            OSError: If the forced kill fails
        """
        logger.debug("Trying to stop child process gracefully")
        self.stop()

        with anyio.move_on_after(timeout) as scope:
            await self.wait()

        if not scope.cancelled_caught:
            logger.debug("Child process terminated gracefully")
            return

        logger.warning(
            "Child process did not terminate gracefully within timeout, forcing termination"
        )
        await self.kill()

    def take_stdin(self) -> IO[bytes] | None:
        """Take the stdin writer out of the handle.

        Returns:
            The writer on the first call, None afterwards
        """
        with self._stdin_lock:
            writer, self._stdin = self._stdin, None
        if writer is None:
            logger.warning("Tried to close OpenVPN stdin handle twice, this is a bug")
        return writer

    @property
    def has_stdin(self) -> bool:
        """Whether the stdin writer is still held by the handle."""
        with self._stdin_lock:
            return self._stdin is not None

    def stop(self) -> None:
        """Close our end of the stdin pipe, asking OpenVPN to exit."""
        writer = self.take_stdin()
        if writer is not None:
            writer.close()
            logger.debug(f"Closed stdin of pid={self.pid}")

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code.

        asyncio allows any number of concurrent waiters on one process, so
        this does not take the process lock.
        """
        return await self._process.wait()

    async def kill(self) -> int:
        """Kill the process and wait for it to be reaped.

        Returns:
            The exit code

        Raises:
            OSError: If the kill call fails
        """
        async with self._process_lock:
            if self._process.returncode is None:
                logger.warning("Killing OpenVPN process")
                try:
                    self._process.kill()
                except ProcessLookupError:
                    # Exited between the check and the kill
                    logger.debug(f"Subprocess already exited pid={self.pid}")

        returncode = await self._process.wait()
        logger.debug(f"OpenVPN forcefully killed pid={self.pid} returncode={returncode}")
        return returncode

    async def has_exited(self) -> bool:
        """Check without blocking whether the process has exited."""
        async with self._process_lock:
            return self._process.returncode is not None
