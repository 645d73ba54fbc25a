"""Command execution inside the persistent remote tmux session.

The only way into the session is typing keystrokes, which gives no
acknowledgement and no exit status. Each command is therefore wrapped so
that its combined output goes to a capture file and its exit status to a
second file, and the bridge polls for the status file over one-shot ssh
calls until it appears or the deadline passes.

The bridge also owns the Working Directory State: the remote directory that
relative paths resolve against and that bridged commands start in.
"""

import asyncio
import itertools
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from . import shell
from .config import RelayConfig, get_config
from .connector import SSHConnector
from .exceptions import RemoteCommandError, SessionLostError, TransportError

logger = logging.getLogger(__name__)

# Matches coreutils timeout(1).
TIMEOUT_EXIT_CODE = 124


class ExecutionState(str, Enum):
    """Bridged command states."""
    PENDING = "pending"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    SESSION_LOST = "session_lost"


@dataclass
class InFlightExecution:
    """Tracks one bridged command from delivery to cleanup."""
    command: str
    output_path: str
    exit_path: str
    deadline: float
    state: ExecutionState = ExecutionState.PENDING
    exit_code: Optional[int] = None
    polls: int = 0

    def advance(self, probe_output: str) -> ExecutionState:
        """Apply one poll result.

        An empty or unparseable status means the file is absent or still
        being written; the execution stays pending.
        """
        text = probe_output.strip()
        if text == shell.SESSION_LOST_MARKER:
            self.state = ExecutionState.SESSION_LOST
        elif text:
            try:
                self.exit_code = int(text.splitlines()[-1])
                self.state = ExecutionState.COMPLETED
            except ValueError:
                pass
        return self.state


@dataclass
class BridgeResult:
    """Outcome of a bridged command."""
    state: ExecutionState
    stdout: str
    stderr: str
    exit_code: int

    @property
    def timed_out(self) -> bool:
        return self.state is ExecutionState.TIMED_OUT


def resolve_path(path: str, directory: Optional[str]) -> str:
    """Resolve a user-supplied path against the working directory.

    Absolute and home-relative (~) paths are returned unchanged. Relative
    paths are joined under directory when it is set, and otherwise left
    for the remote shell to resolve.
    """
    if path.startswith("/") or path == "~" or path.startswith("~/"):
        return path
    if not directory:
        return path
    return f"{directory.rstrip('/')}/{path}"


class SessionBridge:
    """Singleton runner for commands in the persistent session.

    The Working Directory State lives here and is only replaced by
    change_directory() after the remote host confirmed the directory.
    """

    _instance: Optional["SessionBridge"] = None

    def __init__(
        self,
        config: Optional[RelayConfig] = None,
        connector: Optional[SSHConnector] = None,
    ):
        """Initialize the bridge.

        Args:
            config: Configuration object. If None, loads from environment.
            connector: Transport to use. If None, an SSHConnector is created.
        """
        self._config = config or get_config()
        self._connector = connector or SSHConnector(self._config)
        self._current_directory: Optional[str] = None
        self._directory_lock = asyncio.Lock()
        self._sequence = itertools.count(1)

    @classmethod
    def get_instance(
        cls,
        config: Optional[RelayConfig] = None,
        connector: Optional[SSHConnector] = None,
    ) -> "SessionBridge":
        """Get the singleton instance, creating it on first use."""
        if cls._instance is None:
            cls._instance = cls(config, connector)
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset the singleton instance (for testing)."""
        cls._instance = None

    @property
    def config(self) -> RelayConfig:
        return self._config

    @property
    def connector(self) -> SSHConnector:
        return self._connector

    @property
    def current_directory(self) -> Optional[str]:
        """Get the current remote working directory, or None if unset."""
        return self._current_directory

    async def snapshot_directory(self) -> Optional[str]:
        """Read the working directory without racing a directory change."""
        async with self._directory_lock:
            return self._current_directory

    async def resolve(self, path: str) -> str:
        """Resolve path against a consistent snapshot of the working directory."""
        return resolve_path(path, await self.snapshot_directory())

    async def change_directory(self, path: str) -> str:
        """Verify a directory on the remote host and make it current.

        Args:
            path: Absolute, home-relative or working-directory-relative path

        Returns:
            The canonical absolute path now held as the working directory

        Raises:
            RemoteCommandError: If the directory does not exist or is not
                accessible. The working directory is left unchanged.
            TransportError: If the probe itself could not run
        """
        async with self._directory_lock:
            target = resolve_path(path, self._current_directory)
            result = await self._connector.run(shell.cd_probe_command(target))

            lines = result.stdout.strip().splitlines()
            resolved = lines[-1] if lines else ""
            if not result.success or not resolved.startswith("/"):
                raise RemoteCommandError(
                    f"Directory does not exist or is not accessible: {path}",
                    exit_code=result.exit_code,
                    stderr=result.stderr
                )

            previous = self._current_directory
            self._current_directory = resolved
            logger.info(f"Working directory changed: {previous} -> {resolved}")
            return resolved

    def _allocate(self, command: str, timeout_ms: int) -> InFlightExecution:
        token = f"{time.time_ns()}-{os.getpid()}-{next(self._sequence)}"
        base = self._config.remote_tmpdir.rstrip("/")
        return InFlightExecution(
            command=command,
            output_path=f"{base}/remote-relay-output-{token}",
            exit_path=f"{base}/remote-relay-exit-{token}",
            deadline=asyncio.get_running_loop().time() + timeout_ms / 1000,
        )

    async def run(self, command: str, timeout_ms: Optional[int] = None) -> BridgeResult:
        """Run a command in the session and wait for it to finish.

        Args:
            command: Shell command, run as typed in the session
            timeout_ms: How long to wait for completion (default from config)

        Returns:
            BridgeResult. On completion stdout holds the combined output and
            exit_code the command's status. On timeout exit_code is 124 and
            the command may still be running in the session.

        Raises:
            SessionLostError: If the session disappeared while waiting
            TransportError: If any ssh call fails; not retried
        """
        timeout_ms = timeout_ms or self._config.command_timeout_ms
        session = self._config.tmux_session

        await self._connector.run(shell.ensure_session_command(session))

        directory = await self.snapshot_directory()
        execution = self._allocate(command, timeout_ms)
        wrapped = shell.capture_command(
            command, execution.output_path, execution.exit_path, directory
        )

        await self._connector.run(shell.send_keys_command(session, wrapped))
        logger.debug(f"Sent to session {session} (cwd {directory}): {command}")

        await self._wait(execution)

        if execution.state is ExecutionState.COMPLETED:
            output = await self._connector.run(shell.fetch_command(execution.output_path))
            await self._cleanup(execution)
            logger.info(
                f"Command finished with exit code {execution.exit_code} "
                f"after {execution.polls} polls"
            )
            return BridgeResult(
                state=ExecutionState.COMPLETED,
                stdout=output.stdout,
                stderr="",
                exit_code=execution.exit_code,
            )

        await self._cleanup(execution)

        if execution.state is ExecutionState.SESSION_LOST:
            logger.warning(f"Session {session} lost while running: {command}")
            raise SessionLostError(session)

        logger.warning(f"Command timed out after {timeout_ms}ms: {command}")
        return BridgeResult(
            state=ExecutionState.TIMED_OUT,
            stdout="",
            stderr=(
                f"Command timed out after {timeout_ms}ms; it may still be running "
                f"in tmux session '{session}'"
            ),
            exit_code=TIMEOUT_EXIT_CODE,
        )

    async def _wait(self, execution: InFlightExecution):
        loop = asyncio.get_running_loop()
        interval = self._config.poll_interval_ms / 1000
        probe = shell.poll_command(execution.exit_path, self._config.tmux_session)

        while execution.state is ExecutionState.PENDING:
            if loop.time() >= execution.deadline:
                execution.state = ExecutionState.TIMED_OUT
                break
            result = await self._connector.run(probe)
            execution.polls += 1
            if execution.advance(result.stdout) is ExecutionState.PENDING:
                await asyncio.sleep(interval)

    async def _cleanup(self, execution: InFlightExecution):
        """Remove capture files. Failures are logged, never raised."""
        try:
            await self._connector.run(
                shell.remove_command(execution.output_path, execution.exit_path)
            )
        except TransportError as e:
            logger.warning(f"Failed to remove capture files: {e}")
