"""One-shot remote command execution over a multiplexed ssh connection.

Every call spawns the local ssh client with ControlMaster=auto, so the first
call opens a master connection keyed by (user, host, port) and later calls
reuse it until it has been idle for ControlPersist seconds.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from . import shell
from .config import RelayConfig
from .exceptions import (
    AbnormalExitError,
    ConnectionFailedError,
    TransportTimeoutError,
)

logger = logging.getLogger(__name__)

# ssh reserves this status for its own errors (connection refused,
# authentication failure, unknown host).
SSH_ERROR_STATUS = 255


@dataclass
class CommandResult:
    """Captured result of a remote command.

    stdout is decoded leniently; stdout_bytes keeps the raw output when the
    result came from a real process.
    """
    stdout: str
    stderr: str
    exit_code: int
    stdout_bytes: Optional[bytes] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def strict_stdout(self) -> str:
        """Decode stdout as UTF-8, raising UnicodeDecodeError on invalid bytes."""
        if self.stdout_bytes is None:
            return self.stdout
        return self.stdout_bytes.decode("utf-8")


class SSHConnector:
    """Runs remote commands through the local ssh client.

    Holds no state besides the configuration; the pooled connection itself
    is owned by ssh. Calls may run concurrently.
    """

    def __init__(self, config: RelayConfig):
        self.config = config

    @property
    def destination(self) -> str:
        return self.config.host

    def ssh_args(self, *options: str) -> list[str]:
        """Build the ssh argument vector up to and including the destination.

        options are placed just before the destination.
        """
        args = [
            self.config.ssh_binary,
            "-o", f"ControlPath={self.config.control_path}",
            "-o", "ControlMaster=auto",
            "-o", f"ControlPersist={self.config.control_persist}",
        ]
        if self.config.user:
            args += ["-l", self.config.user]
        if self.config.port:
            args += ["-p", str(self.config.port)]
        args += list(self.config.ssh_options)
        args += list(options)
        args.append(self.destination)
        return args

    async def _spawn(
        self,
        args: list[str],
        command: str,
        stdin: int = asyncio.subprocess.DEVNULL,
    ) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *args,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ConnectionFailedError(
                f"Failed to start {self.config.ssh_binary}: {e}",
                command=command
            )

    async def run(
        self,
        command: str,
        timeout_ms: Optional[int] = None,
        input_data: Optional[bytes] = None,
    ) -> CommandResult:
        """Execute a command on the remote host.

        Args:
            command: Fully formed, already quoted remote command
            timeout_ms: Timeout in milliseconds (default from config)
            input_data: Bytes fed to the remote command's stdin (default: none)

        Returns:
            CommandResult with stdout, stderr and the remote exit code

        Raises:
            ConnectionFailedError: If ssh cannot start or reach the host
            TransportTimeoutError: If the call exceeds its timeout
            AbnormalExitError: If ssh was terminated by a signal
        """
        timeout_ms = timeout_ms or self.config.command_timeout_ms
        logger.debug(f"ssh {self.destination}: {command}")

        stdin = asyncio.subprocess.DEVNULL if input_data is None else asyncio.subprocess.PIPE
        process = await self._spawn([*self.ssh_args(), command], command, stdin)
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(input_data),
                timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            raise TransportTimeoutError(
                f"ssh command timed out after {timeout_ms}ms",
                command=command,
                timeout_ms=timeout_ms
            )

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        returncode = process.returncode

        if returncode is None or returncode < 0:
            signal = -returncode if returncode is not None else None
            raise AbnormalExitError(
                f"ssh terminated without an exit status (signal {signal})",
                command=command,
                signal=signal
            )

        if returncode == SSH_ERROR_STATUS:
            raise ConnectionFailedError(
                f"ssh to {self.destination} failed: {stderr.strip() or 'exit status 255'}",
                command=command,
                stderr=stderr
            )

        return CommandResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=returncode,
            stdout_bytes=stdout_bytes
        )

    async def run_script(self, script: str, timeout_ms: Optional[int] = None) -> CommandResult:
        """Execute a shell script sent on stdin rather than as an argument.

        Used for scripts that carry file content, which may be larger than
        the local argument length limit.
        """
        return await self.run(
            shell.STDIN_SCRIPT_COMMAND,
            timeout_ms,
            input_data=script.encode("utf-8")
        )

    async def check_master(self) -> bool:
        """Report whether the pooled master connection is running."""
        args = self.ssh_args("-O", "check")
        try:
            process = await self._spawn(args, "-O check")
        except ConnectionFailedError as e:
            logger.debug(f"master check failed: {e}")
            return False
        try:
            await asyncio.wait_for(process.communicate(), timeout=10.0)
        except asyncio.TimeoutError:
            await self._kill(process)
            return False
        return process.returncode == 0

    async def _kill(self, process: asyncio.subprocess.Process):
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
