"""Custom exceptions for the remote-relay server."""

from typing import Optional


class RemoteRelayError(Exception):
    """Base exception for the remote-relay server."""
    pass


class ConfigurationError(RemoteRelayError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, missing_key: str = ""):
        super().__init__(message)
        self.missing_key = missing_key


class TransportError(RemoteRelayError):
    """Raised when an ssh invocation could not complete.

    This is a local/transport problem, never the remote command's own failure.
    """

    def __init__(self, message: str, command: str = "", stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class ConnectionFailedError(TransportError):
    """Raised when ssh cannot be spawned or cannot reach the remote host."""
    pass


class TransportTimeoutError(TransportError):
    """Raised when a one-shot ssh call exceeds its timeout."""

    def __init__(self, message: str, command: str = "", timeout_ms: int = 0):
        super().__init__(message, command=command)
        self.timeout_ms = timeout_ms


class AbnormalExitError(TransportError):
    """Raised when the ssh process ended without an exit status."""

    def __init__(self, message: str, command: str = "", signal: Optional[int] = None):
        super().__init__(message, command=command)
        self.signal = signal


class SessionLostError(RemoteRelayError):
    """Raised when the tmux session vanished while a command was pending."""

    def __init__(self, session: str):
        super().__init__(
            f"tmux session '{session}' disappeared before the command finished"
        )
        self.session = session


class RemoteCommandError(RemoteRelayError):
    """Raised when a remote command the operation depends on fails."""

    def __init__(self, message: str, exit_code: int = -1, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class EditPreconditionError(RemoteRelayError):
    """Raised when the string to replace is missing or not unique."""

    def __init__(self, message: str, occurrences: int = 0):
        super().__init__(message)
        self.occurrences = occurrences
