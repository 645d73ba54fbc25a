"""Configuration for the remote-relay server."""

import os
import re
import shlex
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

SESSION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def default_control_path() -> str:
    """Multiplexing socket path, one per (user, host, port)."""
    return str(Path(tempfile.gettempdir()) / "remoterelay-ssh-%r@%h:%p")


@dataclass(frozen=True)
class RelayConfig:
    """The Remote Target: fixed for the lifetime of the process."""
    # Remote host
    host: str = "quarry"
    user: Optional[str] = None
    port: Optional[int] = None

    # Persistent session
    tmux_session: str = "claude-relay"

    # Connection pooling
    control_path: str = field(default_factory=default_control_path)
    control_persist: int = 600
    ssh_binary: str = "ssh"
    ssh_options: tuple = ()

    # Timing (milliseconds)
    command_timeout_ms: int = 60000
    poll_interval_ms: int = 500

    # Remote directory holding capture files
    remote_tmpdir: str = "/tmp"

    # Server identification
    server_name: str = "RemoteRelay"
    log_level: str = "INFO"


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}",
            missing_key=name
        )


def get_config() -> RelayConfig:
    """Load configuration from environment.

    Optional environment variables:
        REMOTE_RELAY_HOST: ssh destination (default: quarry)
        REMOTE_RELAY_USER: Login user passed to ssh -l
        REMOTE_RELAY_PORT: Port passed to ssh -p
        REMOTE_RELAY_TMUX_SESSION: Persistent session name (default: claude-relay)
        REMOTE_RELAY_CONTROL_PATH: ssh ControlPath (default: in the temp dir)
        REMOTE_RELAY_CONTROL_PERSIST: Idle seconds before the master exits (default: 600)
        REMOTE_RELAY_SSH_BINARY: ssh client executable (default: ssh)
        REMOTE_RELAY_SSH_OPTIONS: Extra ssh arguments, shell-split
        REMOTE_RELAY_COMMAND_TIMEOUT: Default timeout in ms (default: 60000)
        REMOTE_RELAY_POLL_INTERVAL: Session poll interval in ms (default: 500)
        REMOTE_RELAY_REMOTE_TMPDIR: Remote directory for capture files (default: /tmp)
        REMOTE_RELAY_LOG_LEVEL: Logging level (default: INFO)
        REMOTE_RELAY_SERVER_NAME: Server name (default: RemoteRelay)

    Returns:
        RelayConfig with loaded values

    Raises:
        ConfigurationError: If a value cannot be parsed or is out of range
    """
    # Load .env file if it exists
    env_file = Path(__file__).parent / ".env"
    if env_file.exists():
        load_dotenv(env_file)

    # Also try parent directory .env
    parent_env = Path(__file__).parent.parent / ".env"
    if parent_env.exists():
        load_dotenv(parent_env)

    try:
        ssh_options = tuple(shlex.split(os.getenv("REMOTE_RELAY_SSH_OPTIONS", "")))
    except ValueError as e:
        raise ConfigurationError(
            f"REMOTE_RELAY_SSH_OPTIONS could not be parsed: {e}",
            missing_key="REMOTE_RELAY_SSH_OPTIONS"
        )

    config = RelayConfig(
        host=os.getenv("REMOTE_RELAY_HOST", "quarry"),
        user=os.getenv("REMOTE_RELAY_USER") or None,
        port=_int_env("REMOTE_RELAY_PORT", None),
        tmux_session=os.getenv("REMOTE_RELAY_TMUX_SESSION", "claude-relay"),
        control_path=os.getenv("REMOTE_RELAY_CONTROL_PATH") or default_control_path(),
        control_persist=_int_env("REMOTE_RELAY_CONTROL_PERSIST", 600),
        ssh_binary=os.getenv("REMOTE_RELAY_SSH_BINARY", "ssh"),
        ssh_options=ssh_options,
        command_timeout_ms=_int_env("REMOTE_RELAY_COMMAND_TIMEOUT", 60000),
        poll_interval_ms=_int_env("REMOTE_RELAY_POLL_INTERVAL", 500),
        remote_tmpdir=os.getenv("REMOTE_RELAY_REMOTE_TMPDIR", "/tmp"),
        server_name=os.getenv("REMOTE_RELAY_SERVER_NAME", "RemoteRelay"),
        log_level=os.getenv("REMOTE_RELAY_LOG_LEVEL", "INFO").upper(),
    )
    validate_config(config)
    return config


def validate_config(config: RelayConfig) -> None:
    """Validate configuration values.

    Args:
        config: The configuration to validate

    Raises:
        ConfigurationError: If a value is unusable
    """
    if not config.host.strip():
        raise ConfigurationError(
            "REMOTE_RELAY_HOST must not be empty",
            missing_key="REMOTE_RELAY_HOST"
        )

    # The session name is interpolated into tmux target specs.
    if not SESSION_NAME_PATTERN.match(config.tmux_session):
        raise ConfigurationError(
            f"REMOTE_RELAY_TMUX_SESSION must match {SESSION_NAME_PATTERN.pattern}, "
            f"got {config.tmux_session!r}",
            missing_key="REMOTE_RELAY_TMUX_SESSION"
        )

    if config.port is not None and not 0 < config.port < 65536:
        raise ConfigurationError(
            f"REMOTE_RELAY_PORT out of range: {config.port}",
            missing_key="REMOTE_RELAY_PORT"
        )

    for key, value in (
        ("REMOTE_RELAY_COMMAND_TIMEOUT", config.command_timeout_ms),
        ("REMOTE_RELAY_POLL_INTERVAL", config.poll_interval_ms),
        ("REMOTE_RELAY_CONTROL_PERSIST", config.control_persist),
    ):
        if value <= 0:
            raise ConfigurationError(f"{key} must be positive, got {value}", missing_key=key)

    if not config.remote_tmpdir.startswith("/"):
        raise ConfigurationError(
            f"REMOTE_RELAY_REMOTE_TMPDIR must be absolute, got {config.remote_tmpdir!r}",
            missing_key="REMOTE_RELAY_REMOTE_TMPDIR"
        )

    if config.log_level not in LOG_LEVELS:
        raise ConfigurationError(
            f"REMOTE_RELAY_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, "
            f"got {config.log_level!r}",
            missing_key="REMOTE_RELAY_LOG_LEVEL"
        )
