#!/usr/bin/env python3
"""RemoteRelay MCP Server.

Provides MCP tools for remote development on a single host: command
execution in a persistent tmux session, file read/write/edit, file and
content search, directory listing and a tracked working directory.

Usage:
    python -m remote_relay      # Run via module
    remote-relay                # Console script

Environment Variables:
    REMOTE_RELAY_HOST: ssh destination (default: quarry)
    REMOTE_RELAY_TMUX_SESSION: Persistent session name (default: claude-relay)
    REMOTE_RELAY_LOG_LEVEL: Logging level (default: INFO)
    See config.get_config() for the full list.
"""

import logging
import sys
from typing import Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations

from .bridge import SessionBridge
from .config import RelayConfig, get_config, ConfigurationError
from .models import ToolResponse
from .tools import (
    remote_bash,
    remote_read,
    remote_write,
    remote_edit,
    remote_glob,
    remote_grep,
    remote_cd,
    remote_pwd,
    remote_ls,
    remote_status,
)

logger = logging.getLogger(__name__)


def _respond(response: ToolResponse) -> str:
    """Return the text, or raise so the protocol flags the call as an error."""
    if response.is_error:
        raise ToolError(response.text)
    return response.text


def create_server(config: Optional[RelayConfig] = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        config: Configuration object. If None, loads from environment.

    Returns:
        Configured FastMCP server instance
    """
    config = config or get_config()
    SessionBridge.get_instance(config)

    mcp = FastMCP(
        name=config.server_name,
        instructions=(
            f"Remote development tools for host '{config.host}'. "
            "Set a working directory with remote_cd; relative paths resolve against it."
        ),
    )

    @mcp.tool(
        name="remote_bash",
        annotations=ToolAnnotations(
            title="Execute Remote Command",
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=True,
        )
    )
    async def bash_tool(command: str, timeout: Optional[int] = None) -> str:
        """Execute a bash command on the remote host in a persistent tmux session.

        Args:
            command: The bash command to execute
            timeout: Timeout in milliseconds (default: 60000)
        """
        return _respond(await remote_bash(command, timeout))

    @mcp.tool(
        name="remote_read",
        annotations=ToolAnnotations(
            title="Read Remote File",
            readOnlyHint=True,
            idempotentHint=True,
        )
    )
    async def read_tool(
        path: str,
        offset: Optional[int] = None,
        limit: Optional[int] = None
    ) -> str:
        """Read the contents of a file on the remote host with line numbers.

        Args:
            path: Path to the file (absolute or relative to working directory)
            offset: Line number to start reading from (1-indexed)
            limit: Maximum number of lines to read
        """
        return _respond(await remote_read(path, offset, limit))

    @mcp.tool(
        name="remote_write",
        annotations=ToolAnnotations(
            title="Write Remote File",
            destructiveHint=True,
            idempotentHint=True,
        )
    )
    async def write_tool(path: str, content: str) -> str:
        """Write content to a file on the remote host (overwrites existing).

        Args:
            path: Path to the file (absolute or relative to working directory)
            content: Content to write to the file
        """
        return _respond(await remote_write(path, content))

    @mcp.tool(
        name="remote_edit",
        annotations=ToolAnnotations(
            title="Edit Remote File",
            destructiveHint=True,
            idempotentHint=False,
        )
    )
    async def edit_tool(path: str, old_string: str, new_string: str) -> str:
        """Edit a file on the remote host by replacing a unique string.

        old_string must occur exactly once in the file.

        Args:
            path: Path to the file (absolute or relative to working directory)
            old_string: The exact string to find and replace
            new_string: The string to replace it with
        """
        return _respond(await remote_edit(path, old_string, new_string))

    @mcp.tool(
        name="remote_glob",
        annotations=ToolAnnotations(
            title="Find Remote Files",
            readOnlyHint=True,
            idempotentHint=True,
        )
    )
    async def glob_tool(pattern: str, path: Optional[str] = None) -> str:
        """Find files matching a filename glob on the remote host (max 100, sorted).

        Args:
            pattern: Filename glob to match (e.g., '*.py')
            path: Directory to search in (default: working directory)
        """
        return _respond(await remote_glob(pattern, path))

    @mcp.tool(
        name="remote_grep",
        annotations=ToolAnnotations(
            title="Search Remote Files",
            readOnlyHint=True,
            idempotentHint=True,
        )
    )
    async def grep_tool(
        pattern: str,
        path: Optional[str] = None,
        include: Optional[str] = None
    ) -> str:
        """Search for a pattern in files on the remote host (max 50 lines).

        Args:
            pattern: Regular expression pattern to search for
            path: File or directory to search (default: working directory)
            include: File pattern to include (e.g., '*.ts')
        """
        return _respond(await remote_grep(pattern, path, include))

    @mcp.tool(
        name="remote_cd",
        annotations=ToolAnnotations(
            title="Change Remote Directory",
            destructiveHint=False,
            idempotentHint=True,
        )
    )
    async def cd_tool(path: str) -> str:
        """Change the current working directory on the remote host.

        Args:
            path: Directory path to change to
        """
        return _respond(await remote_cd(path))

    @mcp.tool(
        name="remote_pwd",
        annotations=ToolAnnotations(
            title="Remote Working Directory",
            readOnlyHint=True,
            idempotentHint=True,
        )
    )
    async def pwd_tool() -> str:
        """Show the current working directory on the remote host."""
        return _respond(await remote_pwd())

    @mcp.tool(
        name="remote_ls",
        annotations=ToolAnnotations(
            title="List Remote Directory",
            readOnlyHint=True,
            idempotentHint=True,
        )
    )
    async def ls_tool(
        path: Optional[str] = None,
        all: bool = False,
        long: bool = False
    ) -> str:
        """List contents of a directory on the remote host.

        Args:
            path: Directory to list (default: working directory)
            all: Include hidden files
            long: Use long listing format
        """
        return _respond(await remote_ls(path, all, long))

    @mcp.tool(
        name="remote_status",
        annotations=ToolAnnotations(
            title="Connection Status",
            readOnlyHint=True,
            idempotentHint=True,
        )
    )
    async def status_tool() -> str:
        """Show the remote host, tmux session, working directory and connection state."""
        return _respond(await remote_status())

    return mcp


def main():
    """Run the MCP server over stdio."""
    try:
        config = get_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # stdout carries the protocol; logs go to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    mcp = create_server(config)
    logger.info(
        f"RemoteRelay MCP server started (host={config.host}, "
        f"session={config.tmux_session})"
    )
    mcp.run()


if __name__ == "__main__":
    main()
