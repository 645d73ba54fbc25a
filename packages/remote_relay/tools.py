"""Tool implementations for remote-relay operations.

Each tool validates its request, builds remote commands through the shell
module, runs them through the SessionBridge (remote_bash, remote_cd) or
directly through its connector (everything else), and formats a
ToolResponse. No tool raises: every failure becomes an error response.
"""

import logging
from typing import Annotated, Optional

from pydantic import ValidationError

from . import shell
from .bridge import SessionBridge
from .exceptions import (
    EditPreconditionError,
    RemoteCommandError,
    RemoteRelayError,
    TransportError,
)
from .models import (
    ChangeDirectoryInput,
    EditFileInput,
    ExecuteCommandInput,
    FindFilesInput,
    ListDirectoryInput,
    ReadFileInput,
    SearchContentsInput,
    ToolResponse,
    WriteFileInput,
)

logger = logging.getLogger(__name__)

NOT_SET = "(not set)"
NO_MATCHES = "(no matches)"


def _ok(text: str) -> ToolResponse:
    return ToolResponse(text=text)


def _error(text: str) -> ToolResponse:
    return ToolResponse(text=text, is_error=True)


def _invalid(error: ValidationError) -> ToolResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    )
    return _error(f"Invalid request: {details}")


def _unexpected(tool: str, error: Exception) -> ToolResponse:
    logger.exception(f"{tool} failed unexpectedly")
    return _error(f"Error: {error}")


def _detail(stderr: str, stdout: str = "") -> str:
    return stderr.strip() or stdout.strip() or "no error output"


def count_occurrences(content: str, target: str) -> int:
    """Count every position where target starts, overlapping ones included."""
    count = 0
    start = content.find(target)
    while start != -1:
        count += 1
        start = content.find(target, start + 1)
    return count


def apply_edit(content: str, old_string: str, new_string: str) -> str:
    """Replace the single occurrence of old_string in content.

    Raises:
        EditPreconditionError: If old_string is absent or occurs more than once
    """
    occurrences = count_occurrences(content, old_string)
    if occurrences == 0:
        raise EditPreconditionError("old_string not found in file", occurrences=0)
    if occurrences > 1:
        raise EditPreconditionError(
            f"old_string found {occurrences} times. "
            "Please provide more context to make it unique.",
            occurrences=occurrences
        )
    return content.replace(old_string, new_string, 1)


async def _search_directory(bridge: SessionBridge, path: Optional[str]) -> str:
    if path:
        return await bridge.resolve(path)
    return await bridge.snapshot_directory() or "."


async def remote_bash(
    command: Annotated[str, "The bash command to execute"],
    timeout: Annotated[Optional[int], "Timeout in milliseconds (default: 60000)"] = None
) -> ToolResponse:
    """Execute a command in the persistent tmux session.

    Nonzero exit codes and timeouts are reported in the status line; only
    transport failures and a lost session produce an error response.

    Examples:
        - remote_bash("make -j8")
        - remote_bash("pytest -x", timeout=600000)
    """
    bridge = SessionBridge.get_instance()

    try:
        request = ExecuteCommandInput(command=command, timeout=timeout)
        result = await bridge.run(request.command, request.timeout)
    except ValidationError as e:
        return _invalid(e)
    except RemoteRelayError as e:
        return _error(f"Error executing command: {e}")
    except Exception as e:
        return _unexpected("remote_bash", e)

    if result.timed_out:
        status = f"timed out (exit code: {result.exit_code})"
    elif result.exit_code == 0:
        status = "success"
    else:
        status = f"failed (exit code: {result.exit_code})"

    output = result.stdout or result.stderr or "(no output)"
    return _ok(
        f"Command: {request.command}\n"
        f"Status: {status}\n"
        f"Working directory: {bridge.current_directory or NOT_SET}\n"
        f"\n"
        f"Output:\n{output}"
    )


async def remote_read(
    path: Annotated[str, "Path to the file (absolute or relative to working directory)"],
    offset: Annotated[Optional[int], "Line number to start reading from (1-indexed)"] = None,
    limit: Annotated[Optional[int], "Maximum number of lines to read"] = None
) -> ToolResponse:
    """Read a file with line numbers, optionally a range of lines."""
    bridge = SessionBridge.get_instance()

    try:
        request = ReadFileInput(path=path, offset=offset, limit=limit)
        full_path = await bridge.resolve(request.path)
        result = await bridge.connector.run(
            shell.read_file_command(full_path, request.offset, request.limit)
        )
    except ValidationError as e:
        return _invalid(e)
    except RemoteRelayError as e:
        return _error(f"Error reading file: {e}")
    except Exception as e:
        return _unexpected("remote_read", e)

    if not result.success:
        return _error(f"Error reading file {full_path}: {_detail(result.stderr, result.stdout)}")

    if result.stdout:
        return _ok(result.stdout)
    if request.offset or request.limit:
        return _ok(f"(no lines in requested range of {full_path})")
    return _ok(f"(empty file: {full_path})")


async def remote_write(
    path: Annotated[str, "Path to the file (absolute or relative to working directory)"],
    content: Annotated[str, "Content to write to the file"]
) -> ToolResponse:
    """Write content to a file, replacing whatever was there."""
    bridge = SessionBridge.get_instance()

    try:
        request = WriteFileInput(path=path, content=content)
        full_path = await bridge.resolve(request.path)
        result = await bridge.connector.run_script(
            shell.write_file_command(full_path, request.content)
        )
    except ValidationError as e:
        return _invalid(e)
    except RemoteRelayError as e:
        return _error(f"Error writing file: {e}")
    except Exception as e:
        return _unexpected("remote_write", e)

    if not result.success:
        return _error(f"Error writing file {full_path}: {_detail(result.stderr, result.stdout)}")

    size = len(request.content.encode("utf-8"))
    return _ok(f"Successfully wrote {size} bytes to {full_path}")


async def remote_edit(
    path: Annotated[str, "Path to the file (absolute or relative to working directory)"],
    old_string: Annotated[str, "The exact string to find and replace"],
    new_string: Annotated[str, "The string to replace it with"]
) -> ToolResponse:
    """Replace one exact, unique occurrence of old_string in a file.

    The file is fetched whole, the occurrence count is checked locally and
    the file is rewritten only when old_string occurs exactly once.
    """
    bridge = SessionBridge.get_instance()

    try:
        request = EditFileInput(path=path, old_string=old_string, new_string=new_string)
        full_path = await bridge.resolve(request.path)

        current = await bridge.connector.run(shell.cat_command(full_path))
        if not current.success:
            raise RemoteCommandError(
                f"cannot read {full_path}: {_detail(current.stderr)}",
                exit_code=current.exit_code,
                stderr=current.stderr
            )
        # Writing back a lossy decode would corrupt the file.
        try:
            content = current.strict_stdout()
        except UnicodeDecodeError:
            raise RemoteCommandError(f"{full_path} is not valid UTF-8 text")

        updated = apply_edit(content, request.old_string, request.new_string)

        written = await bridge.connector.run_script(shell.write_file_command(full_path, updated))
        if not written.success:
            raise RemoteCommandError(
                f"cannot write {full_path}: {_detail(written.stderr)}",
                exit_code=written.exit_code,
                stderr=written.stderr
            )
    except ValidationError as e:
        return _invalid(e)
    except EditPreconditionError as e:
        return _error(f"Error: {e}")
    except RemoteRelayError as e:
        return _error(f"Error editing file: {e}")
    except Exception as e:
        return _unexpected("remote_edit", e)

    return _ok(f"Successfully edited {full_path}")


async def remote_glob(
    pattern: Annotated[str, "Filename glob to match (e.g., '*.py')"],
    path: Annotated[Optional[str], "Directory to search in (default: working directory)"] = None
) -> ToolResponse:
    """Find files by name under a directory, sorted, at most 100."""
    bridge = SessionBridge.get_instance()

    try:
        request = FindFilesInput(pattern=pattern, path=path)
        directory = await _search_directory(bridge, request.path)
        result = await bridge.connector.run(shell.find_command(directory, request.pattern))
    except ValidationError as e:
        return _invalid(e)
    except RemoteRelayError as e:
        return _error(f"Error: {e}")
    except Exception as e:
        return _unexpected("remote_glob", e)

    if not result.success:
        return _error(f"Error searching {directory}: {_detail(result.stderr, result.stdout)}")

    files = result.stdout.strip() or NO_MATCHES
    return _ok(f"Files matching '{request.pattern}' in {directory}:\n{files}")


async def remote_grep(
    pattern: Annotated[str, "Regular expression pattern to search for"],
    path: Annotated[Optional[str], "File or directory to search (default: working directory)"] = None,
    include: Annotated[Optional[str], "File pattern to include (e.g., '*.ts')"] = None
) -> ToolResponse:
    """Search file contents recursively, at most 50 matching lines."""
    bridge = SessionBridge.get_instance()

    try:
        request = SearchContentsInput(pattern=pattern, path=path, include=include)
        directory = await _search_directory(bridge, request.path)
        result = await bridge.connector.run(
            shell.grep_command(request.pattern, directory, request.include)
        )
    except ValidationError as e:
        return _invalid(e)
    except RemoteRelayError as e:
        return _error(f"Error: {e}")
    except Exception as e:
        return _unexpected("remote_grep", e)

    matches = result.stdout.strip() or NO_MATCHES
    return _ok(f"Grep results for '{request.pattern}' in {directory}:\n{matches}")


async def remote_cd(
    path: Annotated[str, "Directory path to change to"]
) -> ToolResponse:
    """Change the working directory after verifying it on the remote host.

    On failure the previous working directory is kept.
    """
    bridge = SessionBridge.get_instance()

    try:
        request = ChangeDirectoryInput(path=path)
        directory = await bridge.change_directory(request.path)
    except ValidationError as e:
        return _invalid(e)
    except RemoteCommandError as e:
        detail = f" ({e.stderr.strip()})" if e.stderr.strip() else ""
        return _error(f"Error: {e}{detail}")
    except TransportError as e:
        return _error(f"Error: {e}")
    except Exception as e:
        return _unexpected("remote_cd", e)

    return _ok(f"Working directory changed to: {directory}")


async def remote_pwd() -> ToolResponse:
    """Show the current working directory."""
    bridge = SessionBridge.get_instance()
    directory = await bridge.snapshot_directory()
    return _ok(
        f"Current working directory: {directory or '(not set - use remote_cd to set)'}"
    )


async def remote_ls(
    path: Annotated[Optional[str], "Directory to list (default: working directory)"] = None,
    all: Annotated[bool, "Include hidden files"] = False,
    long: Annotated[bool, "Use long listing format"] = False
) -> ToolResponse:
    """List a directory."""
    bridge = SessionBridge.get_instance()

    try:
        request = ListDirectoryInput(path=path, all=all, long=long)
        directory = await _search_directory(bridge, request.path)
        result = await bridge.connector.run(
            shell.list_command(directory, show_all=request.all, long_format=request.long)
        )
    except ValidationError as e:
        return _invalid(e)
    except RemoteRelayError as e:
        return _error(f"Error: {e}")
    except Exception as e:
        return _unexpected("remote_ls", e)

    if not result.success:
        return _error(f"Error listing {directory}: {_detail(result.stderr, result.stdout)}")

    return _ok(f"Contents of {directory}:\n{result.stdout}")


async def remote_status() -> ToolResponse:
    """Report the remote target, session and whether the pooled connection is up."""
    bridge = SessionBridge.get_instance()
    config = bridge.config

    connected = await bridge.connector.check_master()
    target = config.host
    if config.user:
        target = f"{config.user}@{target}"
    if config.port:
        target = f"{target}:{config.port}"

    return _ok(
        f"Host: {target}\n"
        f"tmux session: {config.tmux_session}\n"
        f"Working directory: {bridge.current_directory or NOT_SET}\n"
        f"Pooled connection: {'up' if connected else 'down'}"
    )
