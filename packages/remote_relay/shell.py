"""Remote shell command construction.

Every remote command the server sends is built here. Dynamic values are
interpolated only through quote()/quote_path(), which wrap the value in
single quotes so the remote shell performs no word splitting, globbing,
parameter expansion or command substitution on it.
"""

import secrets
from typing import Optional

HEREDOC_PREFIX = "REMOTERELAY_EOF_"
SESSION_LOST_MARKER = "__REMOTE_RELAY_SESSION_LOST__"

# Remote command that runs a script read from its standard input.
STDIN_SCRIPT_COMMAND = "sh -s"

FIND_LIMIT = 100
GREP_LIMIT = 50


def quote(value: str) -> str:
    """Quote a string for a POSIX shell.

    Each embedded single quote closes the quoted string, adds an escaped
    literal quote and reopens it: it's -> 'it'\\''s'.
    """
    return "'" + value.replace("'", "'\\''") + "'"


def quote_path(path: str) -> str:
    """Quote a path, keeping a leading ~ as the remote user's home.

    ~ and ~/rest become "$HOME" and "$HOME"/'rest'. Anything else,
    including ~user forms, is quoted literally.
    """
    if path == "~":
        return '"$HOME"'
    if path.startswith("~/"):
        rest = path[2:]
        return '"$HOME"/' + quote(rest) if rest else '"$HOME"/'
    return quote(path)


def heredoc_delimiter(content: str) -> str:
    """Pick a here-document terminator that no line of content equals."""
    lines = set(content.splitlines())
    while True:
        delimiter = HEREDOC_PREFIX + secrets.token_hex(8)
        if delimiter not in lines:
            return delimiter


# Session commands

def ensure_session_command(session: str) -> str:
    return (
        f"tmux has-session -t {quote(session)} 2>/dev/null"
        f" || tmux new-session -d -s {quote(session)}"
    )


def with_directory(command: str, directory: Optional[str]) -> str:
    """Prefix a command with a cd into directory when one is set."""
    if not directory:
        return command
    return f"cd -- {quote_path(directory)} && {command}"


def capture_command(
    command: str,
    output_path: str,
    exit_path: str,
    directory: Optional[str] = None,
) -> str:
    """Wrap a command so its output and exit status land in files.

    The command reaches the session shell as one quoted word and is run
    with eval, so trailing separators, comments, unbalanced syntax and
    history characters cannot break the wrapper. eval runs in the session
    shell itself, so cd and exports persist.

    The status is written after the group finishes whether or not the
    command failed; its presence is the only completion signal.
    """
    body = with_directory(f"eval {quote(command)}", directory)
    return (
        f"{{ {body} ; }} > {quote(output_path)} 2>&1;"
        f" echo $? > {quote(exit_path)}"
    )


def send_keys_command(session: str, line: str) -> str:
    """Type a line into the session's active pane and press Enter.

    -l sends the text literally so words like Enter inside the command are
    not taken as key names.
    """
    return (
        f"tmux send-keys -t {quote(session)} -l {quote(line)}"
        f" && tmux send-keys -t {quote(session)} Enter"
    )


def poll_command(exit_path: str, session: str) -> str:
    """Print the exit status once written, or a marker if the session is gone."""
    return (
        f"if [ -f {quote(exit_path)} ]; then cat {quote(exit_path)};"
        f" elif ! tmux has-session -t {quote(session)} 2>/dev/null;"
        f" then echo {SESSION_LOST_MARKER}; fi"
    )


def fetch_command(path: str) -> str:
    return f"cat {quote(path)} 2>/dev/null"


def remove_command(*paths: str) -> str:
    return "rm -f " + " ".join(quote(p) for p in paths)


# File commands

def cat_command(path: str) -> str:
    return f"cat -- {quote_path(path)}"


def read_file_command(path: str, offset: Optional[int] = None, limit: Optional[int] = None) -> str:
    """Line-numbered read of a whole file or of a 1-indexed line range.

    Numbering comes from cat -n before the range is cut, so each line keeps
    its real line number.
    """
    if offset is None and limit is None:
        return f"cat -n -- {quote_path(path)}"

    start = offset or 1
    end = str(start + limit - 1) if limit else "$"
    quoted = quote_path(path)
    return (
        f"if [ -f {quoted} ] && [ -r {quoted} ];"
        f" then cat -n -- {quoted} | sed -n '{start},{end}p';"
        f" else echo {quote('not a readable file: ' + path)} >&2; exit 1; fi"
    )


def write_file_command(path: str, content: str) -> str:
    """Overwrite a file with exactly content using a here-document.

    The here-document always ends the body with a newline; head -c trims
    the file back to the byte length of content. The result is a script
    for STDIN_SCRIPT_COMMAND, not a command argument, so file size is not
    bounded by the argument length limit.
    """
    delimiter = heredoc_delimiter(content)
    size = len(content.encode("utf-8"))
    return (
        f"head -c {size} > {quote_path(path)} << '{delimiter}'\n"
        f"{content}\n"
        f"{delimiter}"
    )


# Navigation and search commands

def cd_probe_command(path: str) -> str:
    return f"cd -- {quote_path(path)} && pwd -P"


def list_command(directory: str, show_all: bool = False, long_format: bool = False) -> str:
    flags = ""
    if show_all:
        flags += "a"
    if long_format:
        flags += "l"
    flag_arg = f"-{flags} " if flags else ""
    return f"ls {flag_arg}-- {quote_path(directory)}"


def find_command(directory: str, pattern: str, limit: int = FIND_LIMIT) -> str:
    return (
        f"cd -- {quote_path(directory)}"
        f" && find . -type f -name {quote(pattern)} 2>/dev/null"
        f" | LC_ALL=C sort | head -n {limit}"
    )


def grep_command(
    pattern: str,
    directory: str,
    include: Optional[str] = None,
    limit: int = GREP_LIMIT,
) -> str:
    include_arg = f"--include={quote(include)} " if include else ""
    return (
        f"grep -rn {include_arg}-e {quote(pattern)} -- {quote_path(directory)}"
        f" 2>/dev/null | head -n {limit}"
    )
