"""RemoteRelay MCP Server.

Exposes remote development tools (command execution, file read/write/edit,
search and directory navigation) that run on a single remote host over a
multiplexed ssh connection.

Free-form commands run inside a persistent tmux session on the remote host;
file and search tools use one-shot ssh calls.
"""

__version__ = "1.0.0"
