"""Run the RemoteRelay MCP server: python -m remote_relay"""

from .server import main

main()
