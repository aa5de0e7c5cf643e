"""Command-line entrypoint."""

from mcp_core_server.cli.main import main
from mcp_core_server.cli.parser import parse_arguments

__all__ = ["main", "parse_arguments"]
