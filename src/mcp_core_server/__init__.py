"""
MCP Core Server - startup guarantees for a long-running local service

Provides a single-instance lock that supersedes stale or running
predecessors, and an HTTPS client factory that pins one self-signed
certificate with clock skew tolerant verification.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp_core_server.core.version import __version__

__all__ = ["__version__", "main"]

if TYPE_CHECKING:
    from mcp_core_server.cli.main import main


def __getattr__(name: str) -> Any:
    if name == "main":
        from mcp_core_server.cli.main import main

        return main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
