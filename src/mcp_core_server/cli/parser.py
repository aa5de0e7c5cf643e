"""CLI argument parsing."""

import argparse

from mcp_core_server.core.version import __version__


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        prog="mcp-core-server",
        description="MCP Core Server - single-instance startup with pinned companion transport",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start, replacing any running instance
  mcp-core-server

  # Refuse to start if another instance is running
  mcp-core-server --no-kill-existing

  # Check a companion process that serves a self-signed certificate
  mcp-core-server --certificate ./companion.pem --probe-url https://127.0.0.1:9910/health

  # JSON structured logging
  mcp-core-server --log-format json
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--no-kill-existing",
        action="store_true",
        help="Exit instead of terminating an already running instance",
    )
    parser.add_argument(
        "--lock-file",
        metavar="PATH",
        help="Lock file path (default: $MCP_CORE_SERVER_LOCK_FILE or <tempdir>/matlab-mcp-core-server.lock)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log output format (default: text)",
    )
    parser.add_argument(
        "--certificate",
        metavar="PEM_FILE",
        help="PEM certificate the companion process serves",
    )
    parser.add_argument(
        "--probe-url",
        metavar="URL",
        help="HTTPS URL to request once the lock is held (requires --certificate)",
    )

    args = parser.parse_args(argv)
    if args.probe_url and not args.certificate:
        parser.error("--probe-url requires --certificate")
    return args
