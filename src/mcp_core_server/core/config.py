"""Configuration dataclasses for MCP Core Server.

These dataclasses centralize all configuration options for type safety
and easy testing. They can be created from command-line arguments or
used directly in code.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path


@dataclass
class LockConfig:
    """Configuration for the single-instance lock.

    Attributes:
        lock_file: Explicit lock file path (default: None = temp dir + fixed name)
        kill_existing: Terminate a running instance instead of refusing to start (default: True)
        poll_attempts: Liveness checks after a kill request (default: 10)
        poll_interval_seconds: Pause between liveness checks (default: 0.1)
        reclaim_unconfirmed: Reclaim the lock even if the old owner outlives the poll window (default: True)
    """

    lock_file: Path | None = None
    kill_existing: bool = True
    poll_attempts: int = 10
    poll_interval_seconds: float = 0.1
    reclaim_unconfirmed: bool = True


@dataclass
class TransportConfig:
    """Configuration for the pinned-certificate HTTPS client.

    Attributes:
        clock_skew_tolerance_hours: Allowed client/server clock disagreement (default: 24)
        minimum_tls_version: Lowest protocol version offered (default: "TLSv1_2")
    """

    clock_skew_tolerance_hours: float = 24.0
    minimum_tls_version: str = "TLSv1_2"

    @property
    def clock_skew_tolerance(self) -> timedelta:
        return timedelta(hours=self.clock_skew_tolerance_hours)


@dataclass
class LogConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level string (default: "INFO")
        format: "text" or "json" (default: "text")
    """

    level: str = "INFO"
    format: str = "text"


@dataclass
class ServerConfig:
    """Master configuration for the server preflight.

    Attributes:
        lock: Instance lock configuration
        transport: Pinned transport configuration
        log: Logging configuration
        certificate_file: PEM file used by the startup probe
        probe_url: URL requested by the startup probe
    """

    lock: LockConfig = field(default_factory=LockConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    log: LogConfig = field(default_factory=LogConfig)
    certificate_file: Path | None = None
    probe_url: str | None = None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> ServerConfig:
        """Create configuration from parsed command-line arguments.

        Priority for the lock file: 1) --lock-file, 2) MCP_CORE_SERVER_LOCK_FILE, 3) default
        """
        from mcp_core_server.core.constants import LOCK_FILE_ENV

        lock_file = getattr(args, "lock_file", None) or os.environ.get(LOCK_FILE_ENV) or None
        certificate_file = getattr(args, "certificate", None)
        return cls(
            lock=LockConfig(
                lock_file=Path(lock_file) if lock_file else None,
                kill_existing=not getattr(args, "no_kill_existing", False),
            ),
            log=LogConfig(
                level=getattr(args, "log_level", None) or os.environ.get("LOG_LEVEL", "INFO"),
                format=getattr(args, "log_format", "text"),
            ),
            certificate_file=Path(certificate_file) if certificate_file else None,
            probe_url=getattr(args, "probe_url", None),
        )
