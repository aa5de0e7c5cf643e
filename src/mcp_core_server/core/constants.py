"""Constants and default values for MCP Core Server.

This module centralizes all magic numbers and well-known names used
throughout the application.
"""

from datetime import timedelta

from mcp_core_server.core.config import LockConfig, LogConfig, TransportConfig

# ==================== INSTANCE LOCK ====================

# Lock file name inside the host temp directory, shared by every instance
LOCK_FILE_NAME: str = "matlab-mcp-core-server.lock"

# Environment override for the full lock file path
LOCK_FILE_ENV: str = "MCP_CORE_SERVER_LOCK_FILE"

LOCK_CLAIM_ATTEMPTS: int = 3  # Create-exclusive attempts before giving up
LOCK_READ_RETRY_ATTEMPTS: int = 5  # Re-reads of an empty/partial record
LOCK_READ_RETRY_SLEEP_SECONDS: float = 0.02

KILL_POLL_ATTEMPTS: int = 10  # Liveness checks after a kill request
KILL_POLL_INTERVAL_SECONDS: float = 0.1  # 10 x 100ms = 1 second max wait

MAX_PID: int = 2**31 - 1  # Larger values cannot name a process on any supported platform

# ==================== TRANSPORT ====================

CLOCK_SKEW_TOLERANCE: timedelta = timedelta(hours=24)
MAX_CHAIN_DEPTH: int = 8

# ==================== EXIT CODES ====================

EXIT_OK: int = 0
EXIT_STARTUP_FAILURE: int = 1
EXIT_ALREADY_RUNNING: int = 2
EXIT_LOCK_IO_ERROR: int = 3
EXIT_KILL_FAILURE: int = 4
EXIT_CONFIGURATION_ERROR: int = 5

# ==================== DEFAULT CONFIG INSTANCES ====================

DEFAULT_LOCK = LockConfig()
DEFAULT_TRANSPORT = TransportConfig()
DEFAULT_LOG = LogConfig()
