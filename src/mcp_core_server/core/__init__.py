"""Core module - Foundation components with no internal dependencies.

This module provides the basic building blocks used throughout the application:
- Version information
- Custom exceptions
- Configuration dataclasses
- Constants and defaults
"""

from mcp_core_server.core.version import __version__

from mcp_core_server.core.exceptions import (
    MCPCoreError,
    LockError,
    LockIOError,
    LockContentionError,
    KillFailureError,
    ConfigurationError,
    CertificateParseError,
    TransportError,
    VerificationFailure,
    CookieStoreInitError,
)

from mcp_core_server.core.config import (
    LockConfig,
    TransportConfig,
    LogConfig,
    ServerConfig,
)

from mcp_core_server.core.constants import (
    LOCK_FILE_NAME,
    LOCK_FILE_ENV,
    CLOCK_SKEW_TOLERANCE,
    EXIT_OK,
    EXIT_STARTUP_FAILURE,
    EXIT_ALREADY_RUNNING,
    EXIT_LOCK_IO_ERROR,
    EXIT_KILL_FAILURE,
    EXIT_CONFIGURATION_ERROR,
)

__all__ = [
    # Version
    '__version__',
    # Exceptions
    'MCPCoreError',
    'LockError',
    'LockIOError',
    'LockContentionError',
    'KillFailureError',
    'ConfigurationError',
    'CertificateParseError',
    'TransportError',
    'VerificationFailure',
    'CookieStoreInitError',
    # Config dataclasses
    'LockConfig',
    'TransportConfig',
    'LogConfig',
    'ServerConfig',
    # Constants
    'LOCK_FILE_NAME',
    'LOCK_FILE_ENV',
    'CLOCK_SKEW_TOLERANCE',
    'EXIT_OK',
    'EXIT_STARTUP_FAILURE',
    'EXIT_ALREADY_RUNNING',
    'EXIT_LOCK_IO_ERROR',
    'EXIT_KILL_FAILURE',
    'EXIT_CONFIGURATION_ERROR',
]
