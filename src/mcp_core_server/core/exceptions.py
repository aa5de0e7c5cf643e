"""Custom exceptions for MCP Core Server.

All exception classes are designed to provide clear, actionable error messages
with context about what went wrong and how to fix it.
"""


class MCPCoreError(Exception):
    """Base exception for all MCP Core Server errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class LockError(MCPCoreError):
    """Base exception for instance lock failures.

    Attributes:
        lock_path: Path of the lock file involved, if known
    """

    def __init__(self, message: str, lock_path: str | None = None, details: str | None = None):
        self.lock_path = lock_path
        super().__init__(message, details)


class LockIOError(LockError, OSError):
    """Raised when the lock file cannot be created, written or removed.

    Absence of the lock file is never reported through this exception.

    Examples:
        - Permission denied on the temp directory
        - Lock file held open by another process on Windows
        - Read-only filesystem
    """

    def __init__(
        self,
        message: str,
        lock_path: str | None = None,
        details: str | None = None,
        original_error: Exception | None = None,
    ):
        self.original_error = original_error
        super().__init__(message, lock_path, details)


class LockContentionError(LockError):
    """Raised when a live competing owner refuses to yield the lock.

    Attributes:
        owner_pid: PID recorded in the lock file
    """

    def __init__(self, lock_path: str, owner_pid: int | None = None, reason: str | None = None):
        self.owner_pid = owner_pid
        self.reason = reason

        message = f"Another instance still holds the lock '{lock_path}'"
        details_parts = []
        if owner_pid:
            details_parts.append(f"PID {owner_pid}")
        if reason:
            details_parts.append(reason)

        details = ", ".join(details_parts) if details_parts else None
        super().__init__(message, lock_path, details)


class KillFailureError(LockError):
    """Raised when terminating the existing instance fails.

    Attributes:
        pid: PID of the process that could not be terminated
        original_error: Underlying OS error
    """

    def __init__(self, pid: int, lock_path: str | None = None, original_error: Exception | None = None):
        self.pid = pid
        self.original_error = original_error
        details = str(original_error) if original_error is not None else None
        super().__init__(f"Failed to kill existing instance (PID {pid})", lock_path, details)


class ConfigurationError(MCPCoreError):
    """Exception raised for configuration-related errors.

    Examples:
        - Missing certificate file
        - Certificate bytes that are not PEM
        - Invalid option value
    """

    def __init__(self, message: str, field: str | None = None, details: str | None = None):
        self.field = field
        super().__init__(message, details)


class CertificateParseError(ConfigurationError):
    """Raised when a trust anchor or peer certificate cannot be parsed."""

    def __init__(self, message: str, details: str | None = None, original_error: Exception | None = None):
        self.original_error = original_error
        super().__init__(message, field="certificate", details=details)


class TransportError(MCPCoreError):
    """Base exception for secure transport failures."""


class VerificationFailure(TransportError):
    """Raised when a peer certificate chain does not validate against the pinned anchor.

    Attributes:
        check_time: Reference time of the attempt that produced this failure
    """

    def __init__(self, message: str, details: str | None = None, check_time: str | None = None):
        self.check_time = check_time
        super().__init__(message, details)


class CookieStoreInitError(TransportError):
    """Raised when the per-client cookie store cannot be created."""
