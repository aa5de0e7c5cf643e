"""PID lock file backend.

Design principles:
- The lock file content is the owner's PID as decimal text, nothing else.
- Claiming uses an exclusive create, so two claimants can never both
  believe they created the record.
- Reading never deletes; staleness is decided by the manager.
"""

from __future__ import annotations

import contextlib
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from mcp_core_server.core.constants import LOCK_READ_RETRY_ATTEMPTS, LOCK_READ_RETRY_SLEEP_SECONDS, MAX_PID
from mcp_core_server.core.exceptions import LockIOError


def _write_all(fd: int, payload: bytes) -> None:
    """Write complete payload to fd, handling short writes."""
    total_written = 0
    while total_written < len(payload):
        written = os.write(fd, payload[total_written:])
        if written <= 0:
            raise OSError("short write while persisting lock record")
        total_written += written


class AcquireStatus(Enum):
    """Outcome of an acquisition attempt."""

    ACQUIRED = "acquired"
    REJECTED = "rejected"


class ReadStatus(Enum):
    """Outcome of reading an existing lock file."""

    OK = "ok"
    MISSING = "missing"
    CORRUPT = "corrupt"


@dataclass(frozen=True)
class LockRecord:
    """Persisted ownership record."""

    path: Path
    owner_pid: int

    def to_text(self) -> str:
        return str(self.owner_pid)

    @classmethod
    def parse(cls, path: Path, content: str) -> LockRecord | None:
        try:
            pid = int(content.strip())
        except ValueError:
            return None
        if not 0 < pid <= MAX_PID:
            return None
        return cls(path=path, owner_pid=pid)


@dataclass
class ReadResult:
    status: ReadStatus
    record: LockRecord | None = None


class PidFileBackend:
    """Lock file primitives: exclusive claim, read, remove."""

    unreadable_retry_attempts = LOCK_READ_RETRY_ATTEMPTS
    unreadable_retry_sleep_seconds = LOCK_READ_RETRY_SLEEP_SECONDS

    def claim(self, lock_path: Path, pid: int) -> bool:
        """Create the lock file holding `pid`. Returns False if it already exists."""
        try:
            fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            raise LockIOError("Failed to create lock file", str(lock_path), original_error=e, details=str(e)) from e

        try:
            _write_all(fd, LockRecord(lock_path, pid).to_text().encode("ascii"))
            os.fsync(fd)
        except OSError as e:
            with contextlib.suppress(OSError):
                os.close(fd)
            # A half-written record would look corrupt to everyone else
            with contextlib.suppress(OSError):
                lock_path.unlink()
            raise LockIOError("Failed to write lock file", str(lock_path), original_error=e, details=str(e)) from e
        os.close(fd)
        return True

    def read(self, lock_path: Path) -> ReadResult:
        """Read the lock record, re-reading briefly while content is empty or partial."""
        for attempt in range(self.unreadable_retry_attempts + 1):
            try:
                content = lock_path.read_text(encoding="ascii")
            except FileNotFoundError:
                return ReadResult(ReadStatus.MISSING)
            except (OSError, UnicodeDecodeError):
                content = ""

            record = LockRecord.parse(lock_path, content)
            if record is not None:
                return ReadResult(ReadStatus.OK, record)
            if attempt < self.unreadable_retry_attempts:
                time.sleep(self.unreadable_retry_sleep_seconds)
        return ReadResult(ReadStatus.CORRUPT)

    @staticmethod
    def remove(lock_path: Path) -> None:
        """Delete the lock file. Absence is not an error."""
        try:
            lock_path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise LockIOError("Failed to remove lock file", str(lock_path), original_error=e, details=str(e)) from e
