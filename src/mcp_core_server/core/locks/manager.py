"""Instance lock orchestrating stale-record recovery and takeover."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path

from mcp_core_server.core.constants import (
    KILL_POLL_ATTEMPTS,
    KILL_POLL_INTERVAL_SECONDS,
    LOCK_CLAIM_ATTEMPTS,
    LOCK_FILE_ENV,
    LOCK_FILE_NAME,
)
from mcp_core_server.core.exceptions import KillFailureError, LockContentionError
from mcp_core_server.core.locks.backends import AcquireStatus, LockRecord, PidFileBackend, ReadStatus
from mcp_core_server.core.locks.process import (
    OSProcessController,
    ProcessController,
    TerminationOutcome,
    terminate,
)


def default_lock_path() -> Path:
    """Lock path shared by every instance on this host, resolved fresh on each call."""
    override = os.environ.get(LOCK_FILE_ENV)
    if override:
        return Path(override)
    return Path(tempfile.gettempdir()) / LOCK_FILE_NAME


class InstanceLock:
    """Cross-process single-instance lock backed by a PID file."""

    claim_attempts = LOCK_CLAIM_ATTEMPTS

    def __init__(
        self,
        *,
        lock_path: Path | None = None,
        pid: int | None = None,
        process_controller: ProcessController | None = None,
        poll_attempts: int = KILL_POLL_ATTEMPTS,
        poll_interval_seconds: float = KILL_POLL_INTERVAL_SECONDS,
        reclaim_unconfirmed: bool = True,
        sleep: Callable[[float], None] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._lock_path = lock_path
        self.pid = os.getpid() if pid is None else pid
        self.process_controller = process_controller or OSProcessController()
        self.poll_attempts = poll_attempts
        self.poll_interval_seconds = poll_interval_seconds
        self.reclaim_unconfirmed = reclaim_unconfirmed
        self.logger = logger or logging.getLogger(__name__)
        self.backend = PidFileBackend()
        self._sleep = sleep or time.sleep
        self._acquired = False

    @property
    def lock_path(self) -> Path:
        if self._lock_path is not None:
            return self._lock_path
        return default_lock_path()

    @property
    def acquired(self) -> bool:
        return self._acquired

    def try_lock(self) -> AcquireStatus:
        """Attempt acquisition without touching a running instance."""
        return self.acquire(kill_existing=False)

    def acquire(self, kill_existing: bool = False) -> AcquireStatus:
        """Attempt to become the sole owner.

        Stale records (corrupt content, dead owner) are removed and reclaimed.
        A live owner either rejects the attempt or, with ``kill_existing``, is
        killed and replaced.

        Raises:
            KillFailureError: The kill request for the live owner failed.
            LockContentionError: The live owner could not be displaced.
            LockIOError: The lock file could not be created or removed.
        """
        lock_path = self.lock_path
        last_owner: int | None = None

        for _ in range(self.claim_attempts):
            if self.backend.claim(lock_path, self.pid):
                self.logger.debug("Created lock file %s for PID %d", lock_path, self.pid)
                return self._mark_acquired()

            result = self.backend.read(lock_path)
            if result.status == ReadStatus.MISSING:
                continue
            if result.status == ReadStatus.CORRUPT or result.record is None:
                self.logger.warning("Removing unreadable lock file %s", lock_path)
                self.backend.remove(lock_path)
                continue

            owner_pid = result.record.owner_pid
            last_owner = owner_pid
            if owner_pid == self.pid:
                return self._mark_acquired()

            if not self.process_controller.is_running(owner_pid):
                self.logger.info("Removing stale lock file %s (PID %d is not running)", lock_path, owner_pid)
                self.backend.remove(lock_path)
                continue

            if not kill_existing:
                self.logger.info("Another instance is running (PID %d)", owner_pid)
                return AcquireStatus.REJECTED

            self._displace_owner(lock_path, owner_pid)

        if not kill_existing:
            return AcquireStatus.REJECTED
        raise LockContentionError(str(lock_path), owner_pid=last_owner, reason="lock kept changing owner")

    def release(self) -> None:
        """Remove the lock file if it still records this process.

        Raises:
            LockIOError: The lock file exists but cannot be removed.
        """
        lock_path = self.lock_path
        self._acquired = False
        record = self.read_record()
        if record is None:
            self.logger.warning("Lock file %s is missing or unreadable on release", lock_path)
            return
        if record.owner_pid != self.pid:
            self.logger.warning(
                "Lock file %s now belongs to PID %d; leaving it in place", lock_path, record.owner_pid
            )
            return
        self.backend.remove(lock_path)

    def read_record(self) -> LockRecord | None:
        """Read the current lock record for diagnostics."""
        result = self.backend.read(self.lock_path)
        return result.record if result.status == ReadStatus.OK else None

    def _mark_acquired(self) -> AcquireStatus:
        self._acquired = True
        return AcquireStatus.ACQUIRED

    def _displace_owner(self, lock_path: Path, owner_pid: int) -> None:
        self.logger.info("Killing existing instance (PID %d)", owner_pid)
        outcome, error = terminate(
            self.process_controller,
            owner_pid,
            poll_attempts=self.poll_attempts,
            poll_interval=self.poll_interval_seconds,
            sleep=self._sleep,
        )

        if outcome == TerminationOutcome.KILL_FAILED:
            raise KillFailureError(owner_pid, str(lock_path), original_error=error)
        if outcome == TerminationOutcome.UNCONFIRMED:
            if not self.reclaim_unconfirmed:
                raise LockContentionError(
                    str(lock_path), owner_pid=owner_pid, reason="still running after kill request"
                )
            self.logger.warning("PID %d still running after kill request; reclaiming lock anyway", owner_pid)

        self.backend.remove(lock_path)
