"""Process liveness and termination primitives."""

from __future__ import annotations

import errno
import logging
import os
import time
from collections.abc import Callable
from enum import Enum
from typing import Protocol

import psutil

from mcp_core_server.core.constants import KILL_POLL_ATTEMPTS, KILL_POLL_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


class ProcessController(Protocol):
    """Capability to query and terminate OS processes by PID."""

    def is_running(self, pid: int) -> bool:
        """Return True if a process with this PID is alive."""

    def kill(self, pid: int) -> None:
        """Request immediate termination. Raises OSError on failure."""


class TerminationOutcome(Enum):
    """Result of terminating a competing owner."""

    CONFIRMED_DEAD = "confirmed_dead"
    UNCONFIRMED = "unconfirmed"
    KILL_FAILED = "kill_failed"


class OSProcessController:
    """Default controller: signal 0 probing on POSIX, psutil elsewhere."""

    def is_running(self, pid: int) -> bool:
        if pid <= 0:
            return False
        if os.name == "posix":
            try:
                os.kill(pid, 0)
            except ProcessLookupError:
                return False
            except PermissionError:
                return True
            except OverflowError:
                return False
            except OSError as e:
                return e.errno == errno.EPERM
            return not self._is_zombie(pid)
        try:
            return psutil.pid_exists(pid) and not self._is_zombie(pid)
        except OverflowError:
            return False

    def kill(self, pid: int) -> None:
        try:
            psutil.Process(pid).kill()
        except psutil.NoSuchProcess as e:
            raise ProcessLookupError(errno.ESRCH, f"no such process: {pid}") from e
        except psutil.AccessDenied as e:
            raise PermissionError(errno.EPERM, f"access denied killing PID {pid}") from e

    @staticmethod
    def _is_zombie(pid: int) -> bool:
        # A killed child stays visible to signal 0 until its parent reaps it
        try:
            return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
        except psutil.ZombieProcess:
            return True
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False


def terminate(
    controller: ProcessController,
    pid: int,
    *,
    poll_attempts: int = KILL_POLL_ATTEMPTS,
    poll_interval: float = KILL_POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[TerminationOutcome, OSError | None]:
    """Kill `pid` and wait a bounded time for it to exit.

    Returns the outcome together with the kill error when the kill request failed.
    """
    try:
        controller.kill(pid)
    except OSError as e:
        logger.debug("Kill request for PID %d failed: %s", pid, e)
        return TerminationOutcome.KILL_FAILED, e

    for attempt in range(poll_attempts):
        if attempt:
            sleep(poll_interval)
        if not controller.is_running(pid):
            return TerminationOutcome.CONFIRMED_DEAD, None
    return TerminationOutcome.UNCONFIRMED, None
