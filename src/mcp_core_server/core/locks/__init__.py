"""Locking subsystem for single-instance enforcement.

This package centralizes lock acquisition/release behavior behind
injectable file and process primitives so the entrypoint can use a
stable API and tests can substitute fakes.
"""

from mcp_core_server.core.locks.backends import AcquireStatus, LockRecord, PidFileBackend
from mcp_core_server.core.locks.manager import InstanceLock, default_lock_path
from mcp_core_server.core.locks.process import (
    OSProcessController,
    ProcessController,
    TerminationOutcome,
    terminate,
)

__all__ = [
    "AcquireStatus",
    "InstanceLock",
    "LockRecord",
    "OSProcessController",
    "PidFileBackend",
    "ProcessController",
    "TerminationOutcome",
    "default_lock_path",
    "terminate",
]
