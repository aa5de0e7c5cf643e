"""Tests for process liveness and termination against real child processes."""

from __future__ import annotations

import os
import subprocess
import sys
import time

import pytest

from mcp_core_server.core.locks import AcquireStatus, InstanceLock, OSProcessController, TerminationOutcome, terminate


@pytest.fixture
def sleeper():
    """A child process that would run for a minute unless killed"""
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    yield proc
    if proc.poll() is None:
        proc.kill()
    proc.wait(timeout=5)


def _exited_pid() -> int:
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait(timeout=10)
    return proc.pid


class TestOSProcessController:
    """Test the default platform controller"""

    def test_current_process_is_running(self):
        assert OSProcessController().is_running(os.getpid()) is True

    @pytest.mark.parametrize("pid", [0, -1, -4242])
    def test_non_positive_pids_are_never_running(self, pid):
        assert OSProcessController().is_running(pid) is False

    def test_out_of_range_pid_is_not_running(self):
        assert OSProcessController().is_running(2**70) is False

    def test_live_child_is_running(self, sleeper):
        assert OSProcessController().is_running(sleeper.pid) is True

    def test_reaped_child_is_not_running(self):
        assert OSProcessController().is_running(_exited_pid()) is False

    def test_kill_terminates_child(self, sleeper):
        OSProcessController().kill(sleeper.pid)
        assert sleeper.wait(timeout=5) is not None

    def test_kill_of_missing_process_raises_oserror(self):
        with pytest.raises(ProcessLookupError):
            OSProcessController().kill(_exited_pid())


class TestTerminate:
    """Test bounded kill-and-wait"""

    def test_confirms_death_of_real_child(self, sleeper):
        outcome, error = terminate(OSProcessController(), sleeper.pid)

        assert outcome == TerminationOutcome.CONFIRMED_DEAD
        assert error is None

    def test_reports_kill_failure(self):
        outcome, error = terminate(OSProcessController(), _exited_pid())

        assert outcome == TerminationOutcome.KILL_FAILED
        assert isinstance(error, ProcessLookupError)

    def test_reports_unconfirmed_after_poll_budget(self, fake_processes):
        controller = fake_processes(alive={77}, survives_kill=True)
        sleeps: list[float] = []

        outcome, error = terminate(controller, 77, sleep=sleeps.append)

        assert outcome == TerminationOutcome.UNCONFIRMED
        assert error is None
        assert len(controller.checks) == 10
        assert sleeps == [0.1] * 9


def test_acquire_takes_over_from_live_competing_process(lock_path, sleeper):
    lock_path.write_text(str(sleeper.pid), encoding="ascii")
    lock = InstanceLock(lock_path=lock_path)

    start = time.monotonic()
    assert lock.acquire(kill_existing=True) == AcquireStatus.ACQUIRED
    elapsed = time.monotonic() - start

    assert lock_path.read_text(encoding="ascii") == str(os.getpid())
    assert sleeper.wait(timeout=5) is not None
    assert elapsed < 1.5
    lock.release()


def test_acquire_leaves_live_competing_process_alone(lock_path, sleeper):
    lock_path.write_text(str(sleeper.pid), encoding="ascii")

    assert InstanceLock(lock_path=lock_path).acquire(kill_existing=False) == AcquireStatus.REJECTED
    assert sleeper.poll() is None
    assert lock_path.read_text(encoding="ascii") == str(sleeper.pid)
