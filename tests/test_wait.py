"""Tests for wait.py — exit status encoding and the wait loop."""

import signal
import time

import pytest

from conftest import py
from flow_exec.drain import PipeDrainer
from flow_exec.errors import TimeoutExpired
from flow_exec.launcher import StreamConfig, spawn
from flow_exec.wait import ExitState, ExitStatus, TimeoutPolicy, wait


@pytest.fixture
def started():
    pairs = []

    def _start(script, reader="auto"):
        handle = spawn(py(script), StreamConfig(stdin=False))
        drainer = PipeDrainer(handle, reader=reader)
        pairs.append((handle, drainer))
        return handle, drainer

    yield _start
    for handle, drainer in pairs:
        drainer.close()
        handle.close()


def test_exit_status_exited():
    status = ExitStatus.from_returncode(3)
    assert status.state is ExitState.EXITED
    assert status.returncode == 3
    assert status.signal is None
    assert status.determined
    assert str(status) == "exited with code 3"


def test_exit_status_signaled():
    status = ExitStatus.from_returncode(-9)
    assert status.state is ExitState.SIGNALED
    assert status.returncode == -9
    assert status.signal == 9
    assert str(status) == "killed by signal 9"


def test_exit_status_undetermined():
    status = ExitStatus.from_returncode(None, timed_out=True)
    assert status.state is ExitState.UNDETERMINED
    assert status.returncode is None
    assert not status.determined
    assert status.timed_out


def test_wait_captures_output_written_just_before_exit(started, reader):
    handle, drainer = started("import sys; sys.stdout.write('tail' * 1000)", reader)
    status = wait(handle, drainer)
    assert status.returncode == 0
    assert drainer.stdout.getvalue() == b"tail" * 1000


def test_wait_reports_exit_code(started):
    handle, drainer = started("raise SystemExit(5)")
    assert wait(handle, drainer, deadline=10).returncode == 5


def test_zero_deadline_means_unbounded(started):
    handle, drainer = started("import time; time.sleep(0.2)")
    status = wait(handle, drainer, deadline=0)
    assert status.returncode == 0
    assert not status.timed_out


def test_negative_deadline_rejected(started):
    handle, drainer = started("pass")
    with pytest.raises(ValueError):
        wait(handle, drainer, deadline=-1)


def test_timeout_kill_and_raise(started, reader):
    handle, drainer = started("import time; print('x', flush=True); time.sleep(30)", reader)
    with pytest.raises(TimeoutExpired) as exc_info:
        wait(handle, drainer, deadline=1.0, policy=TimeoutPolicy(kill_on_timeout=True, raise_on_timeout=True))
    assert exc_info.value.stdout == "x\n"
    assert exc_info.value.status.signal == signal.SIGTERM
    assert handle.poll() is not None


def test_timeout_kill_without_raise(started):
    handle, drainer = started("import time; time.sleep(30)")
    start = time.monotonic()
    status = wait(handle, drainer, deadline=0.1, policy=TimeoutPolicy(raise_on_timeout=False))
    assert time.monotonic() - start < 2.0
    assert status.timed_out
    assert status.state is ExitState.SIGNALED


def test_timeout_raise_without_kill_leaves_child_running(started):
    handle, drainer = started("import time; time.sleep(30)")
    with pytest.raises(TimeoutExpired) as exc_info:
        wait(handle, drainer, deadline=0.1, policy=TimeoutPolicy(kill_on_timeout=False))
    assert exc_info.value.status.state is ExitState.UNDETERMINED
    assert handle.poll() is None


def test_timeout_neither_kill_nor_raise(started):
    handle, drainer = started("import time; time.sleep(30)")
    status = wait(
        handle, drainer, deadline=0.1,
        policy=TimeoutPolicy(kill_on_timeout=False, raise_on_timeout=False),
    )
    assert status.state is ExitState.UNDETERMINED
    assert handle.poll() is None


def test_timeout_logs_kill(started, capsys):
    handle, drainer = started("import time; time.sleep(30)")
    wait(handle, drainer, deadline=0.1, policy=TimeoutPolicy(raise_on_timeout=False))
    err = capsys.readouterr().err
    assert "timed out after 0.1s, killing" in err


def test_wait_does_not_spin_when_streams_are_closed(started, monkeypatch):
    handle, drainer = started(
        "import os, time\n"
        "os.dup2(os.open(os.devnull, os.O_WRONLY), 1)\n"
        "os.dup2(os.open(os.devnull, os.O_WRONLY), 2)\n"
        "time.sleep(0.5)\n"
    )
    polls = []
    original = handle.wait_for_exit

    def counting_wait(timeout):
        polls.append(timeout)
        return original(timeout)

    monkeypatch.setattr(handle, "wait_for_exit", counting_wait)
    assert wait(handle, drainer, policy=TimeoutPolicy(poll_interval=0.05)).returncode == 0
    # Bounded by elapsed time / poll interval, not by CPU speed
    assert len(polls) < 40
