"""Drive a child to completion under an optional deadline."""

import enum
import time
from dataclasses import dataclass

from flow_exec import log
from flow_exec.errors import TimeoutExpired


class ExitState(enum.Enum):
    EXITED = "exited"
    SIGNALED = "signaled"
    UNDETERMINED = "undetermined"


class ProcessState(enum.Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"
    TIMED_OUT = "timed-out"
    CLOSED = "closed"


@dataclass(frozen=True)
class ExitStatus:
    """Outcome of a wait.

    code is the exit code for EXITED, the negated signal number for SIGNALED
    and None for UNDETERMINED (deadline hit, child left running).
    """

    state: ExitState
    code: int | None = None
    timed_out: bool = False

    @classmethod
    def from_returncode(cls, returncode: int | None, timed_out: bool = False) -> "ExitStatus":
        if returncode is None:
            return cls(ExitState.UNDETERMINED, None, timed_out)
        if returncode < 0:
            return cls(ExitState.SIGNALED, returncode, timed_out)
        return cls(ExitState.EXITED, returncode, timed_out)

    @property
    def returncode(self) -> int | None:
        return self.code

    @property
    def signal(self) -> int | None:
        return -self.code if self.state is ExitState.SIGNALED else None

    @property
    def determined(self) -> bool:
        return self.state is not ExitState.UNDETERMINED

    def __str__(self) -> str:
        if self.state is ExitState.EXITED:
            return f"exited with code {self.code}"
        if self.state is ExitState.SIGNALED:
            return f"killed by signal {self.signal}"
        return "still running"


@dataclass(frozen=True)
class TimeoutPolicy:
    """What to do when the deadline passes. The two flags are independent."""

    kill_on_timeout: bool = True
    raise_on_timeout: bool = True
    kill_grace: float = 1.0
    poll_interval: float = 0.05


def wait(
    handle,
    drainer,
    deadline: float | None = None,
    policy: TimeoutPolicy = TimeoutPolicy(),
    encoding: str = "utf-8",
    errors: str = "replace",
) -> ExitStatus:
    """Drain output and poll the child until it exits or the deadline passes.

    deadline is in seconds from now; None or 0 waits indefinitely. Output the
    child wrote before exiting is always in the drainer's buffers on return.
    """
    if deadline is not None and deadline < 0:
        raise ValueError(f"deadline must be non-negative, got {deadline}")
    if not deadline:
        deadline = None

    start = time.monotonic()
    while True:
        quantum = policy.poll_interval
        if deadline is not None:
            quantum = max(0.0, min(quantum, deadline - (time.monotonic() - start)))

        if drainer.done:
            returncode = handle.wait_for_exit(quantum)
        else:
            drainer.drain_available(quantum)
            returncode = handle.poll()

        if returncode is not None:
            drainer.drain_remaining(policy.poll_interval)
            status = ExitStatus.from_returncode(returncode)
            log.debug(f"pid {handle.pid} {status}")
            return status

        if deadline is not None and time.monotonic() - start >= deadline:
            return _expire(handle, drainer, deadline, policy, encoding, errors)


def _expire(handle, drainer, deadline, policy, encoding, errors) -> ExitStatus:
    drainer.drain_available(0)

    if policy.kill_on_timeout:
        log.warning(f"pid {handle.pid} timed out after {deadline:g}s, killing")
        returncode = handle.terminate_and_kill(policy.kill_grace)
        drainer.drain_remaining(policy.poll_interval)
    else:
        log.warning(f"pid {handle.pid} timed out after {deadline:g}s, left running")
        returncode = None

    status = ExitStatus.from_returncode(returncode, timed_out=True)
    if policy.raise_on_timeout:
        raise TimeoutExpired(
            handle.command,
            deadline,
            stdout=drainer.stdout.text(encoding, errors),
            stderr=drainer.stderr.text(encoding, errors),
            status=status,
        )
    return status
