"""Child process creation + ownership of the parent-side pipe ends."""

import os
import shlex
import subprocess
from dataclasses import dataclass

from flow_exec import log
from flow_exec.errors import LaunchError


@dataclass(frozen=True)
class StreamConfig:
    """Which standard streams of the child are piped back to the parent.

    An unconnected stream is inherited from the parent process.
    """

    stdin: bool = True
    stdout: bool = True
    stderr: bool = True


class ProcessHandle:
    """A running child plus its pipe ends. Released exactly once by close()."""

    def __init__(self, command: tuple[str, ...], popen: subprocess.Popen):
        self.command = command
        self.popen = popen
        self.closed = False

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def stdin(self):
        return self.popen.stdin

    @property
    def stdout(self):
        return self.popen.stdout

    @property
    def stderr(self):
        return self.popen.stderr

    def poll(self) -> int | None:
        return self.popen.poll()

    def wait_for_exit(self, timeout: float) -> int | None:
        """Block up to `timeout` seconds for the child. Returns None if still running."""
        try:
            return self.popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def close_stdin(self) -> None:
        if self.popen.stdin is not None and not self.popen.stdin.closed:
            self.popen.stdin.close()

    def terminate_and_kill(self, grace: float) -> int | None:
        """SIGTERM, wait `grace` seconds, then SIGKILL. Returns the reaped returncode."""
        if self.popen.poll() is not None:
            return self.popen.returncode

        log.warning(f"terminating pid {self.pid}")
        self.popen.terminate()
        returncode = self.wait_for_exit(grace)
        if returncode is not None:
            return returncode

        log.warning(f"pid {self.pid} ignored SIGTERM, killing")
        self.popen.kill()
        returncode = self.wait_for_exit(grace)
        if returncode is None:
            log.error(f"pid {self.pid} still running after SIGKILL")
        return returncode

    def reap(self) -> None:
        """Kill the child if it is still running and collect its exit status."""
        if self.popen.poll() is None:
            log.debug(f"closing handle of running pid {self.pid}, killing it")
            self.popen.kill()
            self.popen.wait()

    def close(self) -> None:
        """Kill a still-running child, reap it, and close every pipe end."""
        if self.closed:
            return
        self.closed = True
        self.reap()

        for pipe in (self.popen.stdin, self.popen.stdout, self.popen.stderr):
            if pipe is not None and not pipe.closed:
                pipe.close()


def spawn(
    command,
    streams: StreamConfig = StreamConfig(),
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> ProcessHandle:
    """Start `command` (argv list, no shell) with the requested pipes.

    Raises LaunchError synchronously when the child cannot be created.
    """
    command = tuple(os.fspath(arg) for arg in command)
    if not command:
        raise ValueError("command must not be empty")

    merged_env = None
    if env is not None:
        merged_env = {**os.environ, **env}

    def _pipe(connected: bool):
        return subprocess.PIPE if connected else None

    try:
        # Popen closes any pipes it already created when exec fails
        popen = subprocess.Popen(
            list(command),
            stdin=_pipe(streams.stdin),
            stdout=_pipe(streams.stdout),
            stderr=_pipe(streams.stderr),
            bufsize=0,
            cwd=cwd,
            env=merged_env,
        )
    except OSError as e:
        log.error(f"launch failed: {shlex.join(command)}: {e.strerror or e}")
        raise LaunchError(command, e.errno, e.strerror or str(e)) from e

    log.debug(f"started pid {popen.pid}: {shlex.join(command)}")
    return ProcessHandle(command, popen)
