"""Subprocess façade: start a child, feed its stdin, collect its output and exit status."""

import os
import shlex
import threading
from dataclasses import dataclass

from flow_exec import launcher, textutil
from flow_exec import wait as wait_mod
from flow_exec.drain import READERS, PipeDrainer
from flow_exec.errors import LaunchError, PipeError, SubprocessError, TimeoutExpired
from flow_exec.launcher import StreamConfig
from flow_exec.wait import ExitStatus, ProcessState, TimeoutPolicy


@dataclass
class Result:
    returncode: int | None
    stdout: str
    stderr: str
    status: ExitStatus | None = None

    def __iter__(self):
        return iter((self.stdout, self.stderr, self.returncode))


class Subprocess:
    """A child process started from an argument vector, with captured output.

        proc = Subprocess(["python", "script.py", "--src", "."])
        out, err, code = proc.communicate("the quick brown fox", timeout=10)

    The child is started on construction. stdin is closed by communicate(), so
    a finished child cannot be fed again: start a new Subprocess per round.
    Not safe for concurrent use from several threads without a caller lock.
    """

    def __init__(
        self,
        command,
        stdin: bool = True,
        stdout: bool = True,
        stderr: bool = True,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        encoding: str = "utf-8",
        errors: str = "replace",
        reader: str = "auto",
        kill_grace: float = 1.0,
        poll_interval: float = 0.05,
    ):
        self._handle = None
        self._drainer = None
        self.state = ProcessState.NOT_STARTED

        self.command = tuple(os.fspath(arg) for arg in command)
        if not self.command:
            raise ValueError("command must not be empty")
        if reader not in READERS:
            raise ValueError(f"unknown reader: {reader!r}")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

        self.streams = StreamConfig(stdin=stdin, stdout=stdout, stderr=stderr)
        self.encoding = encoding
        self.errors = errors
        self.kill_grace = kill_grace
        self.poll_interval = poll_interval

        self._status: ExitStatus | None = None
        self._feeder: threading.Thread | None = None
        self._feed_error: OSError | None = None

        try:
            self._handle = launcher.spawn(self.command, self.streams, cwd=cwd, env=env)
        except LaunchError:
            self.state = ProcessState.CLOSED
            raise

        try:
            self._drainer = PipeDrainer(self._handle, reader=reader)
        except BaseException:
            self.close()
            raise
        self.state = ProcessState.RUNNING

    def __repr__(self) -> str:
        return f"<Subprocess pid={self.pid} state={self.state.value} {self.command_string!r}>"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __del__(self):
        if getattr(self, "_handle", None) is not None:
            self.close()

    # -- accessors -----------------------------------------------------------

    @property
    def pid(self) -> int | None:
        return self._handle.pid if self._handle is not None else None

    @property
    def command_string(self) -> str:
        return shlex.join(self.command)

    @property
    def status(self) -> ExitStatus | None:
        return self._status

    @property
    def returncode(self) -> int | None:
        return self._status.returncode if self._status is not None else None

    @property
    def stdout_bytes(self) -> bytes:
        return self._drainer.stdout.getvalue() if self._drainer is not None else b""

    @property
    def stderr_bytes(self) -> bytes:
        return self._drainer.stderr.getvalue() if self._drainer is not None else b""

    @property
    def stdout(self) -> str:
        return self.stdout_bytes.decode(self.encoding, self.errors)

    @property
    def stderr(self) -> str:
        return self.stderr_bytes.decode(self.encoding, self.errors)

    def clear_stdout(self) -> None:
        if self._drainer is not None:
            self._drainer.stdout.clear()

    def clear_stderr(self) -> None:
        if self._drainer is not None:
            self._drainer.stderr.clear()

    # -- lifecycle -----------------------------------------------------------

    def communicate(
        self,
        input=None,
        timeout: float | None = None,
        kill_on_timeout: bool = True,
        raise_on_timeout: bool = True,
    ) -> Result:
        """Send `input` (str or bytes), close stdin, and wait for the child.

        Returns the accumulated stdout/stderr text and the exit code. Once the
        child has finished, further calls return the cached status and the
        buffers as they currently stand.
        """
        if input is not None:
            self._start_feeder(input)
        elif self._feeder is None and self._handle is not None and not self._handle.closed:
            self._handle.close_stdin()

        self.wait(timeout, kill_on_timeout=kill_on_timeout, raise_on_timeout=raise_on_timeout)
        return Result(
            returncode=self.returncode,
            stdout=self.stdout,
            stderr=self.stderr,
            status=self._status,
        )

    def communicate_lines(self, input=None, timeout: float | None = None, sep: str | None = None, **policy) -> list[str]:
        """communicate(), then every token of every non-blank stdout line, in order."""
        result = self.communicate(input, timeout, **policy)
        return [tok for line in textutil.lines(result.stdout) for tok in textutil.tokens(line, sep)]

    def communicate_table(self, input=None, timeout: float | None = None, sep: str | None = None, **policy) -> list[list[str]]:
        """communicate(), then one row of tokens per non-blank stdout line."""
        result = self.communicate(input, timeout, **policy)
        return [textutil.tokens(line, sep) for line in textutil.lines(result.stdout)]

    def wait(
        self,
        timeout: float | None = None,
        kill_on_timeout: bool = True,
        raise_on_timeout: bool = True,
    ) -> ExitStatus:
        """Drain output until the child exits or `timeout` seconds pass.

        Idempotent once the exit status is known.
        """
        if self._status is not None and self._status.determined:
            return self._status
        if self.state is ProcessState.CLOSED:
            raise SubprocessError("process handle is closed", self.command)

        policy = TimeoutPolicy(
            kill_on_timeout=kill_on_timeout,
            raise_on_timeout=raise_on_timeout,
            kill_grace=self.kill_grace,
            poll_interval=self.poll_interval,
        )
        try:
            status = wait_mod.wait(
                self._handle, self._drainer, timeout, policy, self.encoding, self.errors
            )
        except TimeoutExpired as e:
            self._record(e.status)
            if e.status.determined and self._feeder is not None:
                self._feeder.join(self.kill_grace)
            raise

        self._record(status)
        if status.determined:
            self._join_feeder()
        return status

    def close(self) -> None:
        """Release pipes and the process record. Kills the child if still running."""
        if self.state is ProcessState.CLOSED:
            return
        self.state = ProcessState.CLOSED
        if self._drainer is not None:
            self._drainer.close()
        if self._handle is not None:
            self._handle.reap()
            # Killed child closes the read end, so a blocked feeder gets EPIPE
            if self._feeder is not None:
                self._feeder.join(self.kill_grace)
            self._handle.close()

    def _record(self, status: ExitStatus) -> None:
        self._status = status
        if not status.timed_out:
            self.state = ProcessState.EXITED
        elif status.determined:
            self.state = ProcessState.KILLED
        else:
            self.state = ProcessState.TIMED_OUT

    # -- stdin ---------------------------------------------------------------

    def _start_feeder(self, input) -> None:
        if not self.streams.stdin:
            raise PipeError(self.command, "stdin", "stdin is not connected")
        stdin = self._handle.stdin if self._handle is not None else None
        if self._feeder is not None or stdin is None or stdin.closed:
            raise PipeError(
                self.command, "stdin", "stdin already closed, start a new Subprocess to send more input"
            )

        data = input.encode(self.encoding) if isinstance(input, str) else bytes(input)
        self._feeder = threading.Thread(
            target=self._feed, args=(stdin, data), name="flow-exec-stdin", daemon=True
        )
        self._feeder.start()

    def _feed(self, stdin, data: bytes) -> None:
        # Runs on its own thread so a large input cannot deadlock against output
        view = memoryview(data)
        try:
            while view:
                written = stdin.write(view)
                view = view[written:]
        except OSError as e:
            self._feed_error = e
        finally:
            stdin.close()

    def _join_feeder(self) -> None:
        if self._feeder is None:
            return
        self._feeder.join(self.kill_grace)
        if self._feed_error is not None:
            err, self._feed_error = self._feed_error, None
            raise PipeError(self.command, "stdin", err.strerror or str(err)) from err


def run(
    args,
    input=None,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
    cwd: str | None = None,
    kill_on_timeout: bool = True,
    raise_on_timeout: bool = True,
    encoding: str = "utf-8",
    reader: str = "auto",
) -> Result:
    """Run a command to completion and capture its output."""
    with Subprocess(args, cwd=cwd, env=env, encoding=encoding, reader=reader) as proc:
        return proc.communicate(
            input, timeout=timeout, kill_on_timeout=kill_on_timeout, raise_on_timeout=raise_on_timeout
        )
