"""Exception hierarchy for child-process execution."""


class SubprocessError(Exception):
    """Base class for every failure raised by flow_exec."""

    def __init__(self, message: str, command: tuple[str, ...] = ()):
        super().__init__(message)
        self.command = tuple(command)


class LaunchError(SubprocessError):
    """The child process could not be created."""

    def __init__(self, command, errno: int | None = None, strerror: str | None = None):
        program = command[0] if command else "?"
        super().__init__(f"failed to launch {program}: {strerror or 'unknown error'}", command)
        self.errno = errno
        self.strerror = strerror


class TimeoutExpired(SubprocessError, TimeoutError):
    """Deadline elapsed before the child exited.

    Carries the output captured up to the deadline.
    """

    def __init__(self, command, timeout: float, stdout: str = "", stderr: str = "", status=None):
        super().__init__(f"command timed out after {timeout:g}s: {' '.join(command)}", command)
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr
        self.status = status


class PipeError(SubprocessError):
    """A pipe read or write failed for a reason other than end-of-file."""

    def __init__(self, command, stream: str, reason: str):
        super().__init__(f"{stream} pipe failed: {reason}", command)
        self.stream = stream
