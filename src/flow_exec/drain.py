"""Independent, non-blocking drain of a child's stdout and stderr.

Both streams are serviced on every pass. A child flooding stderr must never
block while the parent waits on stdout, or the other way round.
"""

import os
import queue
import selectors
import threading
import time

from flow_exec.errors import PipeError

CHUNK_SIZE = 65536
# Per-stream cap for one pass so a chatty stream cannot starve the other.
MAX_PASS_BYTES = 1 << 20

STDOUT = "stdout"
STDERR = "stderr"

READERS = ("auto", "select", "thread")


class OutputBuffer:
    """Append-only byte accumulator. Only clear() discards data."""

    def __init__(self):
        self._data = bytearray()

    def append(self, chunk: bytes) -> None:
        self._data += chunk

    def clear(self) -> None:
        self._data.clear()

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def text(self, encoding: str = "utf-8", errors: str = "replace") -> str:
        return self._data.decode(encoding, errors)

    def __len__(self) -> int:
        return len(self._data)


class Reader:
    """Reads whatever is immediately available from a set of named pipes.

    read() returns (name, item) pairs where item is a chunk of bytes, b"" at
    end-of-file, or the OSError that broke the stream.
    """

    def __init__(self, pipes: dict):
        self.pipes = pipes

    def read(self, timeout: float) -> list[tuple[str, object]]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class SelectorReader(Reader):
    """Non-blocking pipes multiplexed with selectors (POSIX)."""

    def __init__(self, pipes: dict):
        super().__init__(pipes)
        self._selector = selectors.DefaultSelector()
        for name, pipe in pipes.items():
            os.set_blocking(pipe.fileno(), False)
            self._selector.register(pipe, selectors.EVENT_READ, name)

    def read(self, timeout: float) -> list[tuple[str, object]]:
        if not self._selector.get_map():
            if timeout > 0:
                time.sleep(timeout)
            return []

        items = []
        for key, _ in self._selector.select(max(timeout, 0)):
            name, pipe = key.data, key.fileobj
            total = 0
            while total < MAX_PASS_BYTES:
                try:
                    chunk = pipe.read(CHUNK_SIZE)
                except OSError as e:
                    self._selector.unregister(pipe)
                    items.append((name, e))
                    break
                if chunk is None:
                    break  # would block
                items.append((name, chunk))
                if not chunk:
                    self._selector.unregister(pipe)
                    break
                total += len(chunk)
        return items

    def close(self) -> None:
        self._selector.close()


class ThreadReader(Reader):
    """One blocking reader thread per stream feeding a shared queue.

    Used where select() cannot wait on pipes (Windows).
    """

    def __init__(self, pipes: dict):
        super().__init__(pipes)
        self._queue = queue.Queue()
        self._threads = []
        for name, pipe in pipes.items():
            thread = threading.Thread(
                target=self._pump, args=(name, pipe), name=f"flow-exec-{name}", daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def _pump(self, name: str, pipe) -> None:
        try:
            while True:
                chunk = pipe.read(CHUNK_SIZE)
                if not chunk:
                    break
                self._queue.put((name, chunk))
        except ValueError:
            pass  # pipe closed during teardown
        except OSError as e:
            self._queue.put((name, e))
            return
        self._queue.put((name, b""))

    def read(self, timeout: float) -> list[tuple[str, object]]:
        items = []
        try:
            if timeout > 0:
                items.append(self._queue.get(timeout=timeout))
            else:
                items.append(self._queue.get_nowait())
            while True:
                items.append(self._queue.get_nowait())
        except queue.Empty:
            pass
        return items


def make_reader(kind: str, pipes: dict) -> Reader:
    """Pick the platform's non-blocking read backend."""
    if kind == "auto":
        kind = "select" if os.name == "posix" else "thread"
    if kind == "select":
        return SelectorReader(pipes)
    if kind == "thread":
        return ThreadReader(pipes)
    raise ValueError(f"unknown reader: {kind!r} (expected one of {', '.join(READERS)})")


class PipeDrainer:
    """Drains a ProcessHandle's output pipes into two OutputBuffers."""

    def __init__(self, handle, reader: str = "auto", stdout_buffer=None, stderr_buffer=None):
        self.command = handle.command
        self.stdout = OutputBuffer() if stdout_buffer is None else stdout_buffer
        self.stderr = OutputBuffer() if stderr_buffer is None else stderr_buffer
        self._buffers = {STDOUT: self.stdout, STDERR: self.stderr}

        pipes = {}
        if handle.stdout is not None:
            pipes[STDOUT] = handle.stdout
        if handle.stderr is not None:
            pipes[STDERR] = handle.stderr
        # An unconnected stream has nothing to drain
        self._eof = {STDOUT: STDOUT not in pipes, STDERR: STDERR not in pipes}
        self._reader = make_reader(reader, pipes)

    @property
    def eof(self) -> tuple[bool, bool]:
        return self._eof[STDOUT], self._eof[STDERR]

    @property
    def done(self) -> bool:
        return all(self._eof.values())

    def drain_available(self, timeout: float = 0.0) -> tuple[bool, bool]:
        """One bounded read pass over both streams.

        Waits at most `timeout` seconds for the first byte on either stream.
        Returns (stdout_eof, stderr_eof).
        """
        if self.done:
            return self.eof

        failure = None
        for name, item in self._reader.read(timeout):
            if isinstance(item, OSError):
                self._eof[name] = True
                failure = failure or (name, item)
            elif item:
                self._buffers[name].append(item)
            else:
                self._eof[name] = True

        if failure is not None:
            name, exc = failure
            raise PipeError(self.command, name, exc.strerror or str(exc)) from exc
        return self.eof

    def drain_remaining(self, timeout: float) -> tuple[bool, bool]:
        """Drain until both streams reach EOF or `timeout` passes with no progress.

        A grandchild holding a pipe open therefore cannot hang the caller.
        """
        while not self.done:
            before = (len(self.stdout), len(self.stderr), self.eof)
            self.drain_available(timeout)
            if (len(self.stdout), len(self.stderr), self.eof) == before:
                break
        return self.eof

    def close(self) -> None:
        self._reader.close()
