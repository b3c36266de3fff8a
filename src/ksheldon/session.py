"""Exec sessions: remote shells streamed over background threads."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from collections.abc import Callable

from ksheldon.cluster.base import ExecProcess
from ksheldon.exceptions import (
    SessionWaitTimeout,
    TransportError,
)
from ksheldon.pods import ContainerTarget

logger = logging.getLogger(__name__)

SHELL_COMMAND = "/usr/bin/sh"

# Queued on an InputPipe to mark end of input. Never a bytes value, so it
# cannot collide with anything a caller writes.
_END_OF_INPUT = object()


class OutputPipe:
    """In-memory byte pipe fed by a stream pump and drained by one reader."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._chunks: deque[bytes] = deque()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def write(self, data: bytes) -> None:
        if not data:
            return
        with self._cond:
            if self._closed:
                raise BrokenPipeError("output pipe is closed")
            self._chunks.append(bytes(data))
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def read(self, timeout: float | None = None) -> bytes | None:
        """Read the next chunk of output.

        Args:
            timeout: Seconds to wait for data (None waits indefinitely).

        Returns:
            The next chunk, b"" once the pipe is closed and drained, or
            None if the timeout elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._chunks and not self._closed:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)
            if self._chunks:
                return self._chunks.popleft()
            return b""


class InputPipe:
    """Queue of bytes waiting to be written to the remote process."""

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def write(self, data: bytes) -> None:
        with self._lock:
            if self._closed:
                raise BrokenPipeError("input pipe is closed")
            self._queue.put(bytes(data))

    def force_close(self) -> None:
        """Mark end of input; later writes fail. Safe to call repeatedly."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_END_OF_INPUT)

    def get(self) -> bytes | None:
        """Block for the next queued write; None means end of input."""
        item = self._queue.get()
        if item is _END_OF_INPUT:
            return None
        return item  # type: ignore[return-value]


class SessionHandle:
    """Owns the I/O endpoints of one exec session and tracks its completion.

    Background units register with the handle before they start and
    report back when they finish. wait() does not return until every
    registered unit is done, so endpoints are never torn down while a
    pump is still writing to them. Completion is signalled once.
    """

    def __init__(self) -> None:
        self.stdin = InputPipe()
        self.stdout = OutputPipe()
        self.stderr = OutputPipe()
        self._cond = threading.Condition()
        self._active = 0
        self._started = False
        self._done = False
        self._error: BaseException | None = None
        self._callbacks: list[Callable[[SessionHandle], None]] = []
        self._process: ExecProcess | None = None

    @property
    def done(self) -> bool:
        with self._cond:
            return self._done

    @property
    def error(self) -> BaseException | None:
        """Error that ended the stream, if any."""
        with self._cond:
            return self._error

    def add_done_callback(self, fn: Callable[[SessionHandle], None]) -> None:
        """Call fn once the session completes (immediately if it already has)."""
        with self._cond:
            if not self._done:
                self._callbacks.append(fn)
                return
        fn(self)

    def wait(self, timeout: float | None = None) -> BaseException | None:
        """Block until the streaming threads have finished.

        Returns immediately if no stream was ever started.

        Args:
            timeout: Seconds to wait (None waits indefinitely).

        Returns:
            The error that ended the stream, or None on a clean exit.

        Raises:
            SessionWaitTimeout: If the timeout elapsed first.
        """
        with self._cond:
            finished = self._cond.wait_for(
                lambda: self._done or not self._started, timeout
            )
            if not finished:
                raise SessionWaitTimeout(
                    f"exec session still running after {timeout}s"
                )
            return self._error

    def terminate(self) -> None:
        """Stop the remote process; the streaming threads then wind down.

        The process is only signalled here. Its terminal is released by the
        stream thread once reading has stopped.
        """
        with self._cond:
            process = self._process
        if process is not None:
            process.terminate()

    def _register(self, process: ExecProcess | None = None) -> None:
        with self._cond:
            if self._done:
                raise RuntimeError("session handle already completed")
            self._started = True
            self._active += 1
            if process is not None:
                self._process = process

    def _finish(self, error: BaseException | None = None) -> None:
        with self._cond:
            if error is not None and self._error is None:
                self._error = error
            self._active -= 1
            if self._active > 0:
                return
            self._done = True
            callbacks, self._callbacks = self._callbacks, []
            self.stdin.force_close()
            self.stdout.close()
            self.stderr.close()
            self._cond.notify_all()
        for fn in callbacks:
            fn(self)


def _pump_input(
    process: ExecProcess,
    handle: SessionHandle,
    ended: threading.Event,
) -> None:
    while True:
        data = handle.stdin.get()
        if ended.is_set():
            return
        try:
            if data is None:
                process.close_stdin()
                return
            process.write(data)
        except OSError as e:
            logger.debug("stdin write failed: %s", e)
            return


def _stream(
    process: ExecProcess,
    handle: SessionHandle,
    context: dict[str, str],
) -> None:
    error: BaseException | None = None
    ended = threading.Event()
    input_thread = threading.Thread(
        target=_pump_input,
        args=(process, handle, ended),
        name="ksheldon-stdin",
        daemon=True,
    )
    input_thread.start()
    try:
        while True:
            chunk = process.read()
            if not chunk:
                break
            handle.stdout.write(chunk)
        exit_code = process.wait()
        logger.debug("exec stream ended with exit code %s", exit_code)
        if exit_code != 0:
            error = TransportError(
                f"remote command exited with status {exit_code}", **context
            )
    except OSError as e:
        error = TransportError(f"exec stream failed: {e}", **context)
    finally:
        ended.set()
        handle.stdin.force_close()
        input_thread.join(timeout=5)
        try:
            process.close()
        except OSError as e:
            logger.debug("closing exec process failed: %s", e)
        handle._finish(error)


def open_shell(
    target: ContainerTarget,
    handle: SessionHandle,
    command: str = SHELL_COMMAND,
) -> None:
    """Start a TTY shell in the target container, streamed through handle.

    Returns as soon as the stream is running. Errors that happen while
    streaming are reported by handle.wait(), not raised here. The target's
    pod name is used as cached; call target.refresh() first if the pod may
    have been replaced.

    Args:
        target: Container to open the shell in.
        handle: Handle whose pipes the shell is wired to.
        command: Shell to run.

    Raises:
        TransportError: If the exec request could not be started.
    """
    context = {
        "namespace": target.namespace,
        "pod": target.pod_name,
        "container": target.container_name,
        "command": command,
    }
    logger.debug(
        "execute command on ns=%s, pod=%s container=%s, cmd: %s",
        target.namespace,
        target.pod_name,
        target.container_name,
        command,
    )
    try:
        process = target.client.spawn_exec(
            target.namespace,
            target.pod_name,
            target.container_name,
            [command],
            tty=True,
        )
    except OSError as e:
        raise TransportError(f"error setting up remote command: {e}", **context) from e

    try:
        handle._register(process)
    except RuntimeError:
        process.close()
        raise
    threading.Thread(
        target=_stream,
        args=(process, handle, context),
        name="ksheldon-stream",
        daemon=True,
    ).start()
