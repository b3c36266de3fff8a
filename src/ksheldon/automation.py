"""Scripted send/expect automation over an exec session."""

from __future__ import annotations

import io
import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import pexpect
from pexpect.spawnbase import SpawnBase

from ksheldon.config import DaemonConfig
from ksheldon.exceptions import (
    ScriptError,
    SessionWaitTimeout,
    StepTimeoutError,
    StreamClosedError,
    TransportError,
)
from ksheldon.pods import ContainerTarget
from ksheldon.session import OutputPipe, SessionHandle, open_shell

logger = logging.getLogger(__name__)

Pattern = str | re.Pattern[str]


@dataclass(frozen=True)
class Send:
    """Write a line of text to the remote shell."""

    text: str


@dataclass(frozen=True)
class Expect:
    """Wait for a pattern in the remote output.

    Attributes:
        pattern: Literal substring, or a compiled regular expression.
        timeout: Seconds to wait; None uses the driver's step timeout.
    """

    pattern: Pattern
    timeout: float | None = None


Step = Send | Expect

# Index of the probe-marker Expect in diagnostic_script().
PROBE_MARKER_STEP = 4


class OutcomeStatus(str, Enum):
    """How a script run ended."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    STREAM_CLOSED = "stream_closed"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class SessionOutcome:
    """Result of running an automation script.

    Attributes:
        status: How the run ended.
        step_index: Index of the failing step (None when completed, or when
            the failure happened after the last step).
        pattern: Pattern that was never seen, for timeouts and closed streams.
        error: Exception behind a failure.
        captures: Output consumed by each successful Expect, by step index.
    """

    status: OutcomeStatus
    step_index: int | None = None
    pattern: str | None = None
    error: BaseException | None = None
    captures: dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED

    def describe(self) -> str:
        """One-line summary suitable for operators."""
        if self.ok:
            return "script completed"
        where = "" if self.step_index is None else f" at step {self.step_index}"
        if self.status is OutcomeStatus.TIMED_OUT:
            return f"timed out{where} waiting for {self.pattern!r}"
        if self.status is OutcomeStatus.STREAM_CLOSED:
            return f"stream closed{where} waiting for {self.pattern!r}"
        return f"transport error{where}: {self.error}"


def _pattern_text(pattern: Pattern) -> str:
    if isinstance(pattern, re.Pattern):
        return pattern.pattern
    return pattern


class _OutputReader(SpawnBase):
    """pexpect view of a session's output pipe.

    The stream thread fills the pipe; pexpect's searchers drain it here,
    decoding UTF-8 as output arrives. Everything read is copied to
    logfile_read.
    """

    def __init__(self, pipe: OutputPipe) -> None:
        super().__init__(timeout=None, encoding="utf-8", codec_errors="replace")
        self._pipe = pipe
        self.logfile_read = io.StringIO()

    def read_nonblocking(self, size: int = 1, timeout: float | None = -1) -> str:
        if timeout == -1:
            timeout = self.timeout
        chunk = self._pipe.read(timeout=timeout)
        if chunk is None:
            raise pexpect.TIMEOUT("Timeout exceeded.")
        text = self._decoder.decode(chunk, final=not chunk)
        if not text and not chunk:
            self.flag_eof = True
            raise pexpect.EOF("End Of File (EOF).")
        self._log(text, "read")
        return text


class AutomationDriver:
    """Drives a remote shell by sending lines and waiting for output.

    Output is appended to a buffer that grows for the life of the driver.
    Each successful expect() consumes the buffer up to the end of its match,
    so later expects only see newer output.

    Only one thread may use a driver, and only one driver may use a session.
    """

    def __init__(
        self,
        handle: SessionHandle,
        step_timeout: float = 120.0,
        session_timeout: float | None = None,
        line_terminator: str = "\n",
        exit_command: str = "exit",
        close_timeout: float = 10.0,
        on_step: Callable[[int, Step], None] | None = None,
    ) -> None:
        """Initialize the driver.

        Args:
            handle: Session whose pipes to drive.
            step_timeout: Default seconds for each expect.
            session_timeout: Seconds bounding everything run() does after it
                starts (None for no bound).
            line_terminator: Appended to every sent line.
            exit_command: Sent when releasing a session after a failure.
            close_timeout: Seconds to wait for the session to end once input
                is closed.
            on_step: Called with (index, step) just before each step starts.
        """
        self._handle = handle
        self._step_timeout = step_timeout
        self._session_timeout = session_timeout
        self._line_terminator = line_terminator
        self._exit_command = exit_command
        self._close_timeout = close_timeout
        self._on_step = on_step
        self._reader = _OutputReader(handle.stdout)
        self._deadline: float | None = None

    @property
    def buffer(self) -> str:
        """Everything received so far."""
        return self._reader.logfile_read.getvalue()

    def send(self, text: str) -> None:
        """Write text and the line terminator to the remote shell.

        Raises:
            TransportError: If the session no longer accepts input.
        """
        logger.debug("send: %r", text)
        try:
            self._handle.stdin.write((text + self._line_terminator).encode())
        except BrokenPipeError as e:
            raise TransportError(f"cannot send {text!r}: {e}") from e

    def force_close_input(self) -> None:
        """Tell the remote shell no more input is coming."""
        self._handle.stdin.force_close()

    def expect(self, pattern: Pattern, timeout: float | None = None) -> str:
        """Wait for pattern to appear in the remote output.

        Args:
            pattern: Literal substring, or a compiled regular expression.
            timeout: Seconds to wait; None uses the step timeout.

        Returns:
            Output consumed, from the previous match up to and including
            this one.

        Raises:
            StepTimeoutError: If the pattern did not appear in time.
            StreamClosedError: If the output ended before the pattern
                appeared.
        """
        if timeout is None:
            timeout = self._step_timeout
        start = time.monotonic()
        deadline = start + timeout
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        # The session deadline may leave less than the step timeout.
        wait = max(deadline - start, 0.0)

        expected = [pattern, pexpect.EOF, pexpect.TIMEOUT]
        if isinstance(pattern, re.Pattern):
            index = self._reader.expect(expected, timeout=wait)
        else:
            index = self._reader.expect_exact(expected, timeout=wait)

        if index == 1:
            raise StreamClosedError(_pattern_text(pattern))
        if index == 2:
            raise StepTimeoutError(_pattern_text(pattern), wait)
        logger.debug("matched %r", _pattern_text(pattern))
        return self._reader.before + self._reader.after

    def run(self, steps: Sequence[Step], force_close: bool = True) -> SessionOutcome:
        """Run steps in order, stopping at the first failure.

        The session is released either way: after success, input is closed
        and the session awaited; after a failure, an exit command is sent
        best-effort first.

        Args:
            steps: Script to run.
            force_close: Close remote input once all steps succeed.

        Returns:
            How the run ended.
        """
        if self._session_timeout is not None:
            self._deadline = time.monotonic() + self._session_timeout

        captures: dict[int, str] = {}
        for index, step in enumerate(steps):
            if self._on_step is not None:
                self._on_step(index, step)
            logger.debug("step %d: %s", index, step)
            try:
                if isinstance(step, Send):
                    self.send(step.text)
                else:
                    captures[index] = self.expect(step.pattern, step.timeout)
            except (ScriptError, TransportError) as e:
                outcome = self._failure(index, e, captures)
                logger.debug("script stopped: %s", outcome.describe())
                self._release()
                return outcome

        if force_close:
            self.force_close_input()
        try:
            error = self._handle.wait(self._close_timeout)
        except SessionWaitTimeout as e:
            self._handle.terminate()
            error = e
        if error is not None:
            return SessionOutcome(
                OutcomeStatus.TRANSPORT_ERROR, error=error, captures=captures
            )
        return SessionOutcome(OutcomeStatus.COMPLETED, captures=captures)

    def _failure(
        self,
        index: int,
        error: ScriptError | TransportError,
        captures: dict[int, str],
    ) -> SessionOutcome:
        if isinstance(error, StepTimeoutError):
            error.step_index = index
            status = OutcomeStatus.TIMED_OUT
            pattern: str | None = error.pattern
        elif isinstance(error, StreamClosedError):
            error.step_index = index
            status = OutcomeStatus.STREAM_CLOSED
            pattern = error.pattern
        else:
            status = OutcomeStatus.TRANSPORT_ERROR
            pattern = None
        return SessionOutcome(
            status,
            step_index=index,
            pattern=pattern,
            error=error,
            captures=captures,
        )

    def _release(self) -> None:
        if self._handle.done:
            return
        try:
            self.send(self._exit_command)
        except TransportError as e:
            logger.debug("could not send %r while releasing: %s", self._exit_command, e)
        self.force_close_input()
        try:
            self._handle.wait(self._close_timeout)
        except SessionWaitTimeout:
            logger.debug("session did not exit, terminating")
            self._handle.terminate()


def diagnostic_script(config: DaemonConfig) -> list[Step]:
    """Build the GPS receiver diagnostic script.

    Waits for the prompt, lists the working directory, runs the probe
    command, checks its output for the probe marker, and exits.
    """
    return [
        Expect(config.prompt),
        Send(config.list_command),
        Expect(config.prompt),
        Send(config.probe_command),
        Expect(config.probe_marker),
        Expect(config.prompt),
        Send(config.exit_command),
    ]


def run_diagnostics(
    target: ContainerTarget,
    config: DaemonConfig,
    on_step: Callable[[int, Step], None] | None = None,
) -> SessionOutcome:
    """Open a shell in target and run the diagnostic script over it.

    Raises:
        TransportError: If the shell could not be opened.
    """
    handle = SessionHandle()
    open_shell(target, handle)
    driver = AutomationDriver(
        handle,
        step_timeout=config.step_timeout,
        session_timeout=config.session_timeout,
        exit_command=config.exit_command,
        on_step=on_step,
    )
    return driver.run(diagnostic_script(config))
