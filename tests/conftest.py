"""Shared fakes for exercising sessions without a cluster."""

from __future__ import annotations

import queue
import threading

import pytest

PROMPT = "sh-4.4# "


class FakeShellProcess:
    """Scripted stand-in for an oc exec process running a remote shell.

    Prints the prompt on start, answers each received line with the canned
    response for that command followed by the prompt, and ends the stream
    on 'exit', end of input, or close().
    """

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        prompt: str = PROMPT,
        exit_code: int = 0,
        greet: bool = True,
    ) -> None:
        self.responses = responses or {}
        self.prompt = prompt
        self.exit_code = exit_code
        self.received: list[str] = []
        self.stdin_closed = False
        self.closed = False
        self.closed_by: str | None = None
        self.terminated = False
        self._output: queue.Queue[bytes] = queue.Queue()
        self._partial = ""
        self._ended = threading.Event()
        self._lock = threading.Lock()
        if greet:
            self._output.put(prompt.encode())

    @property
    def ended(self) -> bool:
        return self._ended.is_set()

    def emit(self, text: str) -> None:
        self._output.put(text.encode())

    def end(self) -> None:
        with self._lock:
            if self._ended.is_set():
                return
            self._ended.set()
            self._output.put(b"")

    def read(self, size: int = 4096) -> bytes:
        return self._output.get()

    def write(self, data: bytes) -> None:
        if self._ended.is_set():
            raise OSError("stream ended")
        self._partial += data.decode()
        while "\n" in self._partial:
            line, self._partial = self._partial.split("\n", 1)
            self.received.append(line)
            self.emit(line + "\r\n")
            if line == "exit":
                self.emit("exit\r\n")
                self.end()
                return
            self.emit(self.responses.get(line, "") + self.prompt)

    def close_stdin(self) -> None:
        self.stdin_closed = True
        self.end()

    def terminate(self) -> None:
        self.terminated = True
        self.end()

    def wait(self) -> int:
        self._ended.wait(5)
        return self.exit_code

    def close(self) -> None:
        self.closed_by = threading.current_thread().name
        self.closed = True
        self.end()


class FakeClusterClient:
    """Cluster client returning fixed pod names and a prepared process."""

    def __init__(
        self,
        pod_names: list[str],
        process: FakeShellProcess | None = None,
    ) -> None:
        self.pod_names = pod_names
        self.process = process
        self.list_calls: list[str] = []
        self.exec_calls: list[tuple[str, str, str, list[str], bool]] = []

    def list_pod_names(self, namespace: str) -> list[str]:
        self.list_calls.append(namespace)
        return list(self.pod_names)

    def spawn_exec(
        self,
        namespace: str,
        pod: str,
        container: str,
        command: list[str],
        tty: bool = True,
    ) -> FakeShellProcess:
        self.exec_calls.append((namespace, pod, container, command, tty))
        if self.process is None:
            raise AssertionError("no exec process prepared")
        return self.process


GPS_VERSION_OUTPUT = (
    "UBX-MON-VER:\r\n"
    "  swVersion EXT CORE 1.00 (3fda8e)\r\n"
    "  hwVersion 00190000\r\n"
    "  extension ROM BASE 0x118B2060\r\n"
    "  extension FWVER=TIM 2.20\r\n"
    "  extension PROTVER=29.20\r\n"
)


@pytest.fixture
def fake_shell() -> FakeShellProcess:
    """A shell that answers the diagnostic probe like a healthy receiver."""
    return FakeShellProcess(
        responses={
            "ls -ltr": "total 0\r\n",
            "ubxtool -t -p MON-VER -P 29.20": GPS_VERSION_OUTPUT,
        }
    )


@pytest.fixture
def make_client():
    """Factory for FakeClusterClient."""

    def _make(
        pod_names: list[str] | None = None,
        process: FakeShellProcess | None = None,
    ) -> FakeClusterClient:
        if pod_names is None:
            pod_names = ["linuxptp-daemon-abcde"]
        return FakeClusterClient(pod_names, process)

    return _make


@pytest.fixture
def shell_cls() -> type[FakeShellProcess]:
    """The fake shell class, for tests that script their own output."""
    return FakeShellProcess
