"""Cluster client built on the oc CLI."""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import pexpect

from ksheldon.exceptions import (
    OcError,
    OcNotInstalledError,
    OcNotLoggedInError,
    OcTimeoutError,
)

logger = logging.getLogger(__name__)


@dataclass
class OcConfig:
    """Configuration for the oc client.

    Attributes:
        kubeconfig: Path to the kubeconfig file (None for oc's default).
        context: Kubeconfig context to use (None for current context).
        timeout: Default timeout for oc commands, in seconds.
    """

    kubeconfig: Path | None = None
    context: str | None = None
    timeout: int = 30


class PexpectExecProcess:
    """An oc exec process running on a pexpect pseudo-terminal.

    oc refuses to allocate a remote TTY unless its stdin is a terminal, so
    the process is spawned by pexpect and everything it prints, stdout and
    stderr alike, is read back as raw bytes.
    """

    def __init__(self, cmd: list[str]) -> None:
        # The remote TTY does the echoing.
        self._child = pexpect.spawn(cmd[0], cmd[1:], timeout=None, echo=False)

    @property
    def pid(self) -> int:
        return self._child.pid

    def read(self, size: int = 4096) -> bytes:
        try:
            return self._child.read_nonblocking(size, timeout=None)
        except pexpect.EOF:
            return b""
        except pexpect.ExceptionPexpect as e:
            raise OSError(str(e)) from e

    def write(self, data: bytes) -> None:
        self._child.send(data)

    def close_stdin(self) -> None:
        self._child.sendeof()

    def terminate(self) -> None:
        """Signal the process to stop without releasing the terminal."""
        try:
            self._child.terminate(force=True)
        except pexpect.ExceptionPexpect as e:
            logger.debug("terminating exec process failed: %s", e)

    def wait(self) -> int:
        try:
            # isalive() reaps the child if it has already exited.
            if self._child.isalive():
                self._child.wait()
        except pexpect.ExceptionPexpect as e:
            raise OSError(str(e)) from e
        if self._child.exitstatus is None:
            # Killed by a signal; report it the way subprocess does.
            return -self._child.signalstatus
        return self._child.exitstatus

    def close(self) -> None:
        self._child.close(force=True)


class OcClient:
    """Runs oc commands against the cluster selected by OcConfig."""

    def __init__(self, config: OcConfig | None = None) -> None:
        """Initialize the client.

        Args:
            config: oc configuration. Defaults to OcConfig().
        """
        self._config = config or OcConfig()

    @property
    def config(self) -> OcConfig:
        return self._config

    def base_command(self) -> list[str]:
        """Return the oc invocation with global flags applied."""
        cmd = ["oc"]
        if self._config.kubeconfig:
            cmd.extend(["--kubeconfig", str(self._config.kubeconfig)])
        if self._config.context:
            cmd.extend(["--context", self._config.context])
        return cmd

    def run(
        self,
        *args: str,
        check: bool = True,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run an oc command and capture its output.

        Args:
            *args: Command arguments (without 'oc').
            check: Raise on non-zero exit (default True).
            timeout: Timeout in seconds. None uses the configured default,
                0 disables the timeout.

        Returns:
            CompletedProcess result.

        Raises:
            OcNotInstalledError: If oc is not installed.
            OcTimeoutError: If the command times out.
            OcNotLoggedInError: If the cluster rejects the credentials.
            OcError: If the command fails and check=True.
        """
        cmd = self.base_command()
        cmd.extend(args)

        if timeout is None:
            timeout_value: float | None = self._config.timeout
        elif timeout == 0:
            timeout_value = None
        else:
            timeout_value = timeout

        logger.debug("running: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout_value,
            )
        except subprocess.TimeoutExpired:
            cmd_str = " ".join(cmd)
            raise OcTimeoutError(
                f"oc command timed out after {timeout_value}s: {cmd_str}\n"
                "This may indicate network issues connecting to the cluster."
            ) from None
        except FileNotFoundError as e:
            raise OcNotInstalledError(
                "oc CLI not found. Install the OpenShift client and make sure "
                "it is on your PATH"
            ) from e

        if check and result.returncode != 0:
            stderr = result.stderr
            if "error: You must be logged in" in stderr or "Unauthorized" in stderr:
                raise OcNotLoggedInError(
                    "Not logged in to the cluster. Check the kubeconfig "
                    "credentials or run: oc login <cluster-url>"
                )
            raise OcError(f"oc command failed: {stderr.strip()}")

        return result

    def list_pod_names(self, namespace: str) -> list[str]:
        result = self.run("get", "pods", "-n", namespace, "-o", "json")
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise OcError(f"Unexpected pod list output: {e}") from e

        names = []
        for item in data.get("items", []):
            name = item.get("metadata", {}).get("name")
            if name:
                names.append(name)
        return names

    def exec_command(
        self,
        namespace: str,
        pod: str,
        container: str,
        command: list[str],
        tty: bool = True,
        stdin: bool = True,
    ) -> list[str]:
        """Build the oc exec argument vector.

        Args:
            namespace: Pod namespace.
            pod: Pod name.
            container: Container name.
            command: Command and arguments to run in the container.
            tty: Allocate a TTY (-t).
            stdin: Attach stdin (-i).

        Returns:
            Full command line, starting with 'oc'.
        """
        cmd = self.base_command()
        cmd.append("exec")
        if stdin:
            cmd.append("-i")
        if tty:
            cmd.append("-t")
        cmd.extend(["-n", namespace, pod, "-c", container, "--"])
        cmd.extend(command)
        return cmd

    def spawn_exec(
        self,
        namespace: str,
        pod: str,
        container: str,
        command: list[str],
        tty: bool = True,
    ) -> PexpectExecProcess:
        cmd = self.exec_command(namespace, pod, container, command, tty=tty)
        logger.debug("spawning: %s", " ".join(cmd))
        try:
            return PexpectExecProcess(cmd)
        except pexpect.ExceptionPexpect as e:
            raise OcNotInstalledError(
                "oc CLI not found. Install the OpenShift client and make sure "
                "it is on your PATH"
            ) from e

    def attach(
        self,
        namespace: str,
        pod: str,
        container: str,
        command: list[str],
    ) -> int:
        """Attach the local terminal to a command in a container.

        Args:
            namespace: Pod namespace.
            pod: Pod name.
            container: Container name.
            command: Command and arguments to run.

        Returns:
            Exit code from the attached session.
        """
        cmd = self.exec_command(namespace, pod, container, command)
        logger.debug("attaching: %s", " ".join(cmd))
        try:
            exec_result = subprocess.run(cmd)
        except FileNotFoundError as e:
            raise OcNotInstalledError(
                "oc CLI not found. Install the OpenShift client and make sure "
                "it is on your PATH"
            ) from e
        finally:
            # Reset terminal state after the remote TTY let go
            os.system("stty sane 2>/dev/null")  # noqa: S605

        return exec_result.returncode
