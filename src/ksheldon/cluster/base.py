"""Protocols for the cluster client and its exec processes."""

from __future__ import annotations

from typing import Protocol


class ExecProcess(Protocol):
    """A remote process attached to the local side of an exec stream."""

    def read(self, size: int = 4096) -> bytes:
        """Read output bytes, blocking until some arrive.

        Returns:
            The bytes read, or b"" once the stream has ended.
        """
        ...

    def write(self, data: bytes) -> None:
        """Write bytes to the remote process's stdin."""
        ...

    def close_stdin(self) -> None:
        """Signal end of input to the remote process."""
        ...

    def terminate(self) -> None:
        """Ask the process to stop. Safe to call while another thread reads."""
        ...

    def wait(self) -> int:
        """Wait for the exec stream to end.

        Returns:
            Exit code of the exec stream.
        """
        ...

    def close(self) -> None:
        """Release local resources, terminating the stream if still open."""
        ...


class ClusterClient(Protocol):
    """Cluster operations ksheldon depends on.

    OcClient implements this on top of the oc CLI.
    """

    def list_pod_names(self, namespace: str) -> list[str]:
        """List the names of all pods in a namespace.

        Args:
            namespace: Namespace to list.

        Returns:
            Pod names, in the order the cluster returned them.
        """
        ...

    def spawn_exec(
        self,
        namespace: str,
        pod: str,
        container: str,
        command: list[str],
        tty: bool = True,
    ) -> ExecProcess:
        """Start a command in a container with stdin, stdout and stderr attached.

        Args:
            namespace: Pod namespace.
            pod: Pod name.
            container: Container name.
            command: Command and arguments to run.
            tty: Allocate a TTY for the remote process.

        Returns:
            The running exec process.
        """
        ...
