"""Exceptions raised by ksheldon."""

from __future__ import annotations


class KsheldonError(Exception):
    """Base exception for ksheldon errors."""

    pass


class ConfigError(KsheldonError):
    """Configuration file could not be read or is invalid."""

    pass


class ResolutionError(KsheldonError):
    """A pod could not be resolved from a name prefix."""

    def __init__(self, message: str, namespace: str, prefix: str) -> None:
        super().__init__(message)
        self.namespace = namespace
        self.prefix = prefix


class PodNotFoundError(ResolutionError):
    """No pod matches the prefix."""

    def __init__(self, namespace: str, prefix: str) -> None:
        super().__init__(
            f"no pod with prefix {prefix} found in namespace {namespace}",
            namespace,
            prefix,
        )


class AmbiguousPodError(ResolutionError):
    """More than one pod matches the prefix."""

    def __init__(self, namespace: str, prefix: str, pod_names: list[str]) -> None:
        super().__init__(
            f"too many ({len(pod_names)}) pods with prefix {prefix} "
            f"found in namespace {namespace}",
            namespace,
            prefix,
        )
        self.pod_names = pod_names

    @property
    def count(self) -> int:
        return len(self.pod_names)


class TransportError(KsheldonError):
    """A cluster call or stream read/write failed.

    Attributes:
        context: Where the failure happened (namespace, pod, container,
            command), whichever are known.
    """

    def __init__(self, message: str, **context: str) -> None:
        if context:
            details = ", ".join(f"{key}={value}" for key, value in context.items())
            message = f"{message} ({details})"
        super().__init__(message)
        self.context = context


class OcError(TransportError):
    """The oc CLI failed."""

    pass


class OcNotInstalledError(OcError):
    """The oc CLI is not installed."""

    pass


class OcNotLoggedInError(OcError):
    """Not logged in to the cluster."""

    pass


class OcTimeoutError(OcError):
    """The oc CLI command timed out."""

    pass


class ScriptError(KsheldonError):
    """An automation step failed."""

    def __init__(self, message: str, step_index: int | None = None) -> None:
        super().__init__(message)
        self.step_index = step_index


class StepTimeoutError(ScriptError):
    """Expected output did not appear before the timeout elapsed."""

    def __init__(
        self, pattern: str, timeout: float, step_index: int | None = None
    ) -> None:
        super().__init__(
            f"timed out after {timeout:g}s waiting for {pattern!r}", step_index
        )
        self.pattern = pattern
        self.timeout = timeout


class StreamClosedError(ScriptError):
    """Output stream ended before the expected output appeared."""

    def __init__(self, pattern: str, step_index: int | None = None) -> None:
        super().__init__(
            f"stream closed while waiting for {pattern!r}", step_index
        )
        self.pattern = pattern


class SessionWaitTimeout(KsheldonError):
    """The exec session did not finish within the wait timeout."""

    pass
