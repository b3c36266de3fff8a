"""Diagnostic target configuration for ksheldon."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path

from ksheldon.exceptions import ConfigError

PTP_NAMESPACE = "openshift-ptp"
PTP_POD_NAME_PREFIX = "linuxptp-daemon-"
PTP_CONTAINER = "linuxptp-daemon-container"
GPS_CONTAINER = "gpsd"

DEFAULT_PROMPT = "sh-4.4#"
DEFAULT_PROBE_COMMAND = "ubxtool -t -p MON-VER -P 29.20"
DEFAULT_PROBE_MARKER = "extension FWVER=TIM"
DEFAULT_STEP_TIMEOUT = 120.0


@dataclass
class DaemonConfig:
    """Where the daemon runs and how to talk to its shell.

    Attributes:
        namespace: Namespace holding the daemon pods.
        pod_name_prefix: Prefix that selects the daemon pod.
        container: Container to exec into.
        prompt: Shell prompt used as the synchronization point.
        list_command: Command sent first to check the shell responds.
        probe_command: Diagnostic command sent to the GPS receiver.
        probe_marker: Substring expected in the probe output.
        exit_command: Command that ends the remote shell.
        step_timeout: Seconds to wait for each expected output.
        session_timeout: Seconds bounding the whole script (None for no bound).
    """

    namespace: str = PTP_NAMESPACE
    pod_name_prefix: str = PTP_POD_NAME_PREFIX
    container: str = PTP_CONTAINER
    prompt: str = DEFAULT_PROMPT
    list_command: str = "ls -ltr"
    probe_command: str = DEFAULT_PROBE_COMMAND
    probe_marker: str = DEFAULT_PROBE_MARKER
    exit_command: str = "exit"
    step_timeout: float = DEFAULT_STEP_TIMEOUT
    session_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.step_timeout <= 0:
            raise ConfigError("step_timeout must be positive")
        if self.session_timeout is not None and self.session_timeout <= 0:
            raise ConfigError("session_timeout must be positive")


def parse_config(config_file: Path) -> DaemonConfig:
    """Parse a JSON configuration file into a DaemonConfig.

    Keys must match DaemonConfig field names; missing keys keep their
    defaults.

    Args:
        config_file: Path to the JSON file.

    Returns:
        Parsed DaemonConfig.

    Raises:
        ConfigError: If the file is unreadable, not a JSON object, or has
            unknown keys.
    """
    try:
        data = json.loads(config_file.read_text())
    except OSError as e:
        raise ConfigError(f"Cannot read {config_file}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_file} must contain a JSON object")

    known = {f.name for f in fields(DaemonConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            f"Unknown keys in {config_file}: {', '.join(unknown)}"
        )

    try:
        return DaemonConfig(**data)
    except TypeError as e:
        raise ConfigError(f"Invalid value in {config_file}: {e}") from e
