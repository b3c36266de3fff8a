"""Typer CLI for ksheldon."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Annotated

import typer

from ksheldon import __version__

app = typer.Typer(
    name="ksheldon",
    help="Open a shell in the PTP daemon container and run GPS diagnostics.",
    add_completion=False,
)

logger = logging.getLogger("ksheldon")


def version_callback(value: bool) -> None:
    """Print version information and exit."""
    if value:
        typer.echo(f"ksheldon {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Send log records to stderr, at DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print_step(index: int, step: object) -> None:
    logger.info("step %d: %s", index, step)


@app.command()
def main(
    ctx: typer.Context,
    kubeconfig: Annotated[
        Path | None,
        typer.Option(
            "--kubeconfig",
            "-k",
            help="Path to kubeconfig. Required.",
        ),
    ] = None,
    context: Annotated[
        str | None,
        typer.Option("--context", help="Kubeconfig context to use."),
    ] = None,
    container: Annotated[
        str | None,
        typer.Option(
            "--container",
            "-c",
            help="Container to open the shell in (e.g. gpsd).",
        ),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="JSON file overriding target settings."),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Seconds to wait for each expected output."),
    ] = None,
    session_timeout: Annotated[
        float | None,
        typer.Option("--session-timeout", help="Seconds bounding the whole script."),
    ] = None,
    interactive: Annotated[
        bool,
        typer.Option(
            "--interactive",
            "-i",
            help="Attach this terminal to the remote shell instead of "
            "running the diagnostic script.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show ksheldon version and exit.",
        ),
    ] = False,
) -> None:
    """Open a shell in the PTP daemon container and run GPS diagnostics."""
    configure_logging(verbose)

    if kubeconfig is None:
        typer.echo("Kubeconfig path (-k) is required", err=True)
        typer.echo(ctx.get_help(), err=True)
        raise typer.Exit(1)

    from ksheldon.automation import (
        PROBE_MARKER_STEP,
        OutcomeStatus,
        run_diagnostics,
    )
    from ksheldon.cluster import OcClient, OcConfig
    from ksheldon.config import DaemonConfig, parse_config
    from ksheldon.exceptions import KsheldonError
    from ksheldon.pods import ContainerTarget
    from ksheldon.session import SHELL_COMMAND

    try:
        daemon_config = parse_config(config_file) if config_file else DaemonConfig()
        overrides: dict[str, object] = {}
        if container:
            overrides["container"] = container
        if timeout is not None:
            overrides["step_timeout"] = timeout
        if session_timeout is not None:
            overrides["session_timeout"] = session_timeout
        daemon_config = dataclasses.replace(daemon_config, **overrides)
    except KsheldonError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(f"kubeconfig: {kubeconfig}")
    client = OcClient(OcConfig(kubeconfig=kubeconfig, context=context))

    try:
        target = ContainerTarget.create(
            client,
            daemon_config.namespace,
            daemon_config.pod_name_prefix,
            daemon_config.container,
        )
    except KsheldonError as e:
        typer.echo(f"Error: could not create container context: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(
        f"Target: {target.namespace}/{target.pod_name} "
        f"container {target.container_name}",
        err=True,
    )

    if interactive:
        typer.echo("Try typing in to the terminal", err=True)
        try:
            exit_code = client.attach(
                target.namespace,
                target.pod_name,
                target.container_name,
                [SHELL_COMMAND],
            )
        except KsheldonError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
        raise typer.Exit(exit_code)

    on_step = _print_step if verbose else None
    try:
        outcome = run_diagnostics(target, daemon_config, on_step=on_step)
        if (
            outcome.step_index == 0
            and outcome.status
            in (OutcomeStatus.STREAM_CLOSED, OutcomeStatus.TRANSPORT_ERROR)
        ):
            # The shell never came up; the pod may have been replaced.
            previous = target.pod_name
            target.refresh()
            if target.pod_name != previous:
                typer.echo(
                    f"Pod {previous} was replaced by {target.pod_name}, retrying",
                    err=True,
                )
                outcome = run_diagnostics(target, daemon_config, on_step=on_step)
    except KsheldonError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if not outcome.ok:
        typer.echo(f"Error: {outcome.describe()}", err=True)
        raise typer.Exit(1)

    probe_output = outcome.captures.get(PROBE_MARKER_STEP, "")
    if probe_output:
        typer.echo(probe_output.strip())
    typer.echo("GPS receiver diagnostics completed.", err=True)
