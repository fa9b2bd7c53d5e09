# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/cli/app.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer

from hostup.command import CommandOptions, ConvergeCommand
from hostup.config.models import TargetKind
from hostup.errors import HostupError
from hostup.logging.log import init_logging
from hostup.observers.console import ConsoleObserver
from hostup.observers.dispatcher import EventBus
from hostup.observers.jsonfile import JsonFileObserver
from hostup.observers.logger import LoggerObserver


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="hostup node convergence CLI")


@app.callback()
def main() -> None:
    """Converge a host to its desired node configuration."""


@app.command()
def converge(
    conf: str = typer.Option(..., "--conf", help="Node configuration (path or file:// URL)"),
    cache_dir: str = typer.Option(..., "--cache-dir", help="Local cache for downloaded artifacts"),
    fs_root: str = typer.Option("/", "--fs-root", help="Root of the filesystem to converge"),
    target: TargetKind = typer.Option(TargetKind.DIRECT, "--target", case_sensitive=False),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the dry-run report or cloud-init document here"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir"),
    events: bool = typer.Option(False, "--events", help="Echo lifecycle events to stderr"),
    verbose: bool = typer.Option(False, "--verbose"),
):
    logger, run_id, log_path = init_logging(base_dir=log_dir, verbose=verbose)

    typer.echo("", err=True)
    typer.secho("hostup converge", bold=True, err=True)
    typer.echo(f"  Run ID   : {run_id}", err=True)
    typer.echo(f"  Target   : {target.value}", err=True)
    typer.echo(f"  Logs     : {log_path}", err=True)
    typer.echo("", err=True)

    event_log = JsonFileObserver(log_path.with_suffix(".jsonl"))
    observers = [LoggerObserver(logger), event_log]
    if events:
        observers.append(ConsoleObserver(err=True))
    bus = EventBus(observers=observers)

    options = CommandOptions(
        config_location=conf,
        cache_dir=cache_dir,
        fs_root=fs_root,
        target=target.value,
    )

    stream = out.open("w", encoding="utf-8") if out else sys.stdout
    try:
        report = ConvergeCommand(options, bus=bus, run_id=run_id).run(out=stream)
    except HostupError as e:
        logger.error("hostup converge failed: %s", e)
        typer.secho(f"error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    finally:
        event_log.close()
        if out:
            stream.close()

    typer.secho(f"Converged: {report.summary()}", fg=typer.colors.GREEN, err=True)


if __name__ == "__main__":
    app()
