# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/observers/console.py
import typer

from .events import BaseEvent


class ConsoleObserver:
    """Echo events to the terminal. err=True keeps stdout free for rendered output."""

    def __init__(self, err: bool = False):
        self.err = err

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        typer.echo(f"[{d['ts']}] {k} run={d['run_id']} env={d['env']} ctx={d['context']} data={{"
                   + ", ".join(f"{x}={y}" for x, y in d.items() if x not in ('ts', 'run_id', 'env', 'context')) + "}",
                   err=self.err)
