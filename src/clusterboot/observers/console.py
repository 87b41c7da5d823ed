# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/observers/console.py
import typer

from .events import BaseEvent

_COLORS = {
    "NodeHealthy": typer.colors.GREEN,
    "NodeJoined": typer.colors.GREEN,
    "NodeFailed": typer.colors.RED,
    "PlanFailed": typer.colors.RED,
    "NodeSkipped": typer.colors.YELLOW,
    "RunCancelled": typer.colors.YELLOW,
}

# per-poll noise stays in the log file
_QUIET = {"ProbeAttempt", "JoinAttempt"}


class ConsoleObserver:
    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def notify(self, event: BaseEvent) -> None:
        k = event.__class__.__name__
        if k in _QUIET and not self.verbose:
            return
        d = event.dict()
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in ("ts", "run_id", "cluster"))
        typer.secho(f"[{d['ts']}] {k} {data}", fg=_COLORS.get(k))
