# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/cli/app.py
from __future__ import annotations

import json
import logging
import signal
import threading
from pathlib import Path
from typing import Optional

import typer
from cryptography import x509

from clusterboot.bootstrap.planner import BootstrapPlan, plan as compute_plan
from clusterboot.bootstrap.sequencer import BootstrapOptions, run as run_bootstrap
from clusterboot.bootstrap.state import BootstrapReport, NodeState
from clusterboot.config.loader import load_registry
from clusterboot.config.models import NodeRegistry
from clusterboot.errors import CertificateError, ConfigurationError
from clusterboot.identity.store import IdentityStore, certificate_names
from clusterboot.join.client import HttpJoinClient
from clusterboot.join.coordinator import JoinCoordinator
from clusterboot.logging.log import event_log_path, init_logging
from clusterboot.node.ssh_launcher import SshNodeLauncher
from clusterboot.observers.console import ConsoleObserver
from clusterboot.observers.dispatcher import EventBus
from clusterboot.observers.events import new_ctx
from clusterboot.observers.jsonfile import JsonFileObserver
from clusterboot.observers.logger import LoggerObserver
from clusterboot.probe.checks import build_health_check
from clusterboot.probe.prober import ReadinessProber


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Ordered bootstrap of a mutual-TLS database cluster")

EXIT_FAILED = 1
EXIT_CONFIG = 2

_STATE_COLORS = {
    NodeState.HEALTHY: typer.colors.GREEN,
    NodeState.JOINED: typer.colors.GREEN,
    NodeState.FAILED: typer.colors.RED,
    NodeState.PENDING: typer.colors.YELLOW,
}


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _load(config: Path) -> NodeRegistry:
    try:
        return load_registry(config)
    except ConfigurationError as e:
        typer.secho(f"configuration error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_CONFIG)


def _plan(registry: NodeRegistry, **kw) -> BootstrapPlan:
    try:
        return compute_plan(registry, **kw)
    except ConfigurationError as e:
        typer.secho(f"configuration error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_CONFIG)


def build_components(registry: NodeRegistry, probe: Optional[str] = None):
    """Wire the production collaborators from the registry settings."""
    s = registry.settings
    identity_store = IdentityStore(registry)
    prober = ReadinessProber(build_health_check(registry, kind=probe))
    coordinator = JoinCoordinator.from_settings(HttpJoinClient.from_settings(s.join), s)
    launcher = SshNodeLauncher.from_settings(s)
    return identity_store, prober, coordinator, launcher


def print_report(report: BootstrapReport) -> None:
    for rec in report.records.values():
        line = f"  {rec.name:<20} {rec.role.value:<7} {rec.state.value:<16}"
        if rec.state == NodeState.FAILED:
            line += f" {rec.error_kind}: {rec.error}"
        elif rec.state == NodeState.PENDING:
            line += f" blocked by {rec.blocked_by}" if rec.blocked_by else " not attempted"
        elif rec.joined_via:
            line += f" via {rec.joined_via}"
        typer.secho(line, fg=_STATE_COLORS.get(rec.state))
    typer.echo("")
    typer.echo(f"  {report.summary()}")


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("plan")
def plan_cmd(
    config: Path = typer.Argument(..., help="Node registry YAML"),
    as_json: bool = typer.Option(False, "--json"),
):
    """Print the startup order and the waves of independent nodes."""
    registry = _load(config)
    p = _plan(registry)

    if as_json:
        typer.echo(json.dumps({"order": p.names(), "waves": [list(w) for w in p.waves]}, indent=2))
        return

    typer.echo(f"Cluster: {registry.cluster}")
    for i, wave in enumerate(p.waves, start=1):
        typer.echo(f"  wave {i}:")
        for name in wave:
            node = p.by_name()[name]
            deps = f" (after {', '.join(node.depends_on)})" if node.depends_on else ""
            typer.echo(f"    {name:<20} {node.role.value:<7} {node.address}{deps}")


@app.command("check-certs")
def check_certs(
    config: Path = typer.Argument(..., help="Node registry YAML"),
):
    """Resolve and verify every node's certificate bundle."""
    registry = _load(config)
    results = IdentityStore(registry).resolve_all()

    bad = 0
    for name, result in results.items():
        if isinstance(result, CertificateError):
            bad += 1
            typer.secho(f"  {name:<20} {type(result).__name__}: {result}", fg=typer.colors.RED)
        else:
            subject = ", ".join(certificate_names(x509.load_pem_x509_certificate(result.cert_pem)))
            client = " +client" if result.has_client_cert else ""
            typer.secho(f"  {name:<20} ok ({subject}){client}", fg=typer.colors.GREEN)

    if bad:
        raise typer.Exit(EXIT_FAILED)


@app.command("run")
def run_cmd(
    config: Path = typer.Argument(..., help="Node registry YAML"),
    probe: Optional[str] = typer.Option(
        None,
        "--probe",
        help="Health check: 'http' (readiness endpoint) or 'command' (ssh). Defaults to settings.probe.kind.",
    ),
    probe_timeout: Optional[float] = typer.Option(None, "--probe-timeout", help="Seconds per node"),
    halt_on_failure: bool = typer.Option(False, "--halt-on-failure", help="Start nothing after the first failure"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Start every node in dependency order and join joiners to the seeds."""
    if probe not in (None, "http", "command"):
        raise typer.BadParameter("--probe must be 'http' or 'command'")

    registry = _load(config)

    logger, run_id, log_path = init_logging(
        base_dir=log_dir, cluster=registry.cluster, verbose=debug, console_level=logging.WARNING
    )
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo("")

    events = JsonFileObserver(event_log_path(log_path))
    observers = [ConsoleObserver(verbose=debug), LoggerObserver(logger), events]
    ctx = new_ctx(cluster=registry.cluster, run_id=run_id)

    try:
        p = _plan(registry, bus=EventBus(observers), run_ctx=ctx)
    except typer.Exit:
        events.close()
        raise

    options = BootstrapOptions.from_settings(registry.settings)
    if probe_timeout is not None:
        options.probe_timeout = probe_timeout
    if halt_on_failure:
        options.halt_on_failure = True

    identity_store, prober, coordinator, launcher = build_components(registry, probe=probe)

    cancel = threading.Event()

    def _on_signal(signum, _frame):
        logger.warning("received signal %s, cancelling bootstrap", signum)
        cancel.set()

    previous = {sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        report = run_bootstrap(
            p,
            identity_store,
            prober,
            coordinator,
            launcher,
            options=options,
            observers=observers,
            cancel=cancel,
            run_ctx=ctx,
        )
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        events.close()

    typer.echo("")
    if as_json:
        typer.echo(json.dumps(report.dict(), indent=2))
    else:
        print_report(report)

    if not report.ok:
        raise typer.Exit(EXIT_FAILED)


if __name__ == "__main__":
    app()
