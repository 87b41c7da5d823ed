# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/bootstrap/sequencer.py

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import List, Optional

from ..config.models import BootstrapSettings, NodeRole, NodeSpec
from ..identity.store import IdentityStore
from ..join.coordinator import JoinCoordinator
from ..node.interface import NodeLauncher
from ..probe.prober import ReadinessProber
from .planner import BootstrapPlan
from .state import BootstrapReport, NodeRecord, NodeState

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import (
    new_ctx,
    stamp,
    RunStarted,
    NodeStarting,
    NodeAwaitingHealth,
    ProbeAttempt,
    NodeHealthy,
    JoinAttempt,
    NodeJoined,
    NodeFailed,
    NodeSkipped,
    RunCancelled,
    BootstrapSummary,
)

log = logging.getLogger("clusterboot")


@dataclass
class BootstrapOptions:
    probe_timeout: float = 120.0
    poll_interval: float = 2.0
    max_workers: int = 4
    halt_on_failure: bool = False   # False: only the failed node's dependents are skipped

    @classmethod
    def from_settings(cls, settings: BootstrapSettings) -> "BootstrapOptions":
        return cls(
            probe_timeout=settings.probe_timeout,
            poll_interval=settings.poll_interval,
            max_workers=settings.max_workers,
            halt_on_failure=settings.halt_on_failure,
        )


class _BootstrapRun:
    """State of one bootstrap run. Only this object mutates NodeRecords."""

    def __init__(
        self,
        plan: BootstrapPlan,
        identity_store: IdentityStore,
        prober: ReadinessProber,
        join_coordinator: JoinCoordinator,
        launcher: NodeLauncher,
        options: BootstrapOptions,
        bus: EventBus,
        ctx: dict,
        cancel: threading.Event,
    ):
        self.plan = plan
        self.nodes = plan.by_name()
        self.identity_store = identity_store
        self.prober = prober
        self.join_coordinator = join_coordinator
        self.launcher = launcher
        self.options = options
        self.bus = bus
        self.ctx = ctx
        self.cancel = cancel
        self.report = BootstrapReport(
            records={n.name: NodeRecord(name=n.name, role=n.role) for n in plan.nodes}
        )
        self._lock = threading.Lock()

    def emit(self, event_cls, **data) -> None:
        self.bus.emit(event_cls(**data, **stamp(self.ctx)))

    # -------------------------------------------------------------------------
    # Record updates
    # -------------------------------------------------------------------------

    def _transition(self, rec: NodeRecord, new: NodeState) -> None:
        with self._lock:
            rec.transition(new)
        log.debug("[run] %s -> %s", rec.name, new.value)

    def _fail(self, rec: NodeRecord, exc: Exception) -> None:
        with self._lock:
            was = rec.state
            rec.error_kind = type(exc).__name__
            rec.error = str(exc)
            rec.transition(NodeState.FAILED)
        log.error("[run] %s failed while %s: %s: %s", rec.name, was.value, rec.error_kind, rec.error)
        log.debug("[run] %s failure detail", rec.name, exc_info=exc)
        self.emit(NodeFailed, name=rec.name, state=was.value, kind=rec.error_kind, error=rec.error)

    def _skip(self, rec: NodeRecord, blocked_by: Optional[str]) -> None:
        with self._lock:
            rec.blocked_by = blocked_by
        log.warning(
            "[run] %s not started: %s",
            rec.name, f"depends on failed node '{blocked_by}'" if blocked_by else "run halted",
        )
        self.emit(NodeSkipped, name=rec.name, blocked_by=blocked_by)

    def _blocker(self, node: NodeSpec) -> Optional[str]:
        """Root failed node keeping *node* from starting, if any."""
        with self._lock:
            for d in node.depends_on:
                dep = self.report.records[d]
                if not dep.succeeded:
                    return dep.blocked_by or d
        return None

    def _healthy_seed_addresses(self) -> List[str]:
        with self._lock:
            return [
                n.address
                for n in self.plan.nodes
                if n.role == NodeRole.SEED
                and self.report.records[n.name].state in (NodeState.HEALTHY, NodeState.JOINED)
            ]

    # -------------------------------------------------------------------------
    # Node lifecycle
    # -------------------------------------------------------------------------

    def bring_up(self, node: NodeSpec) -> None:
        rec = self.report.records[node.name]
        if self.cancel.is_set():
            return  # stays pending

        try:
            # still pending: a bad bundle must never reach the node
            bundle = self.identity_store.resolve(node.name)
            peers = [self.nodes[d].address for d in node.depends_on]

            self._transition(rec, NodeState.STARTING)
            self.emit(NodeStarting, name=node.name, role=node.role.value, peers=peers)
            self.launcher.start(node, bundle, peers)

            timeout = node.health_timeout or self.options.probe_timeout
            self._transition(rec, NodeState.AWAITING_HEALTH)
            self.emit(NodeAwaitingHealth, name=node.name, timeout_s=timeout)

            t0 = time.time()
            result = self.prober.wait(
                node,
                timeout,
                self.options.poll_interval,
                cancel=self.cancel,
                on_attempt=lambda attempt, healthy: self.emit(
                    ProbeAttempt, name=node.name, attempt=attempt, healthy=healthy
                ),
            )
            rec.probe_attempts = result.attempts
            self._transition(rec, NodeState.HEALTHY)
            self.emit(
                NodeHealthy,
                name=node.name,
                attempts=result.attempts,
                duration_ms=int((time.time() - t0) * 1000),
            )

            if node.role == NodeRole.JOINER:
                joined = self.join_coordinator.join(
                    node,
                    bundle,
                    self._healthy_seed_addresses(),
                    cancel=self.cancel,
                    on_attempt=lambda attempt, seeds: self.emit(
                        JoinAttempt, name=node.name, attempt=attempt, seeds=list(seeds)
                    ),
                )
                with self._lock:
                    rec.joined_via = joined.seed
                    rec.join_attempts = joined.attempts
                self._transition(rec, NodeState.JOINED)
                self.emit(NodeJoined, name=node.name, seed=joined.seed, attempts=joined.attempts)

        except Exception as e:
            self._fail(rec, e)

    # -------------------------------------------------------------------------
    # Waves
    # -------------------------------------------------------------------------

    def execute(self) -> BootstrapReport:
        self.emit(RunStarted, nodes=self.plan.names())
        halted = False

        for wave in self.plan.waves:
            if self.cancel.is_set():
                break

            runnable: List[NodeSpec] = []
            for name in wave:
                node = self.nodes[name]
                rec = self.report.records[name]
                if halted:
                    self._skip(rec, None)
                    continue
                blocker = self._blocker(node)
                if blocker:
                    self._skip(rec, blocker)
                    continue
                runnable.append(node)

            if not runnable:
                continue

            log.info("[run] starting wave: %s", ", ".join(n.name for n in runnable))
            workers = max(1, min(self.options.max_workers, len(runnable)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="node") as pool:
                futures = [pool.submit(self.bring_up, node) for node in runnable]
                for f in as_completed(futures):
                    f.result()

            if self.options.halt_on_failure and any(
                self.report.records[n.name].state == NodeState.FAILED for n in runnable
            ):
                halted = True

        self.report.cancelled = self.cancel.is_set()
        if self.report.cancelled:
            log.warning("[run] cancelled; nodes not started stay pending")
            self.emit(RunCancelled)

        r = self.report
        self.emit(
            BootstrapSummary,
            healthy=len(r.in_state(NodeState.HEALTHY)),
            joined=len(r.in_state(NodeState.JOINED)),
            failed=len(r.failed),
            pending=len(r.in_state(NodeState.PENDING)),
            cancelled=r.cancelled,
        )
        log.info("[run] %s", r.summary())
        return r


def run(
    plan: BootstrapPlan,
    identity_store: IdentityStore,
    prober: ReadinessProber,
    join_coordinator: JoinCoordinator,
    launcher: NodeLauncher,
    options: Optional[BootstrapOptions] = None,
    observers: Optional[List] = None,
    cancel: Optional[threading.Event] = None,
    run_ctx: Optional[dict] = None,
) -> BootstrapReport:
    """
    Bring every node of *plan* up, wave by wave.

    Per node: resolve bundle -> starting (launcher) -> awaiting_health
    (prober, bounded by ``options.probe_timeout`` or the node's own
    ``health_timeout``) -> healthy -> joined (joiners only, through the
    seeds healthy at that moment).

    A failure marks the node failed and leaves its dependents pending;
    nothing already started is rolled back. Setting *cancel* aborts
    in-flight probes and joins and starts nothing new.
    """
    bootstrap = _BootstrapRun(
        plan=plan,
        identity_store=identity_store,
        prober=prober,
        join_coordinator=join_coordinator,
        launcher=launcher,
        options=options or BootstrapOptions(),
        bus=EventBus(observers or []),
        ctx=run_ctx or new_ctx(cluster=plan.cluster),
        cancel=cancel or threading.Event(),
    )
    return bootstrap.execute()
