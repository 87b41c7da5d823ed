# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single bootstrap run
    cluster: str

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_ctx(cluster: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": _now(),
        "run_id": run_id or str(uuid.uuid4()),
        "cluster": cluster,
    }


def stamp(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Same run context with a fresh timestamp."""
    return {**ctx, "ts": _now()}


# ---------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    order: List[str]
    waves: List[List[str]]

@dataclass(frozen=True)
class PlanFailed(BaseEvent):
    error: str


# ---------------------------------------------------------------------
# Node lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunStarted(BaseEvent):
    nodes: List[str]

@dataclass(frozen=True)
class NodeStarting(BaseEvent):
    name: str
    role: str
    peers: List[str]

@dataclass(frozen=True)
class NodeAwaitingHealth(BaseEvent):
    name: str
    timeout_s: float

@dataclass(frozen=True)
class ProbeAttempt(BaseEvent):
    name: str
    attempt: int
    healthy: bool

@dataclass(frozen=True)
class NodeHealthy(BaseEvent):
    name: str
    attempts: int
    duration_ms: int

@dataclass(frozen=True)
class JoinAttempt(BaseEvent):
    name: str
    attempt: int
    seeds: List[str]

@dataclass(frozen=True)
class NodeJoined(BaseEvent):
    name: str
    seed: str
    attempts: int

@dataclass(frozen=True)
class NodeFailed(BaseEvent):
    name: str
    state: str        # state the node was in when it failed
    kind: str         # exception class name
    error: str

@dataclass(frozen=True)
class NodeSkipped(BaseEvent):
    name: str
    blocked_by: Optional[str] = None


# ---------------------------------------------------------------------
# Run end
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunCancelled(BaseEvent):
    pass

@dataclass(frozen=True)
class BootstrapSummary(BaseEvent):
    healthy: int
    joined: int
    failed: int
    pending: int
    cancelled: bool = False
