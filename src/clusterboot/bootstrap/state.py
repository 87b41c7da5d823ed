# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/bootstrap/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config.models import NodeRole


class NodeState(str, Enum):
    PENDING = "pending"
    STARTING = "starting"
    AWAITING_HEALTH = "awaiting_health"
    HEALTHY = "healthy"
    JOINED = "joined"
    FAILED = "failed"


_ALLOWED = {
    NodeState.PENDING: {NodeState.STARTING, NodeState.FAILED},
    NodeState.STARTING: {NodeState.AWAITING_HEALTH, NodeState.FAILED},
    NodeState.AWAITING_HEALTH: {NodeState.HEALTHY, NodeState.FAILED},
    NodeState.HEALTHY: {NodeState.JOINED, NodeState.FAILED},
    NodeState.JOINED: set(),
    NodeState.FAILED: set(),
}


def done_state(role: NodeRole) -> NodeState:
    """State in which a node of *role* has finished successfully."""
    return NodeState.HEALTHY if role == NodeRole.SEED else NodeState.JOINED


@dataclass
class NodeRecord:
    name: str
    role: NodeRole
    state: NodeState = NodeState.PENDING
    history: List[NodeState] = field(default_factory=lambda: [NodeState.PENDING])
    error_kind: Optional[str] = None   # exception class name
    error: Optional[str] = None
    blocked_by: Optional[str] = None   # failed node that kept this one from starting
    joined_via: Optional[str] = None   # seed address used for the join
    probe_attempts: int = 0
    join_attempts: int = 0

    def transition(self, new: NodeState) -> None:
        if new not in _ALLOWED[self.state]:
            raise RuntimeError(f"illegal transition for '{self.name}': {self.state.value} -> {new.value}")
        self.state = new
        self.history.append(new)

    @property
    def attempted(self) -> bool:
        return len(self.history) > 1

    @property
    def succeeded(self) -> bool:
        return self.state == done_state(self.role)

    def dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role.value,
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "error_kind": self.error_kind,
            "error": self.error,
            "blocked_by": self.blocked_by,
            "joined_via": self.joined_via,
            "probe_attempts": self.probe_attempts,
            "join_attempts": self.join_attempts,
        }


@dataclass
class BootstrapReport:
    records: Dict[str, NodeRecord] = field(default_factory=dict)   # plan order
    cancelled: bool = False

    def __getitem__(self, name: str) -> NodeRecord:
        return self.records[name]

    def in_state(self, state: NodeState) -> List[str]:
        return [r.name for r in self.records.values() if r.state == state]

    @property
    def reached(self) -> List[str]:
        """Nodes that got to healthy or joined."""
        return [r.name for r in self.records.values() if r.state in (NodeState.HEALTHY, NodeState.JOINED)]

    @property
    def failed(self) -> List[str]:
        return self.in_state(NodeState.FAILED)

    @property
    def not_attempted(self) -> List[str]:
        return [r.name for r in self.records.values() if not r.attempted]

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(r.succeeded for r in self.records.values())

    def summary(self) -> str:
        healthy = len(self.in_state(NodeState.HEALTHY))
        joined = len(self.in_state(NodeState.JOINED))
        failed = len(self.failed)
        pending = len(self.in_state(NodeState.PENDING))
        out = f"HEALTHY={healthy} JOINED={joined} FAILED={failed} PENDING={pending}"
        return out + (" CANCELLED" if self.cancelled else "")

    def dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "cancelled": self.cancelled,
            "nodes": [r.dict() for r in self.records.values()],
        }
