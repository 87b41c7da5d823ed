# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import heapq
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ..config.models import NodeRegistry, NodeRole, NodeSpec
from ..errors import CycleError, InvalidRegistryError, UnknownDependencyError

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import PlanComputed, PlanFailed, new_ctx, stamp


@dataclass(frozen=True)
class BootstrapPlan:
    """
    Nodes in startup order. ``waves`` groups them by topological depth:
    every node of a wave only depends on nodes of earlier waves.
    """
    nodes: Tuple[NodeSpec, ...]
    waves: Tuple[Tuple[str, ...], ...]
    cluster: str = "cockroachdb"

    def __iter__(self) -> Iterator[NodeSpec]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def names(self) -> List[str]:
        return [n.name for n in self.nodes]

    def by_name(self) -> Dict[str, NodeSpec]:
        return {n.name: n for n in self.nodes}

    def dependents_of(self, name: str) -> List[str]:
        """Nodes depending on *name*, directly or transitively, in plan order."""
        affected: Set[str] = {name}
        out: List[str] = []
        for n in self.nodes:
            if any(d in affected for d in n.depends_on):
                affected.add(n.name)
                out.append(n.name)
        return out


def _validate_dependencies(registry: NodeRegistry) -> None:
    names: Set[str] = set(registry.names())
    for n in registry.nodes:
        for d in n.depends_on:
            if d not in names:
                raise UnknownDependencyError(
                    f"Node '{n.name}' depends on unknown node '{d}'"
                )


def _topological_order(registry: NodeRegistry) -> List[NodeSpec]:
    # ties between ready nodes go to registry insertion order
    index = {n.name: i for i, n in enumerate(registry.nodes)}
    indeg: Dict[str, int] = {n.name: len(n.depends_on) for n in registry.nodes}
    dependents: Dict[str, List[str]] = {n.name: [] for n in registry.nodes}
    for n in registry.nodes:
        for d in n.depends_on:
            dependents[d].append(n.name)

    ready = [index[name] for name, deg in indeg.items() if deg == 0]
    heapq.heapify(ready)
    order: List[NodeSpec] = []

    while ready:
        node = registry.nodes[heapq.heappop(ready)]
        order.append(node)
        for m in dependents[node.name]:
            indeg[m] -= 1
            if indeg[m] == 0:
                heapq.heappush(ready, index[m])

    if len(order) != len(registry.nodes):
        stuck = sorted((name for name, deg in indeg.items() if deg > 0), key=index.__getitem__)
        raise CycleError(f"Cyclic dependency detected among nodes: {', '.join(stuck)}")
    return order


def _validate_roles(order: List[NodeSpec]) -> None:
    seeds = [n for n in order if n.role == NodeRole.SEED]
    if not seeds:
        raise InvalidRegistryError("At least one seed node is required")

    reaches_seed: Dict[str, bool] = {}
    for n in order:
        if n.role == NodeRole.SEED:
            if n.depends_on:
                raise InvalidRegistryError(
                    f"Seed node '{n.name}' must not have dependencies, got: {', '.join(n.depends_on)}"
                )
            reaches_seed[n.name] = True
            continue
        if not n.depends_on:
            raise InvalidRegistryError(f"Joiner node '{n.name}' must depend on at least one seed")
        reaches_seed[n.name] = any(reaches_seed[d] for d in n.depends_on)
        if not reaches_seed[n.name]:
            raise InvalidRegistryError(f"Joiner node '{n.name}' does not depend on any seed")


def _waves(order: List[NodeSpec]) -> Tuple[Tuple[str, ...], ...]:
    depth: Dict[str, int] = {}
    for n in order:
        depth[n.name] = 1 + max((depth[d] for d in n.depends_on), default=-1)
    waves: List[List[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
    for n in order:
        waves[depth[n.name]].append(n.name)
    return tuple(tuple(w) for w in waves)


def validate(registry: NodeRegistry) -> List[NodeSpec]:
    """
    Check the dependency graph and role rules of *registry* and return
    its startup order. Raises UnknownDependencyError, CycleError or
    InvalidRegistryError.
    """
    _validate_dependencies(registry)
    order = _topological_order(registry)
    _validate_roles(order)
    return order


def plan(
    registry: NodeRegistry,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> BootstrapPlan:
    """
    Stable topological sort of nodes based on 'depends_on'.
    Independent nodes keep their registry order, so equal input always
    yields the same plan. Emits PlanComputed / PlanFailed if an EventBus
    is provided.
    """
    ctx = run_ctx or new_ctx(cluster=registry.cluster)
    try:
        order = validate(registry)
        result = BootstrapPlan(nodes=tuple(order), waves=_waves(order), cluster=registry.cluster)
        if bus:
            bus.emit(PlanComputed(order=result.names(), waves=[list(w) for w in result.waves], **stamp(ctx)))
        return result

    except Exception as e:
        if bus:
            bus.emit(PlanFailed(error=str(e), **stamp(ctx)))
        raise
