# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/probe/prober.py

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..config.models import NodeSpec
from ..errors import CancellationError, ProbeTimeoutError
from ..utils.clock import Clock

log = logging.getLogger("clusterboot")


class HealthCheck(Protocol):
    def check(self, node: NodeSpec) -> bool:
        """
        True when the node is ready, False for a retryable failure.
        Raises HealthCheckError when polling again cannot help.
        """
        ...


@dataclass(frozen=True)
class ProbeResult:
    node: str
    attempts: int
    elapsed: float


class ReadinessProber:
    def __init__(self, check: HealthCheck, clock: Optional[Clock] = None):
        self.check = check
        self.clock = clock or Clock()

    def wait(
        self,
        node: NodeSpec,
        timeout: float,
        poll_interval: float,
        cancel: Optional[threading.Event] = None,
        on_attempt: Optional[Callable[[int, bool], None]] = None,
    ) -> ProbeResult:
        """
        Poll *node* until its health check passes.

        Retryable failures are polled again every *poll_interval* seconds
        until *timeout* elapses (ProbeTimeoutError). HealthCheckError from
        the check propagates on the first occurrence.
        """
        if timeout is None or not math.isfinite(timeout) or timeout <= 0:
            raise ValueError(f"probe timeout must be a finite positive number, got {timeout!r}")
        if poll_interval is None or not math.isfinite(poll_interval) or poll_interval <= 0:
            raise ValueError(f"poll interval must be a finite positive number, got {poll_interval!r}")

        start = self.clock.now()
        deadline = start + timeout
        attempt = 0

        while True:
            if cancel is not None and cancel.is_set():
                raise CancellationError(f"probe of '{node.name}' cancelled")

            attempt += 1
            healthy = self.check.check(node)
            log.debug("[probe] %s attempt=%d healthy=%s", node.name, attempt, healthy)
            if on_attempt:
                on_attempt(attempt, healthy)
            if healthy:
                return ProbeResult(node=node.name, attempts=attempt, elapsed=self.clock.now() - start)

            remaining = deadline - self.clock.now()
            if remaining <= 0:
                raise ProbeTimeoutError(node.name, timeout, attempt)
            if self.clock.wait(min(poll_interval, remaining), cancel):
                raise CancellationError(f"probe of '{node.name}' cancelled")
