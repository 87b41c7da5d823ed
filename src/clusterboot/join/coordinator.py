# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/join/coordinator.py

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ..config.models import BootstrapSettings, NodeSpec
from ..errors import (
    CancellationError,
    JoinFailedError,
    JoinTransportError,
    NoSeedsAvailableError,
)
from ..identity.store import CertificateBundle
from ..utils.clock import Clock
from ..utils.retry import backoff_delays
from .client import JoinClient

log = logging.getLogger("clusterboot")

# how often a join round re-checks the cancel signal while requests are in flight
_CANCEL_POLL_S = 0.2


@dataclass(frozen=True)
class JoinResult:
    node: str
    seed: str
    attempts: int


class JoinCoordinator:
    """
    Joins a joiner node to the cluster through any healthy seed.

    Each attempt is one round: the request goes to every seed at once and
    the first seed to accept wins. A seed refusing the node only ends the
    join once every other seed of the round has settled without admitting
    it. Transport failures trigger another round after a backoff;
    authentication failures end the join immediately.
    """

    def __init__(
        self,
        client: JoinClient,
        *,
        attempts: int = 5,
        backoff: float = 1.0,
        backoff_max: float = 10.0,
        max_workers: int = 4,
        clock: Optional[Clock] = None,
    ):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.client = client
        self.attempts = attempts
        self.backoff = backoff
        self.backoff_max = backoff_max
        self.max_workers = max_workers
        self.clock = clock or Clock()

    @classmethod
    def from_settings(cls, client: JoinClient, settings: BootstrapSettings, clock: Optional[Clock] = None) -> "JoinCoordinator":
        return cls(
            client,
            attempts=settings.join_attempts,
            backoff=settings.join_backoff,
            backoff_max=settings.join_backoff_max,
            max_workers=settings.max_workers,
            clock=clock,
        )

    def join(
        self,
        node: NodeSpec,
        bundle: CertificateBundle,
        seed_addresses: Sequence[str],
        cancel: Optional[threading.Event] = None,
        on_attempt: Optional[Callable[[int, List[str]], None]] = None,
    ) -> JoinResult:
        seeds = list(dict.fromkeys(seed_addresses))
        if not seeds:
            raise NoSeedsAvailableError(
                f"no healthy seed available for '{node.name}' to join; seeds must be healthy before joiners run"
            )

        delays = backoff_delays(self.backoff, self.backoff_max, self.attempts)
        last: Optional[JoinTransportError] = None

        for attempt in range(1, self.attempts + 1):
            if cancel is not None and cancel.is_set():
                raise CancellationError(f"join of '{node.name}' cancelled")
            if on_attempt:
                on_attempt(attempt, seeds)

            try:
                seed = self._round(node, bundle, seeds, cancel)
                log.info("[join] %s joined via %s (attempt %d)", node.name, seed, attempt)
                return JoinResult(node=node.name, seed=seed, attempts=attempt)
            except JoinTransportError as e:
                last = e
                log.warning("[join] %s attempt %d/%d failed: %s", node.name, attempt, self.attempts, e)

            if attempt < self.attempts and self.clock.wait(next(delays), cancel):
                raise CancellationError(f"join of '{node.name}' cancelled")

        raise JoinFailedError(
            f"'{node.name}' could not join via {', '.join(seeds)} after {self.attempts} attempt(s): {last}"
        ) from last

    def _round(
        self,
        node: NodeSpec,
        bundle: CertificateBundle,
        seeds: List[str],
        cancel: Optional[threading.Event],
    ) -> str:
        abort = threading.Event()
        errors: List[str] = []
        retryable = False
        futures: Dict[Future, str] = {}
        pool = ThreadPoolExecutor(
            max_workers=max(1, min(self.max_workers, len(seeds))),
            thread_name_prefix=f"join-{node.name}",
        )
        try:
            for seed in seeds:
                futures[pool.submit(self.client.join, node, bundle, seed, abort)] = seed

            pending = set(futures)
            while pending:
                if cancel is not None and cancel.is_set():
                    raise CancellationError(f"join of '{node.name}' cancelled")
                done, pending = wait(pending, timeout=_CANCEL_POLL_S, return_when=FIRST_COMPLETED)
                for f in done:
                    seed = futures[f]
                    try:
                        f.result()
                    except JoinTransportError as e:
                        retryable = True
                        errors.append(f"{seed}: {e}")
                        continue
                    except JoinFailedError as e:
                        # another seed may still admit the node
                        errors.append(f"{seed}: {e}")
                        continue
                    # AuthenticationError and anything else propagate
                    return seed
        finally:
            # first success (or a fatal error) wins; stop the rest
            abort.set()
            for f in futures:
                f.cancel()
            pool.shutdown(wait=False, cancel_futures=True)

        if retryable:
            raise JoinTransportError("; ".join(errors))
        raise JoinFailedError(f"every seed refused '{node.name}': {'; '.join(errors)}")
