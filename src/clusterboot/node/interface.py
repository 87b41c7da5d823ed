# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/node/interface.py

from __future__ import annotations

from typing import Protocol, Sequence

from ..config.models import NodeSpec
from ..identity.store import CertificateBundle


class NodeLauncher(Protocol):
    """
    Process boundary: hands a node its certificate bundle plus the
    addresses of its dependencies and starts it. Raises LaunchError.
    """

    def start(self, node: NodeSpec, bundle: CertificateBundle, peers: Sequence[str]) -> None: ...
