# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/join/client.py

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

import requests

from ..config.models import JoinSettings, NodeSpec, split_address
from ..errors import AuthenticationError, JoinFailedError, JoinTransportError
from ..identity.store import CertificateBundle
from ..probe.checks import url_host

log = logging.getLogger("clusterboot")


class JoinClient(Protocol):
    def join(
        self,
        node: NodeSpec,
        bundle: CertificateBundle,
        seed_address: str,
        abort: threading.Event,
    ) -> None:
        """
        Ask the seed at *seed_address* to admit *node*.

        Raises AuthenticationError when the seed rejects the bundle,
        JoinTransportError for retryable network/server failures and
        JoinFailedError for anything else.
        """
        ...


class HttpJoinClient:
    """
    Join request over HTTPS with mutual TLS: the joiner presents its own node
    certificate and verifies the seed against the cluster trust anchor.
    """

    # 409: the seed already knows this node
    OK_STATUSES = (200, 201, 202, 204, 409)
    AUTH_STATUSES = (401, 403)

    def __init__(
        self,
        *,
        path: str = "/_cluster/join",
        port: Optional[int] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.path = path if path.startswith("/") else f"/{path}"
        self.port = port
        self.timeout = timeout
        self.session = session

    @classmethod
    def from_settings(cls, settings: JoinSettings, session: Optional[requests.Session] = None) -> "HttpJoinClient":
        return cls(path=settings.path, port=settings.port, timeout=settings.request_timeout, session=session)

    def url(self, seed_address: str) -> str:
        host, port = split_address(seed_address)
        port = self.port or port
        netloc = url_host(host) + (f":{port}" if port else "")
        return f"https://{netloc}{self.path}"

    def join(self, node: NodeSpec, bundle: CertificateBundle, seed_address: str, abort: threading.Event) -> None:
        if abort.is_set():
            raise JoinTransportError(f"join of '{node.name}' via {seed_address} aborted")

        url = self.url(seed_address)
        log.debug("[join] %s -> %s", node.name, url)
        try:
            resp = (self.session or requests).post(
                url,
                json={"node": node.name, "address": node.address},
                timeout=self.timeout,
                verify=str(bundle.ca_path),
                cert=(str(bundle.cert_path), str(bundle.key_path)),
            )
        except requests.exceptions.SSLError as e:
            raise AuthenticationError(f"TLS handshake between '{node.name}' and {seed_address} failed: {e}") from e
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise JoinTransportError(f"{seed_address} unreachable: {e}") from e

        if resp.status_code in self.OK_STATUSES:
            return
        if resp.status_code in self.AUTH_STATUSES:
            raise AuthenticationError(
                f"{seed_address} rejected the certificate of '{node.name}' ({resp.status_code})"
            )
        if resp.status_code >= 500 or resp.status_code == 429:
            raise JoinTransportError(f"{seed_address} answered {resp.status_code}: {resp.text[:200]}")
        raise JoinFailedError(f"{seed_address} refused to admit '{node.name}' ({resp.status_code}): {resp.text[:200]}")
