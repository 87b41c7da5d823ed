# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/probe/checks.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Tuple

import paramiko
import requests

from ..config.models import NodeRegistry, NodeSpec, ProbeSettings
from ..errors import HealthCheckError
from ..utils.retry import RetryError
from ..utils.ssh import SSHRunner, open_ssh

log = logging.getLogger("clusterboot")


def url_host(host: str) -> str:
    return f"[{host}]" if ":" in host else host


class HttpHealthCheck:
    """
    Polls the node's readiness endpoint (``/health?ready=1`` by default).

    - 200 with an empty body or a JSON object: ready
    - 5xx, connection refused, timeout: not ready yet
    - TLS failure, any other status, malformed body: HealthCheckError
    """

    def __init__(
        self,
        *,
        scheme: str = "https",
        port: int = 8080,
        path: str = "/health?ready=1",
        timeout: float = 5.0,
        ca_path: Optional[Path] = None,
        client_cert: Optional[Tuple[Path, Path]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.scheme = scheme
        self.port = port
        self.path = path if path.startswith("/") else f"/{path}"
        self.timeout = timeout
        self.ca_path = ca_path
        self.client_cert = client_cert
        # requests.Session is not thread safe; default to one-shot requests
        self.session = session

    @classmethod
    def from_registry(cls, registry: NodeRegistry, session: Optional[requests.Session] = None) -> "HttpHealthCheck":
        s: ProbeSettings = registry.settings.probe
        paths = registry.cert_paths(registry.nodes[0])
        client = (paths.client_cert, paths.client_key) if paths.client_cert and paths.client_key else None
        return cls(
            scheme=s.scheme,
            port=s.port,
            path=s.path,
            timeout=s.request_timeout,
            ca_path=paths.ca if paths.ca and paths.ca.is_file() else None,
            client_cert=client,
            session=session,
        )

    def url(self, node: NodeSpec) -> str:
        return f"{self.scheme}://{url_host(node.host)}:{self.port}{self.path}"

    def check(self, node: NodeSpec) -> bool:
        url = self.url(node)
        kwargs = {"timeout": self.timeout}
        if self.scheme == "https":
            kwargs["verify"] = str(self.ca_path) if self.ca_path else True
            if self.client_cert:
                kwargs["cert"] = (str(self.client_cert[0]), str(self.client_cert[1]))

        try:
            resp = (self.session or requests).get(url, **kwargs)
        except requests.exceptions.SSLError as e:
            raise HealthCheckError(f"TLS handshake with {url} failed: {e}") from e
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            log.debug("[probe] %s not reachable yet: %s", url, e)
            return False

        if resp.status_code == 200:
            if not resp.text.strip():
                return True
            try:
                data = resp.json()
            except ValueError as e:
                raise HealthCheckError(f"{url} returned a malformed health response: {resp.text[:200]!r}") from e
            if not isinstance(data, dict):
                raise HealthCheckError(f"{url} returned a malformed health response: {data!r}")
            return True

        if resp.status_code >= 500:
            log.debug("[probe] %s answered %d: %s", url, resp.status_code, resp.text[:200])
            return False

        raise HealthCheckError(f"{url} answered unexpected status {resp.status_code}")


class CommandHealthCheck:
    """
    Runs a command on the node over SSH; exit 0 means ready.
    Mirrors ``wait_for_unit`` / ``wait_until_succeeds`` style polling.
    """

    def __init__(
        self,
        command: str,
        *,
        connect_timeout: float = 5.0,
        command_timeout: float = 10.0,
        connect: Callable[..., SSHRunner] = open_ssh,
    ):
        self.command = command
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._connect = connect

    def check(self, node: NodeSpec) -> bool:
        try:
            runner = self._connect(node, connect_timeout=self.connect_timeout, retries=1)
        except paramiko.AuthenticationException as e:
            raise HealthCheckError(f"ssh authentication to '{node.name}' failed: {e}") from e
        except (RetryError, paramiko.SSHException) as e:
            log.debug("[probe] ssh to %s not available yet: %s", node.name, e)
            return False

        with runner:
            try:
                rc, _out, err = runner.run(self.command, timeout=self.command_timeout)
            except (paramiko.SSHException, OSError) as e:
                log.debug("[probe] '%s' on %s did not complete: %s", self.command, node.name, e)
                return False

        if rc != 0:
            log.debug("[probe] '%s' on %s exited %d: %s", self.command, node.name, rc, err.strip())
        return rc == 0


def build_health_check(registry: NodeRegistry, kind: Optional[str] = None):
    kind = kind or registry.settings.probe.kind
    if kind == "http":
        return HttpHealthCheck.from_registry(registry)
    if kind == "command":
        s = registry.settings.probe
        return CommandHealthCheck(s.command, command_timeout=s.request_timeout)
    raise ValueError(f"unknown probe kind '{kind}'")
