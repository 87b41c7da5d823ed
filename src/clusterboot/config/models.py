# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/config/models.py

from __future__ import annotations

import ipaddress
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

log = logging.getLogger("clusterboot")

NODE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9\-]{0,62}$")


class NodeRole(str, Enum):
    SEED = "seed"
    JOINER = "joiner"


def split_address(address: str) -> Tuple[str, Optional[int]]:
    """
    Split ``host``, ``host:port``, ``[v6]:port`` or a bare IPv6 address.

    A bare IPv6 address carrying a subnet suffix (``2001:db8::2/64``, as some
    providers display it) is normalized to the address alone.
    """
    address = address.strip()
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
        return host, int(port) if port else None

    if address.count(":") > 1:
        host = address
        if "/" in host:
            host, _, mask = host.partition("/")
            log.warning(
                "%s contains a subnet identifier, using %s (mask /%s ignored)",
                address, host, mask,
            )
        ipaddress.IPv6Address(host)
        return host, None

    host, sep, port = address.partition(":")
    if sep and not port.isdigit():
        raise ValueError(f"invalid port in address '{address}'")
    return host, int(port) if port else None


class CertPaths(BaseModel):
    """
    Certificate file locations for one node. Anything left unset is derived
    from the registry's secret directory (see NodeRegistry.cert_paths).
    """
    ca: Optional[Path] = None
    cert: Optional[Path] = None
    key: Optional[Path] = None
    client_cert: Optional[Path] = None
    client_key: Optional[Path] = None

    model_config = {"frozen": True, "extra": "forbid"}


class SshSettings(BaseModel):
    user: str = "root"
    port: int = 22
    hostname: Optional[str] = None      # defaults to the node address host
    key_path: Optional[Path] = None
    password: Optional[str] = None

    model_config = {"frozen": True, "extra": "forbid"}


class NodeSpec(BaseModel):
    name: str
    role: NodeRole
    address: str
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")
    certs: CertPaths = Field(default_factory=CertPaths, alias="certPaths")
    ssh: SshSettings = Field(default_factory=SshSettings)
    health_timeout: Optional[float] = Field(default=None, gt=0)

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not NODE_NAME_RE.match(v):
            raise ValueError(
                "a node name must be 1-63 characters of a-z, 0-9 and '-', "
                f"not starting with '-', got: '{v}'"
            )
        return v

    @field_validator("address")
    @classmethod
    def _check_address(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("address must not be empty")
        split_address(v)
        return v.strip()

    @model_validator(mode="after")
    def _check_dependencies(self) -> "NodeSpec":
        if self.name in self.depends_on:
            raise ValueError(f"node '{self.name}' depends on itself")
        if len(set(self.depends_on)) != len(self.depends_on):
            raise ValueError(f"node '{self.name}' lists a dependency twice")
        return self

    @property
    def is_seed(self) -> bool:
        return self.role == NodeRole.SEED

    @property
    def host(self) -> str:
        return split_address(self.address)[0]

    @property
    def port(self) -> Optional[int]:
        return split_address(self.address)[1]

    @property
    def ssh_hostname(self) -> str:
        return self.ssh.hostname or self.host


class ProbeSettings(BaseModel):
    kind: Literal["http", "command"] = "http"
    # http
    scheme: Literal["http", "https"] = "https"
    port: int = 8080
    path: str = "/health?ready=1"
    request_timeout: float = Field(default=5.0, gt=0)
    # command (over ssh)
    command: str = "systemctl is-active cockroachdb"


class JoinSettings(BaseModel):
    path: str = "/_cluster/join"
    port: Optional[int] = None          # defaults to the seed address port
    request_timeout: float = Field(default=10.0, gt=0)


class BootstrapSettings(BaseModel):
    """Timeouts, intervals and retry budgets for a bootstrap run."""

    probe_timeout: float = Field(default=120.0, gt=0)
    poll_interval: float = Field(default=2.0, gt=0)
    join_attempts: int = Field(default=5, ge=1)
    join_backoff: float = Field(default=1.0, ge=0)
    join_backoff_max: float = Field(default=10.0, ge=0)
    max_workers: int = Field(default=4, ge=1)
    halt_on_failure: bool = False

    certs_dir: str = "/var/lib/cockroachdb-certs"
    start_command: str = "systemctl start cockroachdb"

    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    join: JoinSettings = Field(default_factory=JoinSettings)


class NodeRegistry(BaseModel):
    cluster: str = "cockroachdb"
    secret_directory: Path = Path("secrets")
    settings: BootstrapSettings = Field(default_factory=BootstrapSettings)
    nodes: List[NodeSpec]

    @field_validator("nodes", mode="before")
    @classmethod
    def _nodes_from_mapping(cls, v: Any) -> Any:
        # node name -> spec mapping, insertion order preserved
        if isinstance(v, dict):
            return [{**(spec or {}), "name": name} for name, spec in v.items()]
        return v

    @model_validator(mode="after")
    def _unique_names(self) -> "NodeRegistry":
        seen = set()
        for n in self.nodes:
            if n.name in seen:
                raise ValueError(f"duplicate node name '{n.name}'")
            seen.add(n.name)
        return self

    # Helper methods
    def by_name(self) -> Dict[str, NodeSpec]:
        return {n.name: n for n in self.nodes}

    def names(self) -> List[str]:
        return [n.name for n in self.nodes]

    def seeds(self) -> List[NodeSpec]:
        return [n for n in self.nodes if n.is_seed]

    def cert_paths(self, node: NodeSpec) -> CertPaths:
        """
        Effective certificate paths for *node*. Unset entries follow the
        ``<secret_directory>/<node name>.crt`` convention; client material is
        only defaulted when both files exist.
        """
        base = self.secret_directory
        c = node.certs
        client_cert, client_key = c.client_cert, c.client_key
        if client_cert is None and client_key is None:
            root_crt = base / "client.root.crt"
            root_key = base / "client.root.key"
            if root_crt.is_file() and root_key.is_file():
                client_cert, client_key = root_crt, root_key

        return CertPaths(
            ca=c.ca or base / "ca.crt",
            cert=c.cert or base / f"{node.name}.crt",
            key=c.key or base / f"{node.name}.key",
            client_cert=client_cert,
            client_key=client_key,
        )
