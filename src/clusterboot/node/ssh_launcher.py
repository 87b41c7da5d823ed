# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/node/ssh_launcher.py

from __future__ import annotations

import logging
import posixpath
from typing import Callable, Sequence

import paramiko

from ..config.models import BootstrapSettings, NodeSpec
from ..errors import LaunchError
from ..identity.store import CertificateBundle
from ..utils.retry import RetryError
from ..utils.ssh import SSHCommandError, SSHRunner, open_ssh

log = logging.getLogger("clusterboot")


class SshNodeLauncher:
    """
    Starts a node over SSH:
      - installs the bundle under ``certs_dir`` (ca.crt 0444, node.crt/node.key 0400,
        client.root.* 0400 when the bundle carries admin client material)
      - runs ``start_command`` formatted with {name}, {address}, {join}, {certs_dir}
    """

    def __init__(
        self,
        *,
        certs_dir: str = "/var/lib/cockroachdb-certs",
        start_command: str = "systemctl start cockroachdb",
        sudo: bool = False,
        connect: Callable[..., SSHRunner] = open_ssh,
    ):
        self.certs_dir = certs_dir
        self.start_command = start_command
        self.sudo = sudo
        self._connect = connect

    @classmethod
    def from_settings(cls, settings: BootstrapSettings, **kw) -> "SshNodeLauncher":
        return cls(certs_dir=settings.certs_dir, start_command=settings.start_command, **kw)

    def render_command(self, node: NodeSpec, peers: Sequence[str]) -> str:
        return self.start_command.format(
            name=node.name,
            address=node.address,
            join=",".join(peers),
            certs_dir=self.certs_dir,
        )

    def start(self, node: NodeSpec, bundle: CertificateBundle, peers: Sequence[str]) -> None:
        try:
            runner = self._connect(node)
        except paramiko.AuthenticationException as e:
            raise LaunchError(f"ssh authentication to '{node.name}' failed: {e}") from e
        except (RetryError, paramiko.SSHException) as e:
            raise LaunchError(f"cannot reach '{node.name}' at {node.ssh_hostname}: {e}") from e

        with runner:
            try:
                for fname, (content, mode) in bundle.files().items():
                    remote = posixpath.join(self.certs_dir, fname)
                    log.debug("[launch] %s: installing %s (%o)", node.name, remote, mode)
                    runner.put_bytes(content, remote, mode=mode)

                cmd = self.render_command(node, peers)
                log.info("[launch] %s: %s", node.name, cmd)
                runner.check(cmd, sudo=self.sudo)
            except (SSHCommandError, paramiko.SSHException, OSError) as e:
                raise LaunchError(f"starting '{node.name}' failed: {e}") from e
