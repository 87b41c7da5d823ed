# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/utils/ssh.py

from __future__ import annotations

import io
import os
import logging
import posixpath
import shlex
from typing import Optional

import paramiko

from ..config.models import NodeSpec
from .retry import retry

log = logging.getLogger("clusterboot")


class SSHCommandError(RuntimeError):
    pass


class SSHKeyError(paramiko.AuthenticationException):
    """The configured private key is missing or unreadable. Never retried."""


class SSHRunner:
    def __init__(self, client: paramiko.SSHClient):
        self.client = client

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[int, str, str]:
        if sudo:
            cmd = f"sudo -H -E bash -c {shlex.quote(cmd)}"

        log.debug("[ssh] %s", cmd)
        stdin, stdout, stderr = self.client.exec_command(cmd, timeout=timeout)
        out = stdout.read().decode()
        err = stderr.read().decode()
        rc = stdout.channel.recv_exit_status()
        return rc, out, err

    def check(self, cmd: str, **kw) -> str:
        rc, out, err = self.run(cmd, **kw)
        if rc != 0:
            raise SSHCommandError(f"'{cmd}' exited {rc}: {err.strip()}")
        return out

    def put_bytes(self, content: bytes, remote_path: str, *, mode: int = 0o600) -> None:
        """Write *content* to *remote_path*, creating parent directories."""
        self.check(f"mkdir -p {shlex.quote(posixpath.dirname(remote_path))}")
        sftp = self.client.open_sftp()
        try:
            sftp.putfo(io.BytesIO(content), remote_path)
            sftp.chmod(remote_path, mode)
        finally:
            sftp.close()

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "SSHRunner":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _load_pkey(path: str):
    if not os.path.isfile(path):
        raise SSHKeyError(f"ssh private key {path} not found")
    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(path)
        except paramiko.SSHException:
            continue
        except OSError as e:
            raise SSHKeyError(f"cannot read ssh private key {path}: {e}") from e
    raise SSHKeyError(f"Unsupported private key format for {path}")


def _connect(node: NodeSpec, connect_timeout: float) -> SSHRunner:
    ssh = node.ssh
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = _load_pkey(str(ssh.key_path)) if ssh.key_path else None

    client.connect(
        hostname=node.ssh_hostname,
        port=ssh.port,
        username=ssh.user,
        password=ssh.password if not pkey else None,
        pkey=pkey,
        timeout=connect_timeout,
        allow_agent=pkey is None,
        look_for_keys=pkey is None,
    )
    return SSHRunner(client)


def open_ssh(
    node: NodeSpec,
    *,
    connect_timeout: float = 20.0,
    retries: int = 3,
    delay: float = 2.0,
) -> SSHRunner:
    """
    Connect to *node* over SSH. Network errors (refused, unreachable,
    timeout) are retried; authentication failures are not.
    Raises RetryError once the retries are exhausted.
    """
    def on_retry(attempt: int, exc: Exception) -> None:
        log.debug("[ssh] connect to %s failed (attempt %d/%d): %s", node.name, attempt, retries, exc)

    connect = retry(retries=retries, delay=delay, retry_on=(OSError,), on_retry=on_retry)(_connect)
    return connect(node, connect_timeout)
