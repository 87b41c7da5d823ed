# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/identity/store.py

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from ..config.models import NodeRegistry
from ..errors import CertificateError, CertificateMismatchError, MissingCertificateError

log = logging.getLogger("clusterboot")

# file name on the node -> mode, same layout the nodes' cockroachdb unit expects
CA_FILE = ("ca.crt", 0o444)
NODE_CERT_FILE = ("node.crt", 0o400)
NODE_KEY_FILE = ("node.key", 0o400)
CLIENT_CERT_FILE = ("client.root.crt", 0o400)
CLIENT_KEY_FILE = ("client.root.key", 0o400)


@dataclass(frozen=True)
class TrustAnchor:
    """Cluster CA certificate. One per cluster, shared read-only by every bundle."""
    path: Path
    pem: bytes
    certificate: x509.Certificate = field(repr=False, compare=False)


@dataclass(frozen=True)
class CertificateBundle:
    node: str
    trust_anchor: TrustAnchor
    cert_path: Path
    cert_pem: bytes = field(repr=False)
    key_path: Path
    key_pem: bytes = field(repr=False)
    client_cert_path: Optional[Path] = None
    client_cert_pem: Optional[bytes] = field(default=None, repr=False)
    client_key_path: Optional[Path] = None
    client_key_pem: Optional[bytes] = field(default=None, repr=False)

    @property
    def ca_path(self) -> Path:
        return self.trust_anchor.path

    @property
    def has_client_cert(self) -> bool:
        return self.client_cert_pem is not None

    def files(self) -> Dict[str, tuple[bytes, int]]:
        """Files to install on the node: name -> (content, mode)."""
        out = {
            CA_FILE[0]: (self.trust_anchor.pem, CA_FILE[1]),
            NODE_CERT_FILE[0]: (self.cert_pem, NODE_CERT_FILE[1]),
            NODE_KEY_FILE[0]: (self.key_pem, NODE_KEY_FILE[1]),
        }
        if self.has_client_cert:
            out[CLIENT_CERT_FILE[0]] = (self.client_cert_pem, CLIENT_CERT_FILE[1])
            out[CLIENT_KEY_FILE[0]] = (self.client_key_pem, CLIENT_KEY_FILE[1])
        return out


def _load_cert(pem: bytes, path: Path) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(pem)
    except ValueError as e:
        raise CertificateError(f"{path} is not a PEM certificate: {e}") from e


def _load_key(pem: bytes, path: Path):
    try:
        return serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as e:
        raise CertificateError(f"{path} is not an unencrypted PEM private key: {e}") from e


def _public_der(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def certificate_names(cert: x509.Certificate) -> List[str]:
    """Subject common names followed by DNS subject-alternative names."""
    names = [a.value for a in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        names.extend(san.value.get_values_for_type(x509.DNSName))
    except x509.ExtensionNotFound:
        pass
    return names


def _check_issued_by(anchor: TrustAnchor, cert: x509.Certificate, what: str) -> None:
    try:
        cert.verify_directly_issued_by(anchor.certificate)
    except (ValueError, TypeError, InvalidSignature) as e:
        raise CertificateMismatchError(
            f"{what} was not issued by the trust anchor {anchor.path}: {e or type(e).__name__}"
        ) from e


def _check_key_pair(cert: x509.Certificate, key, what: str) -> None:
    if _public_der(cert.public_key()) != _public_der(key.public_key()):
        raise CertificateMismatchError(f"{what}: private key does not match the certificate")


class IdentityStore:
    """
    Resolves a node name to its verified certificate bundle.

    Files are read at resolve time; the trust anchor is parsed once per
    path and shared between bundles.
    """

    def __init__(self, registry: NodeRegistry):
        self.registry = registry
        self._nodes = registry.by_name()
        self._anchors: Dict[Path, TrustAnchor] = {}
        self._lock = threading.Lock()

    def _trust_anchor(self, path: Path) -> TrustAnchor:
        with self._lock:
            anchor = self._anchors.get(path)
            if anchor is None:
                pem = path.read_bytes()
                anchor = TrustAnchor(path=path, pem=pem, certificate=_load_cert(pem, path))
                self._anchors[path] = anchor
            return anchor

    def resolve(self, name: str) -> CertificateBundle:
        node = self._nodes.get(name)
        if node is None:
            raise KeyError(f"unknown node '{name}'")

        paths = self.registry.cert_paths(node)
        missing = [
            f"{label} ({p})"
            for label, p in (
                ("trust anchor", paths.ca),
                ("node certificate", paths.cert),
                ("node key", paths.key),
            )
            if not p.is_file()
        ]
        if (paths.client_cert is None) != (paths.client_key is None):
            missing.append("client certificate/key pair (only one of them configured)")
        for label, p in (("client certificate", paths.client_cert), ("client key", paths.client_key)):
            if p is not None and not p.is_file():
                missing.append(f"{label} ({p})")
        if missing:
            raise MissingCertificateError(f"node '{name}' is missing: {', '.join(missing)}")

        anchor = self._trust_anchor(paths.ca)

        cert_pem = paths.cert.read_bytes()
        cert = _load_cert(cert_pem, paths.cert)
        names = certificate_names(cert)
        if name not in names:
            raise CertificateMismatchError(
                f"certificate {paths.cert} is for {names or ['<no subject names>']}, not node '{name}'"
            )
        _check_issued_by(anchor, cert, f"certificate {paths.cert}")

        key_pem = paths.key.read_bytes()
        _check_key_pair(cert, _load_key(key_pem, paths.key), f"node '{name}'")

        client_cert_pem = client_key_pem = None
        if paths.client_cert is not None:
            client_cert_pem = paths.client_cert.read_bytes()
            client_key_pem = paths.client_key.read_bytes()
            client_cert = _load_cert(client_cert_pem, paths.client_cert)
            _check_issued_by(anchor, client_cert, f"client certificate {paths.client_cert}")
            _check_key_pair(client_cert, _load_key(client_key_pem, paths.client_key), f"client certificate {paths.client_cert}")

        log.debug("resolved certificate bundle for %s (ca=%s cert=%s)", name, paths.ca, paths.cert)
        return CertificateBundle(
            node=name,
            trust_anchor=anchor,
            cert_path=paths.cert,
            cert_pem=cert_pem,
            key_path=paths.key,
            key_pem=key_pem,
            client_cert_path=paths.client_cert,
            client_cert_pem=client_cert_pem,
            client_key_path=paths.client_key,
            client_key_pem=client_key_pem,
        )

    def resolve_all(self) -> Dict[str, Union[CertificateBundle, CertificateError]]:
        """Resolve every registered node, collecting certificate errors instead of raising."""
        out: Dict[str, Union[CertificateBundle, CertificateError]] = {}
        for name in self.registry.names():
            try:
                out[name] = self.resolve(name)
            except CertificateError as e:
                out[name] = e
        return out
