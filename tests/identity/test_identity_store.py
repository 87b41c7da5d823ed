import pytest

from clusterboot.config.models import NodeRegistry
from clusterboot.errors import CertificateError, CertificateMismatchError, MissingCertificateError
from clusterboot.identity.store import IdentityStore

from pki import Pki


def _registry(pki, *names, **node_extra):
    return NodeRegistry(
        secret_directory=pki.dir,
        nodes=[{"name": n, "role": "seed", "address": f"{n}.local", **node_extra} for n in names],
    )


def test_resolve_returns_verified_bundle(pki):
    pki.issue("db1")
    store = IdentityStore(_registry(pki, "db1"))
    b = store.resolve("db1")

    assert b.node == "db1"
    assert b.ca_path == pki.dir / "ca.crt"
    assert b.cert_path == pki.dir / "db1.crt"
    assert not b.has_client_cert
    files = b.files()
    assert sorted(files) == ["ca.crt", "node.crt", "node.key"]
    assert files["ca.crt"][1] == 0o444
    assert files["node.key"][1] == 0o400
    assert files["node.crt"][0] == (pki.dir / "db1.crt").read_bytes()


def test_trust_anchor_is_shared_between_bundles(pki):
    pki.issue("db1")
    pki.issue("db2")
    store = IdentityStore(_registry(pki, "db1", "db2"))
    assert store.resolve("db1").trust_anchor is store.resolve("db2").trust_anchor


def test_san_dns_name_matches(pki):
    pki.issue("db1", cn="node", sans=["localhost", "db1"])
    assert IdentityStore(_registry(pki, "db1")).resolve("db1").node == "db1"


def test_unknown_node(pki):
    with pytest.raises(KeyError):
        IdentityStore(_registry(pki, "db1")).resolve("db7")


def test_missing_files_are_listed(pki):
    pki.issue("db1")
    (pki.dir / "db1.key").unlink()
    (pki.dir / "ca.crt").unlink()
    with pytest.raises(MissingCertificateError) as exc:
        IdentityStore(_registry(pki, "db1")).resolve("db1")
    assert "trust anchor" in str(exc.value)
    assert "node key" in str(exc.value)
    assert "node certificate" not in str(exc.value)


def test_certificate_for_another_node(pki):
    pki.issue("db1", cn="db2")
    with pytest.raises(CertificateMismatchError, match="not node 'db1'"):
        IdentityStore(_registry(pki, "db1")).resolve("db1")


def test_certificate_from_another_ca(pki, tmp_path):
    other = Pki(tmp_path / "other", ca_name="Rogue CA")
    pki.issue("db1", signer=other)
    with pytest.raises(CertificateMismatchError, match="trust anchor"):
        IdentityStore(_registry(pki, "db1")).resolve("db1")


def test_key_not_matching_certificate(pki):
    pki.issue("db1")
    pki.write_stray_key(pki.dir / "db1.key")
    with pytest.raises(CertificateMismatchError, match="private key"):
        IdentityStore(_registry(pki, "db1")).resolve("db1")


def test_garbage_certificate(pki):
    pki.issue("db1")
    (pki.dir / "db1.crt").write_text("not a certificate")
    with pytest.raises(CertificateError):
        IdentityStore(_registry(pki, "db1")).resolve("db1")


def test_client_root_material_is_picked_up(pki):
    pki.issue("db1")
    pki.issue("root", file_stem="client.root")
    b = IdentityStore(_registry(pki, "db1")).resolve("db1")
    assert b.has_client_cert
    assert b.files()["client.root.key"][1] == 0o400


def test_explicit_cert_paths(pki, tmp_path):
    other_dir = tmp_path / "elsewhere"
    other_dir.mkdir()
    cert, key = pki.issue("db1")
    cert.rename(other_dir / "node1.pem")
    key.rename(other_dir / "node1-key.pem")

    reg = _registry(pki, "db1", certs={"cert": other_dir / "node1.pem", "key": other_dir / "node1-key.pem"})
    b = IdentityStore(reg).resolve("db1")
    assert b.cert_path == other_dir / "node1.pem"


def test_resolve_all_collects_errors(pki):
    pki.issue("db1")
    pki.issue("db2", cn="nope")
    out = IdentityStore(_registry(pki, "db1", "db2", "db3")).resolve_all()
    assert out["db1"].node == "db1"
    assert isinstance(out["db2"], CertificateMismatchError)
    assert isinstance(out["db3"], MissingCertificateError)
