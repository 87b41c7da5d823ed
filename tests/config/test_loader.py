from pathlib import Path
import textwrap

import pytest

from clusterboot.config.loader import load_registry
from clusterboot.config.models import NodeRole
from clusterboot.errors import (
    ConfigurationError,
    CycleError,
    InvalidRegistryError,
    UnknownDependencyError,
)


def _write(tmp_path: Path, text: str) -> Path:
    f = tmp_path / "cluster.yaml"
    f.write_text(textwrap.dedent(text))
    return f


def test_load_registry_minimal_ok(tmp_path: Path):
    f = _write(tmp_path, """
        cluster: orders
        nodes:
          db1:
            role: seed
            address: 10.0.0.1:26257
          db2:
            role: joiner
            address: 10.0.0.2:26257
            dependsOn: [db1]
    """)
    reg = load_registry(f)
    assert reg.cluster == "orders"
    assert reg.names() == ["db1", "db2"]
    assert reg.nodes[0].role == NodeRole.SEED
    assert reg.nodes[1].depends_on == ["db1"]
    assert reg.secret_directory == tmp_path.resolve() / "secrets"
    assert reg.settings.probe_timeout == 120


def test_defaults_are_merged_under_every_node(tmp_path: Path):
    f = _write(tmp_path, """
        defaults:
          role: joiner
          ssh:
            user: ops
            port: 2222
        nodes:
          db1:
            role: seed
            address: db1.internal
          db2:
            address: db2.internal
            depends_on: [db1]
            ssh:
              port: 22
    """)
    reg = load_registry(f)
    db1, db2 = reg.nodes
    assert db1.role == NodeRole.SEED
    assert db2.role == NodeRole.JOINER
    assert db1.ssh.user == "ops" and db1.ssh.port == 2222
    assert db2.ssh.user == "ops" and db2.ssh.port == 22


def test_relative_paths_resolve_against_the_file(tmp_path: Path):
    f = _write(tmp_path, """
        secret_directory: certs/prod
        nodes:
          db1:
            role: seed
            address: db1.internal
            certs:
              cert: other/db1.pem
              key: /abs/db1.key
    """)
    reg = load_registry(f)
    base = tmp_path.resolve()
    assert reg.secret_directory == base / "certs" / "prod"
    paths = reg.cert_paths(reg.nodes[0])
    assert paths.ca == base / "certs" / "prod" / "ca.crt"
    assert paths.cert == base / "other" / "db1.pem"
    assert paths.key == Path("/abs/db1.key")


def test_secret_dir_env_override(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("CLUSTERBOOT_SECRET_DIR", "/etc/clusterboot/secrets")
    f = _write(tmp_path, """
        secret_directory: ignored
        nodes:
          db1: {role: seed, address: db1.internal}
    """)
    assert load_registry(f).secret_directory == Path("/etc/clusterboot/secrets")


def test_env_vars_are_expanded(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("SEED_HOST", "10.1.2.3")
    f = _write(tmp_path, """
        nodes:
          db1: {role: seed, address: "${SEED_HOST}:26257"}
    """)
    assert load_registry(f).nodes[0].address == "10.1.2.3:26257"


def test_settings_override(tmp_path: Path):
    f = _write(tmp_path, """
        settings:
          probe_timeout: 30
          halt_on_failure: true
          probe:
            kind: command
        nodes:
          db1: {role: seed, address: db1.internal}
    """)
    s = load_registry(f).settings
    assert s.probe_timeout == 30
    assert s.halt_on_failure is True
    assert s.probe.kind == "command"
    assert s.probe.path == "/health?ready=1"


@pytest.mark.parametrize("body", [
    "nodes:\n  DB1: {role: seed, address: a}\n",
    "nodes:\n  db1: {role: primary, address: a}\n",
    "nodes:\n  db1: {role: seed}\n",
    "nodes:\n  db1: {role: seed, address: a, depends_on: [db1]}\n",
    "nodes:\n  db1: {role: seed, address: a, colour: blue}\n",
    "nodes:\n  - db1\n",
    "- just\n- a list\n",
    "settings:\n  probe_timeout: -1\nnodes:\n  db1: {role: seed, address: a}\n",
    "nodes: {db1: [unclosed\n",
    "nodes:\n  db1: seed\n",
    "defaults: [ssh]\nnodes:\n  db1: {role: seed, address: a}\n",
])
def test_invalid_registry_is_a_configuration_error(tmp_path: Path, body):
    f = tmp_path / "bad.yaml"
    f.write_text(body)
    with pytest.raises(ConfigurationError):
        load_registry(f)


def test_missing_file(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_registry(tmp_path / "nope.yaml")


def test_malformed_yaml_names_the_file(tmp_path: Path):
    f = tmp_path / "broken.yaml"
    f.write_text("nodes: {db1: [unclosed\n")
    with pytest.raises(ConfigurationError, match="not valid YAML"):
        load_registry(f)


def test_scalar_node_entry_names_the_node(tmp_path: Path):
    f = _write(tmp_path, """
        nodes:
          db1: seed
    """)
    with pytest.raises(ConfigurationError, match="node 'db1'"):
        load_registry(f)


def test_ssh_key_path_is_expanded_and_anchored(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    f = _write(tmp_path, """
        defaults:
          ssh: {key_path: ~/.ssh/id_ed25519}
        nodes:
          db1: {role: seed, address: db1.internal}
          db2:
            role: joiner
            address: db2.internal
            depends_on: [db1]
            ssh: {key_path: keys/db2}
    """)
    db1, db2 = load_registry(f).nodes
    assert db1.ssh.key_path == tmp_path / "home" / ".ssh" / "id_ed25519"
    assert db2.ssh.key_path == tmp_path.resolve() / "keys" / "db2"


@pytest.mark.parametrize("nodes,error", [
    (
        "s1: {role: seed, address: s1}\n"
        "  a: {role: joiner, address: a, dependsOn: [s1, b]}\n"
        "  b: {role: joiner, address: b, dependsOn: [a]}\n",
        CycleError,
    ),
    ("s1: {role: seed, address: s1}\n  a: {role: joiner, address: a, dependsOn: [s9]}\n", UnknownDependencyError),
    ("a: {role: joiner, address: a}\n", InvalidRegistryError),
])
def test_dependency_graph_is_checked_at_load_time(tmp_path: Path, nodes, error):
    f = tmp_path / "graph.yaml"
    f.write_text("nodes:\n  " + nodes)
    with pytest.raises(error):
        load_registry(f)
