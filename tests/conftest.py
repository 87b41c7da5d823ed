import pytest

from clusterboot.config.models import NodeRegistry

from pki import Pki


@pytest.fixture
def pki(tmp_path):
    return Pki(tmp_path / "secrets")


@pytest.fixture
def make_registry(pki):
    """
    Build a registry from (name, role, depends_on) tuples and issue a
    certificate for every node into the secret directory.
    """
    def _make(*nodes, issue=True, **extra):
        specs = []
        for name, role, deps in nodes:
            if issue:
                pki.issue(name)
            specs.append(
                {"name": name, "role": role, "address": f"{name}.local:26257", "depends_on": list(deps)}
            )
        return NodeRegistry(secret_directory=pki.dir, nodes=specs, **extra)
    return _make
