import paramiko
import pytest

from clusterboot.config.models import BootstrapSettings
from clusterboot.errors import LaunchError
from clusterboot.identity.store import IdentityStore
from clusterboot.node.ssh_launcher import SshNodeLauncher
from clusterboot.utils.retry import RetryError
from clusterboot.utils.ssh import SSHCommandError, SSHKeyError


class FakeRunner:
    def __init__(self, fail_check=False):
        self.fail_check = fail_check
        self.files = {}
        self.commands = []
        self.closed = False

    def put_bytes(self, content, remote_path, *, mode=0o600):
        self.files[remote_path] = (content, mode)

    def check(self, cmd, **kw):
        self.commands.append((cmd, kw))
        if self.fail_check:
            raise SSHCommandError(f"'{cmd}' exited 1: Job for cockroachdb.service failed")
        return ""

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True


@pytest.fixture
def bundle_for(make_registry):
    reg = make_registry(("db1", "seed", []), ("db2", "joiner", ["db1"]))
    store = IdentityStore(reg)
    return lambda name: (reg.by_name()[name], store.resolve(name))


def test_installs_bundle_then_starts(bundle_for):
    runner = FakeRunner()
    launcher = SshNodeLauncher(
        certs_dir="/etc/crdb/certs",
        start_command="cockroach start --certs-dir={certs_dir} --advertise-addr={address} --join={join}",
        connect=lambda node: runner,
    )
    node, bundle = bundle_for("db2")
    launcher.start(node, bundle, ["db1.local:26257"])

    assert sorted(runner.files) == ["/etc/crdb/certs/ca.crt", "/etc/crdb/certs/node.crt", "/etc/crdb/certs/node.key"]
    assert runner.files["/etc/crdb/certs/ca.crt"][1] == 0o444
    assert runner.files["/etc/crdb/certs/node.key"] == (bundle.key_pem, 0o400)
    assert runner.commands == [(
        "cockroach start --certs-dir=/etc/crdb/certs --advertise-addr=db2.local:26257 --join=db1.local:26257",
        {"sudo": False},
    )]
    assert runner.closed


def test_failed_start_command(bundle_for):
    launcher = SshNodeLauncher(connect=lambda node: FakeRunner(fail_check=True))
    node, bundle = bundle_for("db1")
    with pytest.raises(LaunchError, match="db1"):
        launcher.start(node, bundle, [])


@pytest.mark.parametrize("exc,message", [
    (RetryError("unreachable"), "cannot reach"),
    (paramiko.SSHException("banner timeout"), "cannot reach"),
    (paramiko.AuthenticationException("denied"), "authentication"),
    (SSHKeyError("ssh private key /keys/id not found"), "authentication"),
])
def test_unreachable_node(bundle_for, exc, message):
    def connect(node):
        raise exc

    node, bundle = bundle_for("db1")
    with pytest.raises(LaunchError, match=message):
        SshNodeLauncher(connect=connect).start(node, bundle, [])


def test_from_settings():
    s = BootstrapSettings(certs_dir="/srv/certs", start_command="start {name}")
    launcher = SshNodeLauncher.from_settings(s, sudo=True)
    assert launcher.certs_dir == "/srv/certs"
    assert launcher.sudo is True
