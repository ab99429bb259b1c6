from pathlib import Path
import subprocess
from types import SimpleNamespace

import pytest

from compilemaster_automation import executors as executors_mod
from compilemaster_automation.executors import LocalExecutor, SSHConnectionError, SshExecutor
from compilemaster_automation.types import HostConfig


class FakeSubprocess:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls: list[tuple[list[str], dict]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((list(cmd), kwargs))
        return SimpleNamespace(returncode=self.returncode, stdout=self.stdout, stderr=self.stderr)


@pytest.fixture
def fake_run(monkeypatch):
    fake = FakeSubprocess()
    monkeypatch.setattr(executors_mod.subprocess, "run", fake)
    return fake


def ssh_host(**kwargs) -> HostConfig:
    return HostConfig(name="compile01.example.com", **kwargs)


def test_local_write_and_append(tmp_path: Path) -> None:
    executor = LocalExecutor(HostConfig("local"))
    target = tmp_path / "nested" / "file.txt"

    assert executor.write_file(target, content="a\n", mode=None) == (True, "content")
    assert executor.write_file(target, content="a\n", mode=None) == (False, "noop")
    executor.append_line(target, "b")

    assert target.read_text() == "a\nb\n"


def test_local_run_raises_with_check() -> None:
    executor = LocalExecutor(HostConfig("local"))

    with pytest.raises(subprocess.CalledProcessError):
        executor.run(["sh", "-c", "exit 3"])
    assert executor.run(["sh", "-c", "exit 3"], check=False).returncode == 3


def test_local_which() -> None:
    executor = LocalExecutor(HostConfig("local"))

    assert executor.which("sh") is True
    assert executor.which("definitely-not-installed-binary") is False


def test_ssh_destination_prefers_address() -> None:
    assert SshExecutor(ssh_host()).destination == "compile01.example.com"
    assert SshExecutor(ssh_host(address="10.0.0.5", user="admin")).destination == "admin@10.0.0.5"


def test_ssh_build_command_quotes_arguments() -> None:
    executor = SshExecutor(ssh_host(), options=["-p", "2222"], connect_timeout=10)

    cmd = executor.build_command(["ssh-keygen", "-N", "", "-C", "compile01 control repository"])

    assert cmd == [
        "ssh",
        "-oBatchMode=yes",
        "-p",
        "2222",
        "-oConnectTimeout=10",
        "compile01.example.com",
        "ssh-keygen -N '' -C 'compile01 control repository'",
    ]


def test_ssh_build_command_with_env_sudo_and_cwd() -> None:
    executor = SshExecutor(ssh_host(), sudo=True)

    cmd = executor.build_command(["apt-get", "update"], env={"DEBIAN_FRONTEND": "noninteractive"}, cwd="/tmp")

    assert cmd[-1] == "cd /tmp && sudo -n sh -c 'env DEBIAN_FRONTEND=noninteractive apt-get update'"


def test_ssh_run_closes_stdin(fake_run) -> None:
    fake_run.stdout = "7.28.0\n"

    result = SshExecutor(ssh_host()).run(["puppet", "--version"])

    cmd, kwargs = fake_run.calls[0]
    assert cmd[0] == "ssh"
    assert kwargs["stdin"] is subprocess.DEVNULL
    assert result.command == ["puppet", "--version"]
    assert result.stdout == "7.28.0\n"


def test_ssh_run_passes_input(fake_run) -> None:
    SshExecutor(ssh_host()).append_line("/etc/hosts", "10.0.0.2 mom.example.com")

    cmd, kwargs = fake_run.calls[0]
    assert cmd[-1] == "sh -c 'cat >> /etc/hosts'"
    assert kwargs["input"] == "10.0.0.2 mom.example.com\n"
    assert kwargs["stdin"] is None


def test_ssh_connection_failure_raises(fake_run) -> None:
    fake_run.returncode = 255
    fake_run.stderr = "ssh: connect to host compile01.example.com port 22: Connection refused\n"

    with pytest.raises(SSHConnectionError, match="Connection refused"):
        SshExecutor(ssh_host()).run(["true"], check=False)


def test_ssh_nonzero_exit_raises_with_check(fake_run) -> None:
    fake_run.returncode = 1

    with pytest.raises(subprocess.CalledProcessError):
        SshExecutor(ssh_host()).run(["false"])


def test_ssh_read_file_missing_returns_none(fake_run) -> None:
    fake_run.returncode = 1

    assert SshExecutor(ssh_host()).read_file("/root/.ssh/id.pub") is None


def test_ssh_copy_file_sets_mode(fake_run) -> None:
    changed, detail = SshExecutor(ssh_host()).copy_file("/root/.ssh/key", "/etc/ssh-dir/key", mode=0o600)

    commands = [call[0][-1] for call in fake_run.calls]
    assert commands == ["cp -p /root/.ssh/key /etc/ssh-dir/key", "chmod 0600 /etc/ssh-dir/key"]
    assert changed is True
    assert detail == "copied, mode->0600"
