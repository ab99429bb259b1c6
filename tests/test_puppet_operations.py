import pytest

from compilemaster_automation.executors import CommandResult, Executor
from compilemaster_automation.operations.puppet import (
    ApplyPrepOperation,
    PuppetAgentRunOperation,
    PuppetApplyOperation,
    PuppetCertOperation,
    PuppetConfOperation,
)
from compilemaster_automation.types import HostConfig

CA_LIST = """\
Requested Certificates:
    compile01.example.com       (SHA256)  7E:1C:44:0A
    compile02.example.com       (SHA256)  11:AB:90:3F
Signed Certificates:
    mom.example.com       (SHA256)  3B:22:10:FF	alt names: ["DNS:puppet", "DNS:mom.example.com"]
"""


class RecordingExecutor(Executor):
    def __init__(self, responses: dict[str, CommandResult] | None = None):
        super().__init__(HostConfig(name="compile01"))
        self.responses = responses or {}
        self.commands: list[list[str]] = []
        self.timeouts: list[float | None] = []

    def run(self, command, *, check=True, env=None, cwd=None, timeout=None, input=None):  # type: ignore[override]
        cmd = list(command)
        self.commands.append(cmd)
        self.timeouts.append(timeout)
        for key, result in self.responses.items():
            if key in cmd:
                return result
        return CommandResult(cmd, "", "", 0)


def test_puppet_conf_sets_value():
    executor = RecordingExecutor()
    op = PuppetConfOperation({"section": "agent", "setting": "server", "value": "mom.example.com"})

    result = op.apply(HostConfig("compile01"), executor)

    assert executor.commands == [
        ["/opt/puppetlabs/bin/puppet", "config", "set", "server", "mom.example.com", "--section", "agent"]
    ]
    assert result.details == "[agent] server=mom.example.com"
    assert result.resource == "agent/server"


def test_puppet_conf_failure_reports_stderr():
    executor = RecordingExecutor({"set": CommandResult([], "", "Error: bad section\n", 1)})

    result = PuppetConfOperation({"setting": "ca_server", "value": "mom"}).apply(HostConfig("compile01"), executor)

    assert result.failed is True
    assert result.details == "rc=1: Error: bad section"


def test_puppet_conf_rejects_unknown_section():
    with pytest.raises(ValueError):
        PuppetConfOperation({"setting": "server", "value": "x", "section": "nowhere"})


def test_cert_sign_command():
    executor = RecordingExecutor()
    op = PuppetCertOperation({"certname": "compile01.example.com", "puppetserver_bin": "/usr/bin/puppetserver"})

    result = op.apply(HostConfig("mom"), executor)

    assert executor.commands == [["/usr/bin/puppetserver", "ca", "sign", "--certname", "compile01.example.com"]]
    assert result.details == "signed compile01.example.com"
    assert result.host == "mom"


def test_cert_sign_without_request_fails():
    stderr = "Error:\n    Could not find certificate request for compile01.example.com\n"
    executor = RecordingExecutor({"sign": CommandResult([], "", stderr, 24)})

    result = PuppetCertOperation({"certname": "compile01.example.com"}).apply(HostConfig("mom"), executor)

    assert result.failed is True
    assert result.details == "rc=24: Error:"
    assert "Could not find certificate request" in result.output


def test_requested_certnames_reads_only_requests():
    assert PuppetCertOperation.requested_certnames(CA_LIST) == [
        "compile01.example.com",
        "compile02.example.com",
    ]


@pytest.mark.parametrize(
    "certname, pending", [("compile01.example.com", True), ("mom.example.com", False), ("other", False)]
)
def test_cert_pending(certname, pending):
    executor = RecordingExecutor({"list": CommandResult([], CA_LIST, "", 0)})

    result = PuppetCertOperation({"certname": certname, "action": "pending"}).apply(HostConfig("mom"), executor)

    assert result.failed is (not pending)
    assert result.changed is False


def test_cert_rejects_unknown_action():
    with pytest.raises(ValueError):
        PuppetCertOperation({"certname": "x", "action": "revoke"})


@pytest.mark.parametrize("rc, changed, failed", [(0, False, False), (2, True, False), (4, False, True), (6, False, True)])
def test_agent_run_detailed_exit_codes(rc, changed, failed):
    executor = RecordingExecutor({"agent": CommandResult([], "", "", rc)})

    result = PuppetAgentRunOperation({"timeout": 600}).apply(HostConfig("compile01"), executor)

    assert "--detailed-exitcodes" in executor.commands[0]
    assert "--onetime" in executor.commands[0]
    assert executor.timeouts == [600.0]
    assert result.changed is changed
    assert result.failed is failed


def test_apply_prep_reports_version():
    executor = RecordingExecutor({"--version": CommandResult([], "7.28.0\n", "", 0)})

    result = ApplyPrepOperation({}).apply(HostConfig("compile01"), executor)

    assert result.changed is False
    assert result.details == "puppet=7.28.0"


def test_apply_prep_fails_without_puppet():
    executor = RecordingExecutor({"--version": CommandResult([], "", "not found", 127)})

    result = ApplyPrepOperation({}).apply(HostConfig("compile01"), executor)

    assert result.failed is True


def test_puppet_apply_inline_and_path():
    executor = RecordingExecutor()

    PuppetApplyOperation({"manifest": "include role::compile_master"}).apply(HostConfig("compile01"), executor)
    PuppetApplyOperation({"manifest_path": "/opt/site/cm.pp"}).apply(HostConfig("compile01"), executor)

    assert executor.commands[0][-2:] == ["-e", "include role::compile_master"]
    assert executor.commands[1][-1] == "/opt/site/cm.pp"


def test_puppet_apply_requires_manifest():
    with pytest.raises(ValueError):
        PuppetApplyOperation({})
