import pytest

from compilemaster_automation.config import CompileMasterConfig
from compilemaster_automation.runner import RemoteExecutor
from compilemaster_automation.settle import FixedSettle, PollSettle, build_settle
from compilemaster_automation.types import ActionResult, HostConfig

MOM = HostConfig("mom.example.com")


class PendingAfter(RemoteExecutor):
    """CA that reports the request pending from the ``ready``-th check on."""

    def __init__(self, ready: int):
        super().__init__()
        self.ready = ready
        self.checks: list[dict] = []

    def run_task(self, action_name, targets, arguments=None):  # type: ignore[override]
        assert action_name == "puppet_cert"
        self.checks.append(dict(arguments or {}))
        failed = len(self.checks) < self.ready
        return [ActionResult(host=MOM.name, action=action_name, changed=False, details="", failed=failed)]


def test_fixed_settle_sleeps_once():
    sleeps: list[float] = []

    assert FixedSettle(10, sleep=sleeps.append).wait("compile01", MOM) is True
    assert sleeps == [10]


def test_poll_returns_on_first_hit():
    sleeps: list[float] = []
    remote = PendingAfter(ready=1)

    assert PollSettle(remote, sleep=sleeps.append).wait("compile01", MOM) is True
    assert sleeps == []
    assert remote.checks == [{"action": "pending", "certname": "compile01"}]


def test_poll_backs_off_until_cap():
    sleeps: list[float] = []
    remote = PendingAfter(ready=5)
    settle = PollSettle(remote, attempts=6, interval=5, backoff=2, max_interval=12, sleep=sleeps.append)

    assert settle.wait("compile01", MOM) is True
    assert sleeps == [5, 10, 12, 12]


def test_poll_gives_up_without_final_sleep():
    sleeps: list[float] = []
    remote = PendingAfter(ready=99)
    settle = PollSettle(remote, attempts=3, interval=1, backoff=2, sleep=sleeps.append)

    assert settle.wait("compile01", MOM) is False
    assert len(remote.checks) == 3
    assert sleeps == [1, 2]


def test_poll_passes_puppetserver_bin():
    remote = PendingAfter(ready=1)

    PollSettle(remote, puppetserver_bin="/usr/bin/puppetserver", sleep=lambda _: None).wait("c", MOM)

    assert remote.checks[0]["puppetserver_bin"] == "/usr/bin/puppetserver"


def test_poll_requires_an_attempt():
    with pytest.raises(ValueError):
        PollSettle(RemoteExecutor(), attempts=0)


def test_build_settle_follows_mode():
    remote = RemoteExecutor()

    assert isinstance(build_settle(CompileMasterConfig(), remote), PollSettle)
    fixed = build_settle(CompileMasterConfig(settle_mode="fixed", settle_seconds=3), remote)
    assert isinstance(fixed, FixedSettle)
    assert fixed.seconds == 3
