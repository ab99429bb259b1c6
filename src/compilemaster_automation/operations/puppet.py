"""Operations that drive the Puppet agent, the CA and ``puppet apply``."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .base import Operation, command_result, error_detail
from ..executors import Executor
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)

DEFAULT_PUPPET_BIN = "/opt/puppetlabs/bin/puppet"
DEFAULT_PUPPETSERVER_BIN = "/opt/puppetlabs/bin/puppetserver"

# --detailed-exitcodes: 0 nothing changed, 2 changes applied.
DETAILED_OK = (0, 2)


class PuppetConfOperation(Operation):
    """Set one value in puppet.conf with ``puppet config set``."""

    SECTIONS = {"main", "agent", "server", "master", "user"}

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_setting = spec.get("setting")
        if not raw_setting:
            raise ValueError("puppet_conf operation requires a setting")
        self.setting = str(raw_setting)
        if spec.get("value") is None:
            raise ValueError("puppet_conf operation requires a value")
        self.value = str(spec["value"])
        self.section = str(spec.get("section", "main"))
        if self.section not in self.SECTIONS:
            raise ValueError(f"puppet_conf section '{self.section}' is not valid")
        self.puppet_bin = str(spec.get("puppet_bin") or DEFAULT_PUPPET_BIN)

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        cmd = [self.puppet_bin, "config", "set", self.setting, self.value, "--section", self.section]
        result = executor.run(cmd, check=False)
        action = command_result(host, "puppet_conf", result, resource=f"{self.section}/{self.setting}")
        if not action.failed:
            action.details = f"[{self.section}] {self.setting}={self.value}"
        return action


class PuppetCertOperation(Operation):
    """Sign a certificate request on the CA, or check that one is waiting."""

    ACTIONS = {"sign", "pending"}

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_certname = spec.get("certname")
        if not raw_certname:
            raise ValueError("puppet_cert operation requires a certname")
        self.certname = str(raw_certname)
        self.action = str(spec.get("action", "sign"))
        if self.action not in self.ACTIONS:
            raise ValueError("puppet_cert action must be 'sign' or 'pending'")
        self.puppetserver_bin = str(spec.get("puppetserver_bin") or DEFAULT_PUPPETSERVER_BIN)

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        if self.action == "pending":
            return self._pending(host, executor)
        cmd = [self.puppetserver_bin, "ca", "sign", "--certname", self.certname]
        result = executor.run(cmd, check=False)
        action = command_result(host, "puppet_cert", result, resource=self.certname)
        if not action.failed:
            action.details = f"signed {self.certname}"
        return action

    def _pending(self, host: HostConfig, executor: Executor) -> ActionResult:
        result = executor.run([self.puppetserver_bin, "ca", "list"], check=False)
        if result.returncode != 0:
            return ActionResult(
                host=host.name,
                action="puppet_cert",
                changed=False,
                details=error_detail(result),
                failed=True,
                resource=self.certname,
                output=result.output,
            )
        waiting = self.certname in self.requested_certnames(result.stdout)
        return ActionResult(
            host=host.name,
            action="puppet_cert",
            changed=False,
            details="request pending" if waiting else "no pending request",
            failed=not waiting,
            resource=self.certname,
            output=result.output,
        )

    @staticmethod
    def requested_certnames(listing: str) -> list[str]:
        """Certnames under the "Requested Certificates:" heading of ``puppetserver ca list``."""
        names: list[str] = []
        in_requested = False
        for line in listing.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.endswith(":") and not line.startswith((" ", "\t")):
                in_requested = stripped.lower().startswith("requested")
                continue
            if in_requested:
                names.append(stripped.split()[0])
        return names


class PuppetAgentRunOperation(Operation):
    """Run the agent once in the foreground and wait for it to finish."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        self.puppet_bin = str(spec.get("puppet_bin") or DEFAULT_PUPPET_BIN)
        self.timeout = float(spec["timeout"]) if spec.get("timeout") else None

    def command(self) -> list[str]:
        return [
            self.puppet_bin,
            "agent",
            "--onetime",
            "--verbose",
            "--no-daemonize",
            "--no-usecacheonfailure",
            "--no-splay",
            "--show_diff",
            "--detailed-exitcodes",
        ]

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        result = executor.run(self.command(), check=False, timeout=self.timeout)
        logger.debug("puppet agent host=%s rc=%s", host.name, result.returncode)
        return command_result(
            host,
            "puppet_agent",
            result,
            allowed_returns=DETAILED_OK,
            changed_returns=(2,),
            resource="onetime",
        )


class ApplyPrepOperation(Operation):
    """Check that the host can run ``puppet apply`` and report the agent version."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        self.puppet_bin = str(spec.get("puppet_bin") or DEFAULT_PUPPET_BIN)

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        result = executor.run([self.puppet_bin, "--version"], check=False)
        action = command_result(host, "apply_prep", result, changed_returns=(), resource=self.puppet_bin)
        if not action.failed:
            action.details = f"puppet={result.stdout.strip() or 'unknown'}"
        return action


class PuppetApplyOperation(Operation):
    """Apply a manifest bundle on the host with ``puppet apply``."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        manifest = spec.get("manifest")
        manifest_path = spec.get("manifest_path")
        if not manifest and not manifest_path:
            raise ValueError("puppet_apply operation requires a manifest or manifest_path")
        self.manifest: Optional[str] = str(manifest) if manifest else None
        self.manifest_path: Optional[str] = str(manifest_path) if manifest_path else None
        self.puppet_bin = str(spec.get("puppet_bin") or DEFAULT_PUPPET_BIN)
        self.timeout = float(spec["timeout"]) if spec.get("timeout") else None

    def command(self) -> list[str]:
        cmd = [self.puppet_bin, "apply", "--detailed-exitcodes", "--verbose"]
        if self.manifest_path:
            cmd.append(self.manifest_path)
        else:
            cmd.extend(["-e", self.manifest or ""])
        return cmd

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        result = executor.run(self.command(), check=False, timeout=self.timeout)
        return command_result(
            host,
            "puppet_apply",
            result,
            allowed_returns=DETAILED_OK,
            changed_returns=(2,),
            resource=self.manifest_path or "inline",
        )
