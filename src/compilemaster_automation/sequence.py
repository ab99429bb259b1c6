"""The compile master bring-up, one fixed ordered list of remote steps.

Steps run strictly one after another. The first failing step ends the run;
nothing is rolled back, so the host keeps whatever the completed steps did.
Running again starts from the top: the MoM hosts entry is appended a second
time and the SSH key pair is regenerated, which invalidates a deploy key
registered by an earlier run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Optional

from .applier import ConfigApplier
from .config import CompileMasterConfig
from .facts import HostFactsWriter
from .registrar import DeployKeyRegistrar, RegistrarError
from .runner import RemoteExecutor, all_succeeded
from .settle import Settle, Sleeper, build_settle
from .types import (
    ActionResult,
    DeployKeySpec,
    HostConfig,
    ProvisioningRequest,
    RequestValidationError,
    RunOutcome,
    StepRecord,
)

logger = logging.getLogger(__name__)

VALIDATE_STEP = "validate_request"


@dataclass(frozen=True)
class Step:
    name: str
    host: HostConfig
    run: Callable[[], "StepResult"]


@dataclass
class StepResult:
    results: list[ActionResult]
    details: str = ""


class ProvisioningSequence:
    """Drives one target from a bare host to a running compile master."""

    def __init__(
        self,
        remote: RemoteExecutor,
        *,
        config: Optional[CompileMasterConfig] = None,
        applier: Optional[ConfigApplier] = None,
        facts: Optional[HostFactsWriter] = None,
        registrar: Optional[DeployKeyRegistrar] = None,
        settle: Optional[Settle] = None,
        sleep: Sleeper = time.sleep,
        progress_callback: Optional[Callable[[HostConfig, str], None]] = None,
    ):
        self.remote = remote
        self.config = config or CompileMasterConfig()
        self.applier = applier or ConfigApplier(remote, puppet_bin=self.config.puppet_bin)
        self.facts = facts or HostFactsWriter(remote)
        self.registrar = registrar or DeployKeyRegistrar(remote, timeout=self.config.http_timeout)
        self.settle = settle or build_settle(self.config, remote, sleep=sleep)
        self.progress_callback = progress_callback

    def execute(self, request: ProvisioningRequest) -> RunOutcome:
        try:
            request.validate()
        except RequestValidationError as exc:
            logger.error("Request rejected: %s", exc)
            return RunOutcome(
                completed=False,
                failed_step=VALIDATE_STEP,
                failed_index=0,
                failed_host=request.target.name if request.target else None,
                cause=str(exc),
            )

        outcome = RunOutcome(completed=False)
        for index, step in enumerate(self.steps(request), start=1):
            if self.progress_callback:
                self.progress_callback(step.host, step.name)
            logger.info("Step %s: %s on %s", index, step.name, step.host.name)
            try:
                result = step.run()
            except RegistrarError as exc:
                result = StepResult(
                    [
                        ActionResult(
                            host=step.host.name,
                            action="deploy_key",
                            changed=False,
                            details=str(exc),
                            failed=True,
                        )
                    ]
                )
            record = StepRecord(
                name=step.name,
                host=step.host.name,
                results=result.results,
                failed=not all_succeeded(result.results),
                details=result.details or self._summarize(result.results),
            )
            outcome.steps.append(record)
            logger.debug("step=%s host=%s failed=%s", step.name, step.host.name, record.failed)
            if record.failed:
                failure = next((r for r in record.results if r.failed), None)
                outcome.failed_step = step.name
                outcome.failed_index = index
                outcome.failed_host = failure.host if failure else step.host.name
                outcome.cause = failure.details if failure else "step reported no results"
                outcome.output = record.output
                logger.error("Step %s failed on %s: %s", step.name, outcome.failed_host, outcome.cause)
                return outcome

        outcome.completed = True
        logger.info("%s is provisioned as a compile master of %s", request.target.name, request.mom_fqdn)
        return outcome

    def steps(self, request: ProvisioningRequest) -> list[Step]:
        """Steps that ``request`` enables, in execution order."""
        target, mom = request.target, request.mom
        steps: list[Step] = []
        if request.effective_release_package:
            steps.append(Step("install_release_package", target, lambda: self._install_release(request)))
        if request.effective_mom_ipaddress:
            steps.append(Step("add_mom_host_entry", target, lambda: self._add_mom_host_entry(request)))
        steps.extend(
            [
                Step("install_agent", target, lambda: self._install_agent(request)),
                Step("configure_agent", target, lambda: self._configure_agent(request)),
                Step("start_agent", target, lambda: self._start_agent(request)),
                Step("sign_certificate", mom, lambda: self._sign_certificate(request)),
                Step("prepare_apply", target, lambda: StepResult(self.applier.prepare(target))),
                Step(
                    "apply_site_profile",
                    target,
                    lambda: StepResult(self.applier.apply(target, self.config.site_bundle)),
                ),
                Step("stop_agent", target, lambda: self._service(target, state="stopped")),
                Step("generate_ssh_key", target, lambda: self._generate_ssh_key(request)),
                Step("setup_ssh_dir", target, lambda: self._setup_ssh_dir(request)),
                Step("copy_ssh_key", target, lambda: self._copy_ssh_key(request)),
                Step("write_site_facts", target, lambda: self._write_site_facts(request)),
                Step("run_agent_once", target, lambda: self._run_agent_once(request)),
            ]
        )
        deploy_key = request.effective_deploy_key
        if deploy_key is not None:
            steps.append(
                Step("register_deploy_key", target, lambda: self._register_deploy_key(request, deploy_key))
            )
            steps.append(Step("deploy_environments", target, lambda: self._deploy_environments(request)))
        steps.append(Step("enable_agent", target, lambda: self._service(target, state="running", enabled=True)))
        return steps

    # Step bodies ---------------------------------------------------------
    def _install_release(self, request: ProvisioningRequest) -> StepResult:
        return StepResult(
            self.remote.run_task("package", request.target, {"source": request.effective_release_package})
        )

    def _add_mom_host_entry(self, request: ProvisioningRequest) -> StepResult:
        arguments = {
            "ip": request.effective_mom_ipaddress,
            "names": [request.mom_fqdn],
            "path": self.config.hosts_file,
        }
        return StepResult(self.remote.run_task("host_entry", request.target, arguments))

    def _install_agent(self, request: ProvisioningRequest) -> StepResult:
        return StepResult(self.remote.run_task("package", request.target, {"name": self.config.agent_package}))

    def _configure_agent(self, request: ProvisioningRequest) -> StepResult:
        settings = [
            ("agent", "server", request.mom_fqdn),
            ("main", "ca_server", request.mom_fqdn),
            ("main", "dns_alt_names", request.alt_names_setting),
        ]
        results: list[ActionResult] = []
        for section, setting, value in settings:
            arguments = {
                "section": section,
                "setting": setting,
                "value": value,
                "puppet_bin": self.config.puppet_bin,
            }
            batch = self.remote.run_task("puppet_conf", request.target, arguments)
            results.extend(batch)
            if not all_succeeded(batch):
                break
        return StepResult(results)

    def _start_agent(self, request: ProvisioningRequest) -> StepResult:
        started = self._service(request.target, state="running")
        if not all_succeeded(started.results):
            return started
        pending = self.settle.wait(request.certname, request.mom)
        details = "certificate request pending" if pending else "certificate request not seen yet"
        return StepResult(started.results, details=details)

    def _sign_certificate(self, request: ProvisioningRequest) -> StepResult:
        arguments = {
            "action": "sign",
            "certname": request.certname,
            "puppetserver_bin": self.config.puppetserver_bin,
        }
        return StepResult(self.remote.run_task("puppet_cert", request.mom, arguments))

    def _service(self, target: HostConfig, *, state: str, enabled: Optional[bool] = None) -> StepResult:
        arguments: dict[str, object] = {"name": self.config.agent_service, "state": state}
        if enabled is not None:
            arguments["enabled"] = enabled
        return StepResult(self.remote.run_task("service", target, arguments))

    def _generate_ssh_key(self, request: ProvisioningRequest) -> StepResult:
        arguments = {
            "path": request.key_pair.private_path,
            "type": "rsa",
            "bits": 4096,
            "comment": f"{request.certname} control repository",
        }
        return StepResult(self.remote.run_task("ssh_keygen", request.target, arguments))

    def _setup_ssh_dir(self, request: ProvisioningRequest) -> StepResult:
        arguments = {
            "path": self.config.puppetserver_ssh_dir,
            "state": "directory",
            "mode": 0o700,
            "owner": self.config.puppetserver_user,
            "group": self.config.puppetserver_user,
        }
        return StepResult(self.remote.run_task("file", request.target, arguments))

    def _copy_ssh_key(self, request: ProvisioningRequest) -> StepResult:
        ssh_dir = PurePosixPath(self.config.puppetserver_ssh_dir)
        pair = request.key_pair
        results: list[ActionResult] = []
        for source, mode in ((pair.private_path, 0o600), (pair.public_path, 0o644)):
            arguments = {
                "path": str(ssh_dir / PurePosixPath(source).name),
                "source": source,
                "mode": mode,
                "owner": self.config.puppetserver_user,
                "group": self.config.puppetserver_user,
            }
            batch = self.remote.run_task("file", request.target, arguments)
            results.extend(batch)
            if not all_succeeded(batch):
                break
        return StepResult(results)

    def _write_site_facts(self, request: ProvisioningRequest) -> StepResult:
        document = {"site_roles": list(self.config.site_roles)}
        return StepResult(self.facts.write_fact(request.target, self.config.facts_path, document))

    def _run_agent_once(self, request: ProvisioningRequest) -> StepResult:
        return StepResult(
            self.remote.run_task("puppet_agent", request.target, {"puppet_bin": self.config.puppet_bin})
        )

    def _register_deploy_key(self, request: ProvisioningRequest, deploy_key: DeployKeySpec) -> StepResult:
        result = self.registrar.register_deploy_key(
            deploy_key.name,
            request.key_pair.public_path,
            deploy_key.token,
            deploy_key.repository,
            deploy_key.server,
            source=request.target,
        )
        return StepResult([result])

    def _deploy_environments(self, request: ProvisioningRequest) -> StepResult:
        # A plain command: the packaged r10k task runs under a different
        # Ruby than the agent's and fails there.
        return StepResult(self.remote.run_command(self.config.deploy_command, request.target))

    @staticmethod
    def _summarize(results: list[ActionResult]) -> str:
        return "; ".join(r.details for r in results if r.details)
