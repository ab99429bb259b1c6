from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

DEFAULT_GITHUB_SERVER = "api.github.com"
DEFAULT_SSH_KEY_PATH = "/root/.ssh/id-control_repo.rsa"


class RequestValidationError(ValueError):
    """Raised when a toggle is enabled but its companion values are missing."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"missing required values: {', '.join(self.missing)}")


@dataclass
class HostConfig:
    name: str
    connection: str = "ssh"
    address: Optional[str] = None
    user: Optional[str] = None
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionResult:
    host: str
    action: str
    changed: bool
    details: str
    failed: bool = False
    resource: Optional[str] = None
    output: str = ""

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class KeyPair:
    private_path: str

    @property
    def public_path(self) -> str:
        return self.private_path + ".pub"


@dataclass(frozen=True)
class DeployKeySpec:
    name: str
    token: Any
    user: str
    project: str
    server: str = DEFAULT_GITHUB_SERVER

    @property
    def repository(self) -> str:
        return f"{self.user}/{self.project}"


@dataclass(frozen=True)
class ProvisioningRequest:
    """Everything one compile master bring-up needs.

    Values owned by a toggle are only visible through the ``effective_*``
    accessors, which return ``None`` while the toggle is off.
    """

    target: HostConfig
    mom: HostConfig
    dns_alt_names: tuple[str, ...] = ()
    manage_pos_release: bool = False
    pos_release_package: Optional[str] = None
    manage_mom_hosts: bool = False
    mom_ipaddress: Optional[str] = None
    manage_github_deploy_key: bool = False
    github_deploy_key_name: Optional[str] = None
    github_token: Any = None
    github_user: Optional[str] = None
    github_project: Optional[str] = None
    github_server: str = DEFAULT_GITHUB_SERVER
    ssh_key_path: str = DEFAULT_SSH_KEY_PATH

    @property
    def mom_fqdn(self) -> str:
        return self.mom.name

    @property
    def certname(self) -> str:
        return self.target.name

    @property
    def key_pair(self) -> KeyPair:
        return KeyPair(self.ssh_key_path)

    @property
    def alt_names_setting(self) -> str:
        names = [name for name in self.dns_alt_names if name]
        return ",".join(names or [self.target.name])

    @property
    def effective_release_package(self) -> Optional[str]:
        return self.pos_release_package if self.manage_pos_release else None

    @property
    def effective_mom_ipaddress(self) -> Optional[str]:
        return self.mom_ipaddress if self.manage_mom_hosts else None

    @property
    def effective_deploy_key(self) -> Optional[DeployKeySpec]:
        if not self.manage_github_deploy_key:
            return None
        return DeployKeySpec(
            name=str(self.github_deploy_key_name),
            token=self.github_token,
            user=str(self.github_user),
            project=str(self.github_project),
            server=self.github_server or DEFAULT_GITHUB_SERVER,
        )

    def validate(self) -> None:
        missing: list[str] = []
        if not self.target or not self.target.name:
            missing.append("target")
        if not self.mom or not self.mom.name:
            missing.append("mom")
        if not self.ssh_key_path:
            missing.append("ssh_key_path")
        if self.manage_pos_release and not self.pos_release_package:
            missing.append("pos_release_package")
        if self.manage_mom_hosts and not self.mom_ipaddress:
            missing.append("mom_ipaddress")
        if self.manage_github_deploy_key:
            for name in ("github_deploy_key_name", "github_token", "github_user", "github_project"):
                if getattr(self, name) in (None, ""):
                    missing.append(name)
        if missing:
            raise RequestValidationError(missing)


@dataclass
class StepRecord:
    name: str
    host: str
    results: list[ActionResult] = field(default_factory=list)
    failed: bool = False
    details: str = ""

    @property
    def output(self) -> str:
        return "\n".join(r.output for r in self.results if r.output)


@dataclass
class RunOutcome:
    completed: bool
    steps: list[StepRecord] = field(default_factory=list)
    failed_step: Optional[str] = None
    failed_index: Optional[int] = None
    failed_host: Optional[str] = None
    cause: Optional[str] = None
    output: str = ""

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]
