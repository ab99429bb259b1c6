from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG = Path("/etc/compilemaster/main.conf")
DEFAULT_REQUEST = Path("/etc/compilemaster/request.toml")
SETTLE_MODES = {"poll", "fixed"}


@dataclass
class CompileMasterConfig:
    request: Path = DEFAULT_REQUEST
    settle_mode: str = "poll"
    settle_seconds: float = 10.0
    poll_attempts: int = 6
    poll_interval: float = 5.0
    poll_backoff: float = 2.0
    poll_max_interval: float = 30.0
    agent_package: str = "puppet-agent"
    agent_service: str = "puppet"
    puppet_bin: str = "/opt/puppetlabs/bin/puppet"
    puppetserver_bin: str = "/opt/puppetlabs/bin/puppetserver"
    facts_path: str = "/etc/puppetlabs/facter/facts.d/site_roles.json"
    site_roles: list[str] = field(default_factory=lambda: ["compile_master"])
    site_bundle: str = "include role::compile_master"
    puppetserver_ssh_dir: str = "/etc/puppetlabs/puppetserver/ssh"
    puppetserver_user: Optional[str] = "puppet"
    deploy_command: str = "/opt/puppetlabs/puppet/bin/r10k deploy environment --modules --verbose"
    hosts_file: str = "/etc/hosts"
    ssh_options: list[str] = field(default_factory=list)
    sudo: bool = False
    http_timeout: float = 30.0


def load_config(path: Path) -> CompileMasterConfig:
    if not path.exists():
        return CompileMasterConfig()
    data = tomllib.loads(path.read_text())
    defaults: dict[str, Any] = data.get("defaults", {})
    base = CompileMasterConfig()

    settle_mode = str(defaults.get("settle_mode", base.settle_mode)).lower()
    if settle_mode not in SETTLE_MODES:
        raise ValueError(f"{path}: settle_mode must be one of {', '.join(sorted(SETTLE_MODES))}")
    site_roles = defaults.get("site_roles", base.site_roles)
    if isinstance(site_roles, str):
        site_roles = [site_roles]
    ssh_options = defaults.get("ssh_options", base.ssh_options)
    if isinstance(ssh_options, str):
        ssh_options = ssh_options.split()
    puppetserver_user = defaults.get("puppetserver_user", base.puppetserver_user)

    return CompileMasterConfig(
        request=Path(defaults.get("request", base.request)),
        settle_mode=settle_mode,
        settle_seconds=float(defaults.get("settle_seconds", base.settle_seconds)),
        poll_attempts=int(defaults.get("poll_attempts", base.poll_attempts)),
        poll_interval=float(defaults.get("poll_interval", base.poll_interval)),
        poll_backoff=float(defaults.get("poll_backoff", base.poll_backoff)),
        poll_max_interval=float(defaults.get("poll_max_interval", base.poll_max_interval)),
        agent_package=str(defaults.get("agent_package", base.agent_package)),
        agent_service=str(defaults.get("agent_service", base.agent_service)),
        puppet_bin=str(defaults.get("puppet_bin", base.puppet_bin)),
        puppetserver_bin=str(defaults.get("puppetserver_bin", base.puppetserver_bin)),
        facts_path=str(defaults.get("facts_path", base.facts_path)),
        site_roles=[str(role) for role in site_roles],
        site_bundle=str(defaults.get("site_bundle", base.site_bundle)),
        puppetserver_ssh_dir=str(defaults.get("puppetserver_ssh_dir", base.puppetserver_ssh_dir)),
        puppetserver_user=str(puppetserver_user) if puppetserver_user else None,
        deploy_command=str(defaults.get("deploy_command", base.deploy_command)),
        hosts_file=str(defaults.get("hosts_file", base.hosts_file)),
        ssh_options=[str(opt) for opt in ssh_options],
        sudo=bool(defaults.get("sudo", base.sudo)),
        http_timeout=float(defaults.get("http_timeout", base.http_timeout)),
    )
