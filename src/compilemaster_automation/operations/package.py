from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Iterable, Optional
from urllib.parse import urlparse

from .base import Operation
from ..executors import Executor
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


class PackageManager:
    """Command templates for one native package manager."""

    name = "generic"
    install_cmd: tuple[str, ...] = ()
    env: Optional[dict[str, str]] = None

    def is_installed(self, executor: Executor, package: str) -> bool:
        raise NotImplementedError

    def install(self, executor: Executor, packages: list[str]) -> None:
        executor.run([*self.install_cmd, *packages], env=self.env)

    def install_source(self, executor: Executor, source: str) -> None:
        self.install(executor, [source])

    def ensure_present(self, executor: Executor, packages: Iterable[str]) -> tuple[bool, str]:
        missing = [name for name in packages if not self.is_installed(executor, name)]
        if missing:
            self.install(executor, missing)
            return True, f"installed={','.join(missing)}"
        return False, "already-installed"


class AptPackageManager(PackageManager):
    name = "apt"
    install_cmd = ("apt-get", "install", "-y")
    env = {"DEBIAN_FRONTEND": "noninteractive"}
    download_dir = "/tmp"

    def is_installed(self, executor: Executor, package: str) -> bool:
        result = executor.run(["dpkg-query", "-W", "-f", "${Status}", package], check=False)
        return result.returncode == 0 and result.stdout.rstrip().endswith(" installed")

    def install_source(self, executor: Executor, source: str) -> None:
        url = urlparse(source)
        if url.scheme in {"http", "https"}:
            local = str(PurePosixPath(self.download_dir) / PurePosixPath(url.path).name)
            executor.run(["curl", "-fsSL", source, "-o", local])
            source = local
        self.install(executor, [source])
        # The release package only adds a repository; apt needs a refresh to see it.
        executor.run(["apt-get", "update"], env=self.env)


class RpmPackageManager(PackageManager):
    def is_installed(self, executor: Executor, package: str) -> bool:
        return executor.run(["rpm", "-q", package], check=False).returncode == 0


class DnfPackageManager(RpmPackageManager):
    name = "dnf"
    install_cmd = ("dnf", "install", "-y")


class YumPackageManager(RpmPackageManager):
    name = "yum"
    install_cmd = ("yum", "install", "-y")


class ZypperPackageManager(RpmPackageManager):
    name = "zypper"
    install_cmd = ("zypper", "--non-interactive", "install")

    def install_source(self, executor: Executor, source: str) -> None:
        executor.run(["zypper", "--non-interactive", "--no-gpg-checks", "install", source])


# Detected in order; dnf wins over yum where both are present.
MANAGERS: dict[str, type[PackageManager]] = {
    "apt-get": AptPackageManager,
    "dnf": DnfPackageManager,
    "yum": YumPackageManager,
    "zypper": ZypperPackageManager,
}


def detect_manager(executor: Executor, preferred: Optional[str] = None) -> PackageManager:
    if preferred:
        by_name = {cls.name: cls for cls in MANAGERS.values()}
        try:
            return by_name[preferred.lower()]()
        except KeyError:
            raise ValueError(f"Unknown package manager '{preferred}'") from None
    for binary, cls in MANAGERS.items():
        if executor.which(binary):
            return cls()
    raise RuntimeError(f"No supported package manager found on {executor.host.name}")


class PackageOperation(Operation):
    """Install packages by name, or one release package from a URL or host path."""

    def __init__(self, spec: dict[str, object]):
        super().__init__(spec)
        names = spec.get("name") or spec.get("packages") or []
        self.packages = [names] if isinstance(names, str) else [str(n) for n in names]  # type: ignore[union-attr]
        self.source = str(spec["source"]) if spec.get("source") else None
        if not self.packages and not self.source:
            raise ValueError("package operation requires at least one package or a source")
        manager = spec.get("manager")
        self.manager = str(manager) if manager else None

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        manager = detect_manager(executor, self.manager)
        logger.debug("package manager=%s host=%s packages=%s source=%s", manager.name, host.name, self.packages, self.source)
        if self.source:
            manager.install_source(executor, self.source)
            changed, details = True, f"installed-from={self.source}"
        else:
            changed, details = manager.ensure_present(executor, self.packages)
        return ActionResult(
            host=host.name,
            action="package",
            changed=changed,
            details=f"manager={manager.name} {details}",
            resource=self.source or ",".join(self.packages),
        )
