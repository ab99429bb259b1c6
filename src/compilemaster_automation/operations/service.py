from __future__ import annotations

import logging
from typing import Any, Optional

from .base import Operation
from ..executors import Executor
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


class SystemCtl:
    """Thin wrapper over the ``systemctl`` verbs the agent lifecycle needs."""

    def __init__(self, executable: str = "systemctl"):
        self.executable = executable

    def available(self, executor: Executor) -> bool:
        return executor.which(self.executable)

    def query(self, executor: Executor, verb: str, unit: str) -> bool:
        return executor.run([self.executable, verb, "--quiet", unit], check=False).returncode == 0

    def change(self, executor: Executor, verb: str, unit: str) -> None:
        executor.run([self.executable, verb, unit])


class ServiceOperation(Operation):
    """Bring a systemd unit to the requested run state and boot enablement.

    ``state`` is ``running`` or ``stopped``; ``enabled`` is a boolean. Either
    may be omitted, in which case that side of the unit is left alone.
    """

    # desired value -> (query verb, verb to run, detail)
    _ENABLE = {True: ("is-enabled", "enable", "enabled"), False: ("is-enabled", "disable", "disabled")}
    _STATE = {"running": ("is-active", "start", "started"), "stopped": ("is-active", "stop", "stopped")}

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        if not spec.get("name"):
            raise ValueError("service operation requires a name")
        self.name = str(spec["name"])
        self.enabled = self._as_bool(spec.get("enabled"))
        self.state: Optional[str] = spec.get("state")
        if self.state is not None and self.state not in self._STATE:
            raise ValueError("service state must be 'running' or 'stopped'")
        self.systemctl = SystemCtl()

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        if not self.systemctl.available(executor):
            raise RuntimeError(f"systemctl is not available on {host.name}")

        wanted = []
        if self.enabled is not None:
            wanted.append((self._ENABLE[self.enabled], self.enabled))
        if self.state is not None:
            wanted.append((self._STATE[self.state], self.state == "running"))

        changes: list[str] = []
        for (check, verb, detail), desired in wanted:
            if self.systemctl.query(executor, check, self.name) == desired:
                continue
            logger.debug("service=%s host=%s verb=%s", self.name, host.name, verb)
            self.systemctl.change(executor, verb, self.name)
            changes.append(detail)

        return ActionResult(
            host=host.name,
            action="service",
            changed=bool(changes),
            details=", ".join(changes) or "noop",
            resource=self.name,
        )

    @staticmethod
    def _as_bool(value: Any) -> Optional[bool]:
        if value is None or isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered in {"true", "yes", "on", "1"}:
            return True
        if lowered in {"false", "no", "off", "0"}:
            return False
        raise ValueError(f"service enabled must be a boolean, got {value!r}")
