from __future__ import annotations

from typing import Any

from .base import Operation
from ..executors import Executor
from ..types import ActionResult, HostConfig

DEFAULT_HOSTS_FILE = "/etc/hosts"


class HostEntryOperation(Operation):
    """Append an ``<ip> <names>`` line to the hosts file.

    Existing entries are not inspected, so applying the operation twice
    leaves two identical lines behind.
    """

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_ip = spec.get("ip")
        if not raw_ip:
            raise ValueError("host_entry operation requires an ip")
        self.ip = str(raw_ip)
        names = spec.get("names") or spec.get("name")
        if isinstance(names, str):
            self.names = names.split()
        else:
            self.names = [str(name) for name in names or []]
        if not self.names:
            raise ValueError("host_entry operation requires at least one name")
        self.path = str(spec.get("path") or DEFAULT_HOSTS_FILE)

    @property
    def line(self) -> str:
        return " ".join([self.ip, *self.names])

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        detail = executor.append_line(self.path, self.line)
        return ActionResult(
            host=host.name,
            action="host_entry",
            changed=True,
            details=f"{detail} '{self.line}' to {self.path}",
            resource=self.names[0],
        )
