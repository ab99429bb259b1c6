from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from .executors import Executor, LocalExecutor, SshExecutor
from .operations import OPERATION_REGISTRY, Operation
from .types import ActionResult, HostConfig

logger = logging.getLogger(__name__)

Targets = Union[HostConfig, Sequence[HostConfig]]


class RemoteExecutor:
    """Dispatches named tasks and raw commands to one or more hosts.

    Every target reports a result: unknown task names, bad arguments and
    transport errors all come back as failed ``ActionResult`` entries instead
    of exceptions, so the caller decides what a failure means.
    """

    def __init__(
        self,
        *,
        ssh_options: Sequence[str] = (),
        sudo: bool = False,
        connect_timeout: Optional[float] = None,
        executor_factory: Optional[Callable[[HostConfig], Executor]] = None,
    ):
        self.ssh_options = list(ssh_options)
        self.sudo = sudo
        self.connect_timeout = connect_timeout
        self._executor_factory = executor_factory
        self._executors: dict[str, Executor] = {}

    def run_task(
        self, action_name: str, targets: Targets, arguments: Optional[dict[str, Any]] = None
    ) -> list[ActionResult]:
        spec = dict(arguments or {})
        results: list[ActionResult] = []
        for host in self._as_list(targets):
            result = self._run_on_host(action_name, host, spec)
            logger.debug(
                "task=%s host=%s changed=%s failed=%s", action_name, host.name, result.changed, result.failed
            )
            results.append(result)
        return results

    def run_command(self, command: str, targets: Targets, **options: Any) -> list[ActionResult]:
        return self.run_task("exec", targets, {"command": command, **options})

    def read_file(self, target: HostConfig, path: str) -> Optional[str]:
        return self.executor_for(target).read_file(path)

    def executor_for(self, host: HostConfig) -> Executor:
        executor = self._executors.get(host.name)
        if executor is None:
            executor = self._build_executor(host)
            self._executors[host.name] = executor
        return executor

    def _run_on_host(self, action_name: str, host: HostConfig, spec: dict[str, Any]) -> ActionResult:
        operation_cls = OPERATION_REGISTRY.get(action_name)
        resource = self._resource_name(spec)
        if not operation_cls:
            detail = f"unknown operation '{action_name}'"
            logger.warning(detail)
            return ActionResult(
                host=host.name, action=action_name, changed=False, details=detail, failed=True, resource=resource
            )
        try:
            operation: Operation = operation_cls(dict(spec))
            result = operation.apply(host, self.executor_for(host))
        except Exception as exc:  # noqa: BLE001
            logger.error("action=%s host=%s failed: %s", action_name, host.name, exc, exc_info=True)
            output = "\n".join(
                text.strip() for text in (getattr(exc, "stdout", None), getattr(exc, "stderr", None)) if text
            )
            return ActionResult(
                host=host.name,
                action=action_name,
                changed=False,
                details=str(exc),
                failed=True,
                resource=resource,
                output=output,
            )
        if result.resource is None:
            result.resource = resource
        return result

    def _build_executor(self, host: HostConfig) -> Executor:
        if self._executor_factory is not None:
            return self._executor_factory(host)
        if host.connection == "local":
            return LocalExecutor(host)
        if host.connection == "ssh":
            return SshExecutor(
                host,
                options=self.ssh_options,
                sudo=bool(host.variables.get("sudo", self.sudo)),
                connect_timeout=self.connect_timeout,
            )
        raise ValueError(f"Unknown connection type '{host.connection}'")

    @staticmethod
    def _as_list(targets: Targets) -> list[HostConfig]:
        if isinstance(targets, HostConfig):
            return [targets]
        hosts = list(targets)
        if not hosts:
            raise ValueError("at least one target is required")
        return hosts

    @staticmethod
    def _resource_name(data: dict[str, Any]) -> Optional[str]:
        for key in ("resource", "name", "path", "certname", "setting", "command"):
            value = data.get(key)
            if value:
                return str(value)
        return None


def all_succeeded(results: Iterable[ActionResult]) -> bool:
    results = list(results)
    return bool(results) and all(not r.failed for r in results)
