from __future__ import annotations

import logging
import shlex
from string import Template
from typing import Any, Optional, Sequence

from .base import Operation, command_result
from ..executors import Executor
from ..secrets import SecretResolver
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


class ExecOperation(Operation):
    """Run a raw command on the host.

    A string command goes through ``sh -c``; a list is run as-is. ``${name}``
    placeholders are filled from host and task variables (secret references
    resolved) before running.
    """

    secret_resolver = SecretResolver()

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        command = spec.get("command") or spec.get("cmd")
        if command is None:
            raise ValueError("exec operation requires a command")
        if not isinstance(command, (str, Sequence)):
            raise ValueError("exec command must be a string or list")
        self.command = command
        self.name = str(spec.get("name") or self.describe(command))
        self.cwd = str(spec["cwd"]) if spec.get("cwd") else None

        env = spec.get("env") or {}
        if isinstance(env, dict):
            self.env = {str(k): str(v) for k, v in env.items()} or None
        else:
            pairs = [str(item).partition("=") for item in env]
            if any(not sep for _, sep, _ in pairs):
                raise ValueError("env list entries must be KEY=VALUE")
            self.env = {key: value for key, _, value in pairs} or None

        variables = spec.get("variables") or {}
        if not isinstance(variables, dict):
            raise ValueError("exec variables must be a mapping")
        self.variables = dict(variables)

        returns = spec.get("returns", 0)
        self.returns = (int(returns),) if isinstance(returns, int) else tuple(int(rc) for rc in returns)
        try:
            self.timeout: Optional[float] = float(spec["timeout"]) if spec.get("timeout") is not None else None
        except (TypeError, ValueError) as exc:
            raise ValueError("exec timeout must be numeric") from exc

    @staticmethod
    def describe(command: Any) -> str:
        return command if isinstance(command, str) else shlex.join(str(part) for part in command)

    def argv(self, context: dict[str, Any]) -> list[str]:
        if isinstance(self.command, str):
            return ["sh", "-c", Template(self.command).safe_substitute(context)]
        return [Template(str(part)).safe_substitute(context) for part in self.command]

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        context = self.secret_resolver.resolve({**host.variables, **self.variables})
        result = executor.run(self.argv(context), check=False, env=self.env, cwd=self.cwd, timeout=self.timeout)
        if result.returncode not in self.returns:
            # Rendered argv may hold secrets; log the template only.
            logger.debug("exec failed name=%s rc=%s", self.name, result.returncode)
        return command_result(host, "exec", result, allowed_returns=self.returns, resource=self.name)
