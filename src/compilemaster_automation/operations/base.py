from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..executors import CommandResult, Executor
from ..types import ActionResult, HostConfig


class Operation(ABC):
    """Shared surface for runnable automation actions."""

    def __init__(self, spec: dict[str, Any]):
        self.spec = spec

    @abstractmethod
    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        """Perform the operation against ``host`` using ``executor``."""


def summarize_output(result: CommandResult) -> Optional[str]:
    for text in (result.stderr, result.stdout):
        if not text:
            continue
        stripped = text.strip()
        if not stripped:
            continue
        line = stripped.splitlines()[0]
        return (line[:157] + "...") if len(line) > 160 else line
    return None


def error_detail(result: CommandResult) -> str:
    message = summarize_output(result)
    prefix = f"rc={result.returncode}"
    if message:
        return f"{prefix}: {message}"
    return prefix


def command_result(
    host: HostConfig,
    action: str,
    result: CommandResult,
    *,
    allowed_returns: tuple[int, ...] = (0,),
    changed_returns: Optional[tuple[int, ...]] = None,
    resource: Optional[str] = None,
) -> ActionResult:
    """Translate a finished command into an ``ActionResult``."""

    if result.returncode not in allowed_returns:
        return ActionResult(
            host=host.name,
            action=action,
            changed=False,
            details=error_detail(result),
            failed=True,
            resource=resource,
            output=result.output,
        )
    changed = True if changed_returns is None else result.returncode in changed_returns
    return ActionResult(
        host=host.name,
        action=action,
        changed=changed,
        details=f"ran (rc={result.returncode})",
        resource=resource,
        output=result.output,
    )
