from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any, Optional

from .base import Operation
from ..executors import Executor
from ..types import ActionResult, HostConfig

STATES = ("present", "directory")


def parse_mode(value: Any) -> Optional[int]:
    """Accept ``0o600``, ``"0600"`` or ``"600"``; strings are always octal."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    return int(str(value).strip(), 8)


class FileOperation(Operation):
    """Manage a path on the host: a directory, a file with content, or a copy
    of another host path.

    Owner and group are applied after the path itself is in place.
    """

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        if not spec.get("path"):
            raise ValueError("file operation requires a path")
        self.path = PurePosixPath(str(spec["path"]))
        self.state = str(spec.get("state", "present"))
        if self.state not in STATES:
            raise ValueError(f"file operation state must be one of {', '.join(STATES)}")
        self.content = None if spec.get("content") is None else str(spec["content"])
        self.source = str(spec["source"]) if spec.get("source") else None
        if self.content is not None and self.source:
            raise ValueError("file operation accepts either content or source, not both")
        self.mode = parse_mode(spec.get("mode"))
        self.owner = str(spec["owner"]) if spec.get("owner") else None
        self.group = str(spec["group"]) if spec.get("group") else None

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        if self.state == "directory":
            changed, detail = executor.ensure_directory(self.path, mode=self.mode)
        elif self.source:
            changed, detail = executor.copy_file(self.source, self.path, mode=self.mode)
        else:
            changed, detail = executor.write_file(self.path, content=self.content or "", mode=self.mode)

        if self.owner or self.group:
            owned, owner_detail = executor.set_ownership(self.path, owner=self.owner, group=self.group)
            if owned:
                detail = owner_detail if detail == "noop" else f"{detail}, {owner_detail}"
                changed = True
        return self._result(host, changed, detail)

    def _result(self, host: HostConfig, changed: bool, detail: str) -> ActionResult:
        return ActionResult(host=host.name, action="file", changed=changed, details=detail, resource=str(self.path))
