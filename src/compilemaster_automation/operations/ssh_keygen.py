from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any

from .base import Operation, command_result
from ..executors import Executor
from ..types import ActionResult, HostConfig

KEY_TYPES = {"rsa", "ed25519", "ecdsa"}


class SshKeygenOperation(Operation):
    """Generate a passphrase-less SSH key pair at ``path`` (public half at ``path.pub``).

    Any pair already at that path is replaced.
    """

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_path = spec.get("path")
        if not raw_path:
            raise ValueError("ssh_keygen operation requires a path")
        self.path = PurePosixPath(str(raw_path))
        self.key_type = str(spec.get("type", "rsa")).lower()
        if self.key_type not in KEY_TYPES:
            raise ValueError(f"ssh_keygen type must be one of {', '.join(sorted(KEY_TYPES))}")
        self.bits = int(spec.get("bits", 4096))
        self.comment = str(spec.get("comment") or "")

    @property
    def public_path(self) -> str:
        return f"{self.path}.pub"

    def command(self) -> list[str]:
        cmd = ["ssh-keygen", "-q", "-t", self.key_type, "-N", "", "-f", str(self.path)]
        if self.key_type != "ed25519":
            cmd[4:4] = ["-b", str(self.bits)]
        if self.comment:
            cmd.extend(["-C", self.comment])
        return cmd

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        executor.ensure_directory(self.path.parent, mode=None)
        replaced = executor.remove_path(self.path)
        executor.remove_path(self.public_path)
        result = executor.run(self.command(), check=False)
        action = command_result(host, "ssh_keygen", result, resource=str(self.path))
        if not action.failed:
            action.details = f"{'regenerated' if replaced else 'generated'} {self.key_type} key"
        return action
