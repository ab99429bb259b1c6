from __future__ import annotations

import json
import logging
from typing import Any

from .runner import RemoteExecutor
from .types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


class HostFactsWriter:
    """Writes external fact documents (JSON) onto a host.

    The parent directory is created when missing; whatever was at ``path``
    before is replaced.
    """

    def __init__(self, remote: RemoteExecutor, *, mode: int = 0o644):
        self.remote = remote
        self.mode = mode

    @staticmethod
    def render(document: dict[str, Any]) -> str:
        return json.dumps(document, indent=2, sort_keys=True) + "\n"

    def write_fact(self, target: HostConfig, path: str, document: dict[str, Any]) -> list[ActionResult]:
        logger.debug("facts host=%s path=%s keys=%s", target.name, path, sorted(document))
        return self.remote.run_task(
            "file",
            target,
            {"path": path, "state": "present", "content": self.render(document), "mode": self.mode},
        )
