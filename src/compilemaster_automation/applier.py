from __future__ import annotations

import logging
from typing import Optional

from .runner import RemoteExecutor, all_succeeded
from .types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


class ConfigApplier:
    """Applies a manifest bundle to a host through ``puppet apply``.

    ``prepare`` has to succeed once per host before the first ``apply`` in a
    session; calling ``apply`` on an unprepared host prepares it first.
    """

    def __init__(self, remote: RemoteExecutor, *, puppet_bin: Optional[str] = None, timeout: Optional[float] = None):
        self.remote = remote
        self.puppet_bin = puppet_bin
        self.timeout = timeout
        self._prepared: set[str] = set()

    def is_prepared(self, target: HostConfig) -> bool:
        return target.name in self._prepared

    def prepare(self, target: HostConfig) -> list[ActionResult]:
        results = self.remote.run_task("apply_prep", target, self._arguments())
        if all_succeeded(results):
            self._prepared.add(target.name)
        return results

    def apply(self, target: HostConfig, bundle: str) -> list[ActionResult]:
        if not self.is_prepared(target):
            logger.info("Preparing %s before applying configuration", target.name)
            results = self.prepare(target)
            if not all_succeeded(results):
                return results
        arguments = self._arguments()
        if bundle.rstrip().endswith(".pp") and "\n" not in bundle.strip():
            arguments["manifest_path"] = bundle.strip()
        else:
            arguments["manifest"] = bundle
        if self.timeout is not None:
            arguments["timeout"] = self.timeout
        return self.remote.run_task("puppet_apply", target, arguments)

    def _arguments(self) -> dict[str, object]:
        return {"puppet_bin": self.puppet_bin} if self.puppet_bin else {}
