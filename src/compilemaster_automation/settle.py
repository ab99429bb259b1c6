"""Waiting for a freshly started agent to submit its certificate request."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from .config import CompileMasterConfig
from .runner import RemoteExecutor, all_succeeded
from .types import HostConfig

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], None]


class Settle(Protocol):
    def wait(self, certname: str, ca: HostConfig) -> bool:
        """Return True once the CA holds a request for ``certname``."""


class FixedSettle:
    """Sleep a fixed interval and assume the request has arrived."""

    def __init__(self, seconds: float = 10.0, *, sleep: Sleeper = time.sleep):
        self.seconds = seconds
        self.sleep = sleep

    def wait(self, certname: str, ca: HostConfig) -> bool:  # noqa: ARG002
        logger.info("Waiting %.0fs for %s to submit its certificate request", self.seconds, certname)
        self.sleep(self.seconds)
        return True


class PollSettle:
    """Ask the CA whether the request is pending, backing off between misses."""

    def __init__(
        self,
        remote: RemoteExecutor,
        *,
        attempts: int = 6,
        interval: float = 5.0,
        backoff: float = 2.0,
        max_interval: float = 30.0,
        puppetserver_bin: Optional[str] = None,
        sleep: Sleeper = time.sleep,
    ):
        if attempts < 1:
            raise ValueError("poll attempts must be at least 1")
        self.remote = remote
        self.attempts = attempts
        self.interval = interval
        self.backoff = backoff
        self.max_interval = max_interval
        self.puppetserver_bin = puppetserver_bin
        self.sleep = sleep

    def wait(self, certname: str, ca: HostConfig) -> bool:
        arguments: dict[str, object] = {"action": "pending", "certname": certname}
        if self.puppetserver_bin:
            arguments["puppetserver_bin"] = self.puppetserver_bin
        delay = self.interval
        for attempt in range(1, self.attempts + 1):
            results = self.remote.run_task("puppet_cert", ca, arguments)
            if all_succeeded(results):
                logger.debug("csr certname=%s pending after attempt=%s", certname, attempt)
                return True
            if attempt < self.attempts:
                logger.debug("csr certname=%s not pending, retry in %.1fs", certname, delay)
                self.sleep(delay)
                delay = min(delay * self.backoff, self.max_interval)
        logger.warning("No certificate request from %s after %s checks", certname, self.attempts)
        return False


def build_settle(
    config: CompileMasterConfig, remote: RemoteExecutor, *, sleep: Sleeper = time.sleep
) -> Settle:
    if config.settle_mode == "fixed":
        return FixedSettle(config.settle_seconds, sleep=sleep)
    return PollSettle(
        remote,
        attempts=config.poll_attempts,
        interval=config.poll_interval,
        backoff=config.poll_backoff,
        max_interval=config.poll_max_interval,
        puppetserver_bin=config.puppetserver_bin,
        sleep=sleep,
    )
