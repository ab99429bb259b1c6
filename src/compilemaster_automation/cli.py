from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from .config import DEFAULT_CONFIG, SETTLE_MODES, load_config
from .inventory import RequestLoader
from .runner import RemoteExecutor
from .sequence import ProvisioningSequence
from .types import HostConfig, RunOutcome, StepRecord


class Ansi:
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"


def colorize(text: str, color: Optional[str]) -> str:
    if not color:
        return text
    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        return text
    return f"{color}{text}{Ansi.RESET}"

_last_progress_len = 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision a Puppet compile master under a master-of-masters")
    parser.add_argument(
        "request",
        nargs="?",
        default=None,
        type=Path,
        help="Path to a request file (default from config or /etc/compilemaster/request.toml)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Path to compilemaster config file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument("--target", help="Certificate name of the host to provision")
    parser.add_argument("--target-address", help="Address used to reach the target (default: its name)")
    parser.add_argument("--target-user", help="SSH user for the target")
    parser.add_argument("--mom", help="Certificate name of the master-of-masters")
    parser.add_argument("--mom-address", help="Address used to reach the MoM (default: its name)")
    parser.add_argument("--mom-user", help="SSH user for the MoM")
    parser.add_argument(
        "--dns-alt-name",
        dest="dns_alt_names",
        action="append",
        default=[],
        help="DNS alternative name for the compile master certificate (repeatable)",
    )
    parser.add_argument("--manage-pos-release", action="store_const", const=True, default=None)
    parser.add_argument("--pos-release-package", help="URL or path of the Puppet release package")
    parser.add_argument("--manage-mom-hosts", action="store_const", const=True, default=None)
    parser.add_argument("--mom-ip", dest="mom_ipaddress", help="MoM IP address for the hosts file entry")
    parser.add_argument("--manage-github-deploy-key", action="store_const", const=True, default=None)
    parser.add_argument("--github-deploy-key-name")
    parser.add_argument("--github-token", help="API token (prefer github_token = { env = ... } in the request file)")
    parser.add_argument("--github-user")
    parser.add_argument("--github-project")
    parser.add_argument("--github-server", help="API host (default: api.github.com)")
    parser.add_argument("--ssh-key-path", help="Private key path on the target (public half gets .pub)")
    parser.add_argument("--settle-mode", choices=sorted(SETTLE_MODES), help="How to wait for the CSR")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(name)s - %(message)s",
    )


def request_overrides(args: argparse.Namespace) -> dict[str, Any]:
    def host(name, address, user) -> Optional[dict[str, Any]]:
        values = {"name": name, "address": address, "user": user}
        values = {k: v for k, v in values.items() if v is not None}
        return values or None

    return {
        "target": host(args.target, args.target_address, args.target_user),
        "mom": host(args.mom, args.mom_address, args.mom_user),
        "dns_alt_names": args.dns_alt_names,
        "manage_pos_release": args.manage_pos_release,
        "pos_release_package": args.pos_release_package,
        "manage_mom_hosts": args.manage_mom_hosts,
        "mom_ipaddress": args.mom_ipaddress,
        "manage_github_deploy_key": args.manage_github_deploy_key,
        "github_deploy_key_name": args.github_deploy_key_name,
        "github_token": args.github_token,
        "github_user": args.github_user,
        "github_project": args.github_project,
        "github_server": args.github_server,
        "ssh_key_path": args.ssh_key_path,
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        cfg = load_config(args.config)
    except ValueError as exc:
        print(colorize(f"Config invalid: {exc}", Ansi.RED), file=sys.stderr)
        return 1
    if args.settle_mode:
        cfg.settle_mode = args.settle_mode

    request_path = args.request
    if request_path is None and cfg.request.exists():
        request_path = cfg.request
    try:
        request = RequestLoader().load(request_path, request_overrides(args))
    except (OSError, ValueError) as exc:
        print(colorize(f"Request invalid: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    remote = RemoteExecutor(ssh_options=cfg.ssh_options, sudo=cfg.sudo)
    sequence = ProvisioningSequence(remote, config=cfg, progress_callback=print_progress)
    try:
        outcome = sequence.execute(request)
    except Exception as exc:  # noqa: BLE001
        _clear_progress()
        if logging.getLogger().isEnabledFor(logging.DEBUG):
            raise
        print(colorize(f"Execution failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    _clear_progress()
    for record in outcome.steps:
        print(format_step(record))
    print(render_summary(outcome))
    if not outcome.completed and outcome.output:
        print(outcome.output, file=sys.stderr)
    return 0 if outcome.completed else 1


def format_step(record: StepRecord) -> str:
    changed = any(result.changed for result in record.results)
    if record.failed:
        status, color = "failed", Ansi.RED
    elif changed:
        status, color = "changed", Ansi.GREEN
    else:
        status, color = "ok", Ansi.BLUE
    line = f"{record.host}::{record.name} {status} - {record.details or 'noop'}"
    return colorize(line, color)


def render_summary(outcome: RunOutcome) -> str:
    changes = sum(1 for step in outcome.steps if any(r.changed for r in step.results))
    if outcome.completed:
        text = f"Completed | Steps: {len(outcome.steps)} | Changes: {changes}"
        return colorize(text, Ansi.GREEN)
    text = (
        f"Failed at step {outcome.failed_index} ({outcome.failed_step}) on "
        f"{outcome.failed_host}: {outcome.cause}"
    )
    return colorize(text, Ansi.RED)


def print_progress(host: HostConfig, step: str) -> None:
    global _last_progress_len
    _clear_progress()
    line = f"{host.name}::{step} pending..."
    _last_progress_len = len(line)
    print(colorize(line, Ansi.YELLOW), end="\r", flush=True)


def _clear_progress() -> None:
    global _last_progress_len
    if _last_progress_len:
        print(" " * _last_progress_len, end="\r", flush=True)
        _last_progress_len = 0


if __name__ == "__main__":
    raise SystemExit(main())
