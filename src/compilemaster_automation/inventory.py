from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .types import DEFAULT_GITHUB_SERVER, DEFAULT_SSH_KEY_PATH, HostConfig, ProvisioningRequest

TOGGLES = ("manage_pos_release", "manage_mom_hosts", "manage_github_deploy_key")
OPTIONAL_VALUES = (
    "pos_release_package",
    "mom_ipaddress",
    "github_deploy_key_name",
    "github_user",
    "github_project",
    "github_server",
    "ssh_key_path",
)
KNOWN_KEYS = {"target", "mom", "dns_alt_names", "github_token", *TOGGLES, *OPTIONAL_VALUES}


class RequestLoader:
    """Builds a ``ProvisioningRequest`` from a TOML request file and overrides.

    ``target`` and ``mom`` are either a plain host name or a table with
    ``name``, ``address``, ``user``, ``connection`` and ``variables``.
    Overrides (usually from the command line) win over the file; ``None``
    overrides are ignored.
    """

    def load(self, path: Optional[Path], overrides: Optional[dict[str, Any]] = None) -> ProvisioningRequest:
        data: dict[str, Any] = {}
        if path is not None:
            path = Path(path)
            try:
                data = tomllib.loads(path.read_text())
            except tomllib.TOMLDecodeError as exc:
                raise ValueError(f"{path}: {exc}") from None
        return self.build(data, overrides)

    def build(self, data: dict[str, Any], overrides: Optional[dict[str, Any]] = None) -> ProvisioningRequest:
        merged = dict(data)
        for key, value in (overrides or {}).items():
            if value is None or value == [] or value == ():
                continue
            current = merged.get(key)
            if isinstance(value, dict) and isinstance(current, str):
                current = {"name": current}
            if isinstance(value, dict) and isinstance(current, dict):
                merged[key] = {**current, **value}
            else:
                merged[key] = value

        unknown = sorted(set(merged) - KNOWN_KEYS)
        if unknown:
            raise ValueError(f"unknown request keys: {', '.join(unknown)}")

        target = self._parse_host(merged.get("target"), "target")
        mom = self._parse_host(merged.get("mom"), "mom")

        alt_names = merged.get("dns_alt_names") or []
        if isinstance(alt_names, str):
            alt_names = [name.strip() for name in alt_names.split(",")]
        toggles = {name: self._coerce_bool(merged.get(name, False), name) for name in TOGGLES}

        return ProvisioningRequest(
            target=target,
            mom=mom,
            dns_alt_names=tuple(str(name) for name in alt_names if name),
            pos_release_package=self._optional_str(merged.get("pos_release_package")),
            mom_ipaddress=self._optional_str(merged.get("mom_ipaddress")),
            github_deploy_key_name=self._optional_str(merged.get("github_deploy_key_name")),
            github_token=merged.get("github_token"),
            github_user=self._optional_str(merged.get("github_user")),
            github_project=self._optional_str(merged.get("github_project")),
            github_server=self._optional_str(merged.get("github_server")) or DEFAULT_GITHUB_SERVER,
            ssh_key_path=self._optional_str(merged.get("ssh_key_path")) or DEFAULT_SSH_KEY_PATH,
            **toggles,
        )

    @staticmethod
    def _parse_host(value: Any, role: str) -> HostConfig:
        if value is None or value == "":
            raise ValueError(f"request is missing the {role} host")
        if isinstance(value, str):
            return HostConfig(name=value)
        if not isinstance(value, dict):
            raise ValueError(f"{role} must be a host name or a table")
        name = value.get("name")
        if not name:
            raise ValueError(f"{role} table requires a name")
        variables = value.get("variables", {})
        if not isinstance(variables, dict):
            raise ValueError(f"{role} variables must be a mapping")
        return HostConfig(
            name=str(name),
            connection=str(value.get("connection", "ssh")),
            address=RequestLoader._optional_str(value.get("address")),
            user=RequestLoader._optional_str(value.get("user")),
            variables=dict(variables),
        )

    @staticmethod
    def _optional_str(value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @staticmethod
    def _coerce_bool(value: Any, name: str) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "yes", "on", "1"}:
                return True
            if lowered in {"false", "no", "off", "0", ""}:
                return False
        raise ValueError(f"{name} must be true or false, got {value!r}")
