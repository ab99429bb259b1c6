from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .runner import RemoteExecutor
from .secrets import SecretResolver
from .types import DEFAULT_GITHUB_SERVER, ActionResult, HostConfig

logger = logging.getLogger(__name__)


class RegistrarError(RuntimeError):
    """The source-control API refused or never answered a deploy key request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def api_base(server: Optional[str]) -> str:
    server = (server or DEFAULT_GITHUB_SERVER).strip().rstrip("/")
    if not server.startswith(("http://", "https://")):
        server = f"https://{server}"
    return server


class DeployKeyRegistrar:
    """Registers an SSH public key as a read-only deploy key on a GitHub-style API.

    The public key lives on the provisioned host, so it is read there through
    the remote executor before the API call is made from this machine.
    Duplicate names and keys are left for the API to reject.
    """

    def __init__(
        self,
        remote: RemoteExecutor,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        read_only: bool = True,
        secret_resolver: Optional[SecretResolver] = None,
    ):
        self.remote = remote
        self._client = client
        self.timeout = timeout
        self.read_only = read_only
        self.secret_resolver = secret_resolver or SecretResolver()

    def register_deploy_key(
        self,
        name: str,
        public_key_path: str,
        token: Any,
        project: str,
        server_url: Optional[str] = None,
        *,
        source: HostConfig,
    ) -> ActionResult:
        """Create deploy key ``name`` on repository ``project`` (``owner/repo``).

        Raises:
            RegistrarError: the key or token could not be read, or the API did not return 201.
        """
        public_key = self._read_public_key(source, public_key_path)
        try:
            resolved_token = self.secret_resolver.resolve_value(token)
        except Exception as exc:  # noqa: BLE001
            raise RegistrarError(f"unable to resolve token for deploy key '{name}': {exc}") from exc
        url = f"{api_base(server_url)}/repos/{project}/keys"
        headers = {
            "Authorization": f"Bearer {resolved_token}",
            "Accept": "application/vnd.github+json",
        }
        payload = {"title": name, "key": public_key, "read_only": self.read_only}
        logger.info("Registering deploy key %s on %s", name, project)

        try:
            resp = self._post(url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise RegistrarError(f"deploy key request to {url} failed: {exc}") from exc

        if resp.status_code != httpx.codes.CREATED:
            raise RegistrarError(
                f"deploy key '{name}' rejected for {project}: {resp.status_code} {self._api_message(resp)}",
                status_code=resp.status_code,
            )
        key_id = self._json(resp).get("id")
        return ActionResult(
            host=source.name,
            action="deploy_key",
            changed=True,
            details=f"registered '{name}' on {project}" + (f" (id={key_id})" if key_id else ""),
            resource=project,
        )

    def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, **kwargs)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(url, **kwargs)

    def _read_public_key(self, source: HostConfig, path: str) -> str:
        try:
            text = self.remote.read_file(source, path)
        except Exception as exc:  # noqa: BLE001
            raise RegistrarError(f"unable to read {path} on {source.name}: {exc}") from exc
        if not text or not text.strip():
            raise RegistrarError(f"public key {path} is missing or empty on {source.name}")
        return text.strip()

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @classmethod
    def _api_message(cls, resp: httpx.Response) -> str:
        data = cls._json(resp)
        message = str(data.get("message") or resp.reason_phrase or "")
        errors = data.get("errors") or []
        details = [str(err.get("message")) for err in errors if isinstance(err, dict) and err.get("message")]
        if details:
            message = f"{message} ({'; '.join(details)})"
        return message
