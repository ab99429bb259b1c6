"""Secret references inside request and task variables.

A value written as a one-key table is looked up instead of used literally::

    github_token = { env = "GITHUB_TOKEN" }
    github_token = { file = "~/.config/compilemaster/token" }
    github_token = { aws_secret = "ci/github", key = "token" }

Anything else passes through untouched; tables and lists are walked.
"""

from __future__ import annotations

import base64
import json
import os
from pathlib import Path
from typing import Any, Optional

try:  # pragma: no cover
    import boto3  # type: ignore
except Exception:  # pragma: no cover
    boto3 = None


class SecretResolver:
    def __init__(self):
        self._aws_cache: dict[tuple[str, Optional[str]], Any] = {}

    def resolve(self, values: dict[str, Any]) -> dict[str, Any]:
        return {name: self.resolve_value(value) for name, value in values.items()}

    def resolve_value(self, value: Any) -> Any:
        if isinstance(value, list):
            return [self.resolve_value(item) for item in value]
        if not isinstance(value, dict):
            return value
        if "aws_secret" in value:
            key = value.get("key")
            return self._aws_secret(str(value["aws_secret"]), None if key is None else str(key))
        if set(value) == {"env"}:
            name = str(value["env"])
            if name not in os.environ:
                raise RuntimeError(f"Environment variable {name} is not set")
            return os.environ[name]
        if set(value) == {"file"}:
            return Path(str(value["file"])).expanduser().read_text().strip()
        return {name: self.resolve_value(item) for name, item in value.items()}

    def _aws_secret(self, secret_id: str, key: Optional[str]) -> Any:
        cached = self._aws_cache.get((secret_id, key))
        if cached is not None:
            return cached
        if boto3 is None:
            raise RuntimeError("boto3 is required to resolve aws_secret references")

        response = boto3.client("secretsmanager").get_secret_value(SecretId=secret_id)
        text = response.get("SecretString")
        if text is None:
            if response.get("SecretBinary") is None:
                raise RuntimeError(f"Secret {secret_id} has no SecretString or SecretBinary")
            text = base64.b64decode(response["SecretBinary"]).decode()

        value = json.loads(text)[key] if key is not None else text
        self._aws_cache[(secret_id, key)] = value
        return value
