# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Restic S3 repository backend class definitions."""

from typing import Any, Dict, List, Optional

from pydantic import Field

from .classes import BackendConfig, RepositoryBackend

DEFAULT_S3_ENDPOINT = "s3.amazonaws.com"


class S3BackendConfig(BackendConfig):
    """Pydantic model for the S3 backend section."""

    bucket: str
    endpoint: Optional[str] = Field(None, alias="endpoint")
    prefix: Optional[str] = Field(None, alias="prefix")
    region: Optional[str] = Field(None, alias="region")


class S3Backend(RepositoryBackend):
    """S3 repository backend."""

    def __init__(self, data: Dict[str, Any]) -> None:
        self._config: S3BackendConfig
        super().__init__(data, S3BackendConfig)

    @property
    def provider(self) -> str:
        """Return the backend provider name."""
        return "s3"

    @property
    def repository_url(self) -> str:
        """Return the restic repository URL for the S3 bucket."""
        endpoint = (self._config.endpoint or DEFAULT_S3_ENDPOINT).rstrip("/")
        url = f"s3:{endpoint}/{self._config.bucket}"
        if self._config.prefix:
            url += "/" + self._config.prefix.strip("/")
        return url

    @property
    def credential_keys(self) -> List[str]:
        """Return the S3 credential keys."""
        return ["AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"]

    @property
    def extra_env(self) -> Dict[str, str]:
        """Return the S3 region, when configured."""
        if self._config.region is not None:
            return {"AWS_DEFAULT_REGION": self._config.region}
        return {}
