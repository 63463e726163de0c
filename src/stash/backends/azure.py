# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Restic Azure repository backend class definitions."""

from typing import Any, Dict, List, Optional

from pydantic import Field

from .classes import BackendConfig, RepositoryBackend


class AzureBackendConfig(BackendConfig):
    """Pydantic model for the Azure backend section."""

    container: str
    prefix: Optional[str] = Field(None, alias="prefix")


class AzureBackend(RepositoryBackend):
    """Azure Blob Storage repository backend."""

    def __init__(self, data: Dict[str, Any]) -> None:
        self._config: AzureBackendConfig
        super().__init__(data, AzureBackendConfig)

    @property
    def provider(self) -> str:
        """Return the backend provider name."""
        return "azure"

    @property
    def repository_url(self) -> str:
        """Return the restic repository URL for the Azure container."""
        return f"azure:{self._config.container}:/{(self._config.prefix or '').strip('/')}"

    @property
    def credential_keys(self) -> List[str]:
        """Return the Azure credential keys."""
        return ["AZURE_ACCOUNT_NAME", "AZURE_ACCOUNT_KEY"]
