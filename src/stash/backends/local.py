# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Restic local repository backend class definitions."""

import posixpath
from typing import Any, Dict, List, Optional

from pydantic import Field

from .classes import BackendConfig, RepositoryBackend


class LocalBackendConfig(BackendConfig):
    """Pydantic model for the local backend section.

    The volume source of the section is mounted by the workload and is not used here.
    """

    mount_path: str = Field(alias="mountPath")
    sub_path: Optional[str] = Field(None, alias="subPath")


class LocalBackend(RepositoryBackend):
    """Repository stored on a volume mounted in the restore container."""

    def __init__(self, data: Dict[str, Any]) -> None:
        self._config: LocalBackendConfig
        super().__init__(data, LocalBackendConfig)

    @property
    def provider(self) -> str:
        """Return the backend provider name."""
        return "local"

    @property
    def repository_url(self) -> str:
        """Return the path of the repository inside the container."""
        if self._config.sub_path:
            return posixpath.join(self._config.mount_path, self._config.sub_path)
        return self._config.mount_path

    @property
    def credential_keys(self) -> List[str]:
        """Local repositories only need the restic password."""
        return []
