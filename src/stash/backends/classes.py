# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Restic repository backend class definitions."""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from constants import RESTIC_PASSWORD_KEY

from ..errors import RestoreConfigError

logger = logging.getLogger(__name__)


class BackendError(RestoreConfigError):
    """Base class for repository backend exceptions."""


class BackendConfig(BaseModel):
    """Base Pydantic model for a backend section of the Repository."""

    model_config = ConfigDict(validate_by_name=True, validate_by_alias=True)

    @classmethod
    def verror_to_str(cls, ve: ValidationError) -> str:
        """Convert a Pydantic ValidationError to a string."""
        error_messages = []
        for error in ve.errors():
            field = ".".join(map(str, error["loc"]))
            message = error["msg"].replace("Field ", "")
            error_messages.append(f"'{field}' {message}")
        return f"{cls.__name__} errors: " + "; ".join(error_messages)


class RepositoryBackend(ABC):
    """Base class for restic repository backends."""

    def __init__(self, data: Dict[str, Any], config_cls: Type[BackendConfig]) -> None:
        try:
            self._config = config_cls(**data)
        except ValidationError as ve:
            raise BackendError(config_cls.verror_to_str(ve)) from ve

    @property
    @abstractmethod
    def provider(self) -> str:  # pragma: no cover
        """Return the backend provider name."""
        ...

    @property
    @abstractmethod
    def repository_url(self) -> str:  # pragma: no cover
        """Return the restic repository URL."""
        ...

    @property
    @abstractmethod
    def credential_keys(self) -> List[str]:  # pragma: no cover
        """Return the storage secret keys exported to restic as environment variables."""
        ...

    @property
    def extra_env(self) -> Dict[str, str]:
        """Return the environment variables derived from the backend config."""
        return {}

    def restic_env(self, secret_dir: str) -> Dict[str, str]:
        """Return the environment restic needs to open the repository.

        Args:
            secret_dir (str): The directory where the storage secret is mounted.

        Raises:
            BackendError: If the repository password is missing from the secret.
        """
        password = self._read_secret(secret_dir, RESTIC_PASSWORD_KEY)
        if password is None:
            raise BackendError(
                f"Storage secret has no '{RESTIC_PASSWORD_KEY}' key in '{secret_dir}'"
            )

        env = {"RESTIC_REPOSITORY": self.repository_url, RESTIC_PASSWORD_KEY: password}
        for key in self.credential_keys:
            value = self._read_secret(secret_dir, key)
            if value is None:
                logger.warning("Storage secret has no '%s' key, skipping", key)
                continue
            env[key] = value
        env.update(self.extra_env)
        return env

    @staticmethod
    def _read_secret(secret_dir: str, key: str) -> str | None:
        """Read a key of the mounted storage secret."""
        try:
            with open(os.path.join(secret_dir, key), encoding="utf-8") as f:
                return f.read().strip()
        except FileNotFoundError:
            return None
