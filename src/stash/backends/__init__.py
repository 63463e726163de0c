# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Restic repository backends module."""

from typing import Dict, Type

from ..crds import BackendModel
from .azure import AzureBackend, AzureBackendConfig
from .classes import BackendError, RepositoryBackend
from .local import LocalBackend, LocalBackendConfig
from .s3 import S3Backend, S3BackendConfig

BACKENDS: Dict[str, Type[RepositoryBackend]] = {
    "s3": S3Backend,
    "azure": AzureBackend,
    "local": LocalBackend,
}


def get_backend(backend: BackendModel) -> RepositoryBackend:
    """Return the repository backend configured in a Repository.

    Raises:
        BackendError: If no supported backend, or more than one, is configured.
    """
    sections = {k: v for k, v in backend.sections().items() if k in BACKENDS and v}
    if len(sections) != 1:
        supported = "|".join(BACKENDS)
        raise BackendError(f"Repository must configure exactly one backend: [{supported}]")
    ((provider, data),) = sections.items()
    return BACKENDS[provider](data)


__all__ = [
    "get_backend",
    "BACKENDS",
    "BackendError",
    "RepositoryBackend",
    "S3Backend",
    "S3BackendConfig",
    "AzureBackend",
    "AzureBackendConfig",
    "LocalBackend",
    "LocalBackendConfig",
]
