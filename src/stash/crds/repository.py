# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Subset of the Stash Repository CRD model.

Reference: https://stash.run/docs/v0.9.0/concepts/crds/repository/
"""

from typing import Any, ClassVar, Dict, Optional

from pydantic import Field

from constants import REPOSITORY_PLURAL, REPOSITORY_VERSION, STASH_GROUP

from .restore_session import CRDModel, ObjectMetaModel


class BackendModel(CRDModel):
    """Repository backend model.

    Every storage section (``s3``, ``azure``, ``local``, ...) is kept as an extra field
    and parsed by the matching repository backend.
    """

    storageSecretName: Optional[str] = None

    def sections(self) -> Dict[str, Any]:
        """Return the storage sections present in the backend."""
        return dict(self.model_extra or {})


class RepositorySpecModel(CRDModel):
    """Repository specification model."""

    backend: BackendModel = Field(default_factory=BackendModel)
    wipeOut: Optional[bool] = None


class Repository(CRDModel):
    """Repository model representing the Stash Repository CRD."""

    group: ClassVar[str] = STASH_GROUP
    version: ClassVar[str] = REPOSITORY_VERSION
    plural: ClassVar[str] = REPOSITORY_PLURAL

    apiVersion: Optional[str] = None
    kind: Optional[str] = None
    metadata: ObjectMetaModel
    spec: RepositorySpecModel
