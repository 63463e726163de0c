# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Subset of the Stash RestoreSession CRD model.

Reference: https://stash.run/docs/v0.9.0/concepts/crds/restoresession/
"""

from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from constants import RESTORE_SESSION_PLURAL, RESTORE_SESSION_VERSION, STASH_GROUP


class RestoreSessionPhase(str, Enum):
    """Overall phase of a RestoreSession."""

    Pending = "Pending"
    Running = "Running"
    Succeeded = "Succeeded"
    Failed = "Failed"
    Unknown = "Unknown"


class HostRestorePhase(str, Enum):
    """Restore phase of a single host."""

    Succeeded = "Succeeded"
    Failed = "Failed"
    Unknown = "Unknown"


TERMINAL_PHASES = (RestoreSessionPhase.Succeeded, RestoreSessionPhase.Failed)


class CRDModel(BaseModel):
    """Base model keeping the fields that are not modelled here."""

    model_config = ConfigDict(extra="allow")


class ObjectMetaModel(CRDModel):
    """Object metadata model."""

    name: str
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resourceVersion: Optional[str] = None


class TargetRefModel(CRDModel):
    """Reference to the workload being restored."""

    apiVersion: Optional[str] = None
    kind: str
    name: str


class RestoreTargetModel(CRDModel):
    """Restore target model."""

    ref: TargetRefModel
    replicas: Optional[int] = None


class RepositoryRefModel(CRDModel):
    """Reference to the Repository holding the backed up data."""

    name: str


class RuleModel(CRDModel):
    """Restore rule model."""

    targetHosts: List[str] = Field(default_factory=list)
    sourceHost: Optional[str] = None
    paths: List[str] = Field(default_factory=list)
    snapshots: List[str] = Field(default_factory=list)


class HostRestoreStatsModel(CRDModel):
    """Restore statistics of a single host."""

    hostname: str
    phase: HostRestorePhase
    duration: Optional[str] = None
    filesRestored: Optional[int] = None
    bytesRestored: Optional[int] = None
    error: Optional[str] = None


class RestoreSessionSpecModel(CRDModel):
    """RestoreSession specification model."""

    repository: RepositoryRefModel
    target: Optional[RestoreTargetModel] = None
    rules: List[RuleModel] = Field(default_factory=list)


class RestoreSessionStatusModel(CRDModel):
    """RestoreSession status model."""

    phase: Optional[RestoreSessionPhase] = None
    totalHosts: Optional[int] = None
    stats: List[HostRestoreStatsModel] = Field(default_factory=list)

    def host_stats(self, hostname: str) -> Optional[HostRestoreStatsModel]:
        """Return the statistics recorded for a host, if any."""
        return next((s for s in self.stats if s.hostname == hostname), None)


class RestoreSession(CRDModel):
    """RestoreSession model representing the Stash RestoreSession CRD."""

    group: ClassVar[str] = STASH_GROUP
    version: ClassVar[str] = RESTORE_SESSION_VERSION
    plural: ClassVar[str] = RESTORE_SESSION_PLURAL

    apiVersion: Optional[str] = None
    kind: Optional[str] = None
    metadata: ObjectMetaModel
    spec: RestoreSessionSpecModel
    status: RestoreSessionStatusModel = Field(default_factory=RestoreSessionStatusModel)

    @property
    def name(self) -> str:
        """Return the RestoreSession name."""
        return self.metadata.name

    @property
    def namespace(self) -> Optional[str]:
        """Return the RestoreSession namespace."""
        return self.metadata.namespace

    @property
    def phase(self) -> Optional[RestoreSessionPhase]:
        """Return the overall RestoreSession phase."""
        return self.status.phase

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "RestoreSession":
        """Build the model from the object returned by the API server."""
        return cls.model_validate({**obj, "status": obj.get("status") or {}})

    def status_dict(self) -> Dict[str, Any]:
        """Return the status as it should be written back to the API server."""
        return self.status.model_dump(mode="json", exclude_none=True)
