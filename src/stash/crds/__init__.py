# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Stash CRDs module."""

from .repository import BackendModel, Repository, RepositorySpecModel
from .restore_session import (
    TERMINAL_PHASES,
    HostRestorePhase,
    HostRestoreStatsModel,
    RestoreSession,
    RestoreSessionPhase,
    RestoreSessionSpecModel,
    RestoreSessionStatusModel,
    RestoreTargetModel,
    RuleModel,
    TargetRefModel,
)

__all__ = [
    "Repository",
    "RepositorySpecModel",
    "BackendModel",
    "RestoreSession",
    "RestoreSessionSpecModel",
    "RestoreSessionStatusModel",
    "RestoreSessionPhase",
    "RestoreTargetModel",
    "RuleModel",
    "TargetRefModel",
    "HostRestorePhase",
    "HostRestoreStatsModel",
    "TERMINAL_PHASES",
]
