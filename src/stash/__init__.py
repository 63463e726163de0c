# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Stash restore module."""

from .client import StashClient
from .coordinator import RestoreCoordinator
from .errors import (
    ClusterUnreachableError,
    LeaseLostError,
    LockError,
    ResticError,
    RestoreConfigError,
    RestoreFailedError,
    StashError,
    StatusUpdateError,
    TransferError,
)
from .eventer import EventRecorder
from .failure import FailureHandler
from .metrics import RestoreMetrics
from .mutex import LeaseMutex, get_restore_lock_name
from .restic import ResticWrapper
from .restore import (
    RestoreExecutor,
    RestoreResult,
    RestoreResultStatus,
    get_host_name,
    is_restored_for_host,
)
from .status import StatusSynchronizer

__all__ = [
    "RestoreCoordinator",
    "StashClient",
    "ResticWrapper",
    "LeaseMutex",
    "get_restore_lock_name",
    "RestoreExecutor",
    "RestoreResult",
    "RestoreResultStatus",
    "get_host_name",
    "is_restored_for_host",
    "StatusSynchronizer",
    "EventRecorder",
    "FailureHandler",
    "RestoreMetrics",
    "StashError",
    "RestoreConfigError",
    "LockError",
    "LeaseLostError",
    "ResticError",
    "TransferError",
    "StatusUpdateError",
    "RestoreFailedError",
    "ClusterUnreachableError",
]
