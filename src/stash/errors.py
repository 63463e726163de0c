# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Stash restore exceptions."""


class StashError(Exception):
    """Base class for Stash restore exceptions."""


class RestoreConfigError(StashError):
    """Exception raised when the restore cannot start because of invalid configuration."""


class LockError(StashError):
    """Exception raised when the restore lock cannot be acquired or kept."""


class LeaseLostError(LockError):
    """Exception raised when the restore lock is lost while the restore is running."""


class ResticError(StashError):
    """Exception raised for restic CLI errors."""


class TransferError(StashError):
    """Exception raised when the data transfer for a host fails."""

    def __init__(self, hostname: str, reason: str) -> None:
        super().__init__(reason)
        self.hostname = hostname
        self.reason = reason


class StatusUpdateError(StashError):
    """Exception raised when the RestoreSession status cannot be updated."""


class RestoreFailedError(StashError):
    """Exception raised after a restore failure has been recorded."""

    def __init__(self, hostname: str, reason: str) -> None:
        super().__init__(f"failed to complete restore for host '{hostname}'. Reason: {reason}")
        self.hostname = hostname
        self.reason = reason


class ClusterUnreachableError(StashError):
    """Exception raised when the Kubernetes API server cannot be reached."""
