# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Host scoped restore of a RestoreSession."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

from constants import (
    DEFAULT_HOST,
    KIND_DAEMONSET,
    KIND_PERSISTENT_VOLUME_CLAIM,
    KIND_STATEFULSET,
)

from .client import StashClient
from .crds import (
    TERMINAL_PHASES,
    HostRestorePhase,
    HostRestoreStatsModel,
    RestoreSession,
    RestoreTargetModel,
    RuleModel,
)
from .errors import LeaseLostError, ResticError, RestoreConfigError, TransferError
from .restic import RestoreOptions, RestoreOutput
from .status import StatusSynchronizer

logger = logging.getLogger(__name__)


class RestoreEngine(Protocol):
    """Engine moving the data of a host out of the repository."""

    def run_restore(self, options: RestoreOptions) -> RestoreOutput:  # pragma: no cover
        """Restore a host, raising ResticError on failure."""
        ...

    def abort(self) -> None:  # pragma: no cover
        """Abort the running restore."""
        ...


class RestoreResultStatus(str, Enum):
    """Outcome of a restore run."""

    RESTORED = "restored"
    SKIPPED = "skipped"


@dataclass
class RestoreResult:
    """Result of a restore run."""

    hostname: str
    status: RestoreResultStatus
    stats: Optional[HostRestoreStatsModel] = None


def get_host_name(
    target: Optional[RestoreTargetModel], pod_name: Optional[str], node_name: Optional[str]
) -> str:
    """Return the hostname restored by this process.

    The result only depends on its arguments, so a restarted process restores the same
    host again.

    Raises:
        RestoreConfigError: If the identity needed for the target kind is missing.
    """
    if target is None:
        return DEFAULT_HOST

    kind = target.ref.kind
    if kind == KIND_STATEFULSET:
        if not pod_name:
            raise RestoreConfigError(f"Missing pod name for {KIND_STATEFULSET}")
        ordinal = pod_name.rsplit("-", 1)[-1]
        if not ordinal.isdigit():
            raise RestoreConfigError(f"Pod '{pod_name}' has no {KIND_STATEFULSET} ordinal")
        return f"host-{ordinal}"
    if kind == KIND_PERSISTENT_VOLUME_CLAIM:
        return target.ref.name
    if kind == KIND_DAEMONSET:
        if not node_name:
            raise RestoreConfigError(f"Missing node name for {KIND_DAEMONSET}")
        return node_name
    return DEFAULT_HOST


def restore_options_for_host(hostname: str, rules: List[RuleModel]) -> RestoreOptions:
    """Return the restore options of a host.

    A rule listing the host wins over rules without target hosts, which apply to every
    host. The last of those is used when no rule lists the host.
    """
    matched: Optional[RuleModel] = None
    for rule in rules:
        if hostname in rule.targetHosts:
            matched = rule
            break
        if not rule.targetHosts:
            matched = rule

    if matched is None:
        return RestoreOptions(host=hostname, source_host=hostname)
    return RestoreOptions(
        host=hostname,
        source_host=matched.sourceHost or hostname,
        restore_paths=list(matched.paths),
        snapshots=list(matched.snapshots),
    )


def is_restored_for_host(restore_session: RestoreSession, hostname: str) -> bool:
    """Check if the restore of a host has already been processed.

    A RestoreSession in a terminal phase is processed for every host.
    """
    if restore_session.phase in TERMINAL_PHASES:
        return True
    return restore_session.status.host_stats(hostname) is not None


def format_duration(seconds: float) -> str:
    """Format a duration the way it is shown in the RestoreSession status."""
    return f"{seconds:.3f}s"


class RestoreExecutor:
    """Restore the host of this process once, and record its outcome."""

    def __init__(
        self,
        stash_client: StashClient,
        engine: RestoreEngine,
        synchronizer: StatusSynchronizer,
        restore_session_name: str,
        hostname: str,
    ) -> None:
        self._stash_client = stash_client
        self._engine = engine
        self._synchronizer = synchronizer
        self._restore_session_name = restore_session_name
        self._hostname = hostname
        self._aborted = False

    @property
    def hostname(self) -> str:
        """Return the hostname restored by this executor."""
        return self._hostname

    def abort(self) -> None:
        """Abort the running data transfer."""
        self._aborted = True
        self._engine.abort()

    def run(self) -> RestoreResult:
        """Restore the host, unless it has already been processed.

        Returns:
            RestoreResult: The restored statistics, or a skipped result.

        Raises:
            TransferError: If the engine fails to restore the host.
            LeaseLostError: If the transfer was aborted because the restore lock was lost.
            StatusUpdateError: If the outcome keeps conflicting with other updates.
            ApiException: If the RestoreSession cannot be read or updated.
        """
        restore_session = self._stash_client.get_restore_session(self._restore_session_name)
        if is_restored_for_host(restore_session, self._hostname):
            logger.info(
                "Skipping restore for RestoreSession %s/%s. "
                "Reason: RestoreSession already processed for host '%s'.",
                restore_session.namespace,
                restore_session.name,
                self._hostname,
            )
            return RestoreResult(self._hostname, RestoreResultStatus.SKIPPED)

        options = restore_options_for_host(self._hostname, restore_session.spec.rules)
        try:
            output = self._engine.run_restore(options)
        except ResticError as re:
            if self._aborted:
                raise LeaseLostError(
                    f"Restore of host '{self._hostname}' aborted after losing the restore lock"
                ) from re
            raise TransferError(self._hostname, str(re)) from re

        stats = HostRestoreStatsModel(
            hostname=self._hostname,
            phase=HostRestorePhase.Succeeded,
            duration=format_duration(output.duration),
            filesRestored=output.files_restored,
            bytesRestored=output.bytes_restored,
        )
        self._synchronizer.update(self._restore_session_name, stats)
        logger.info("Restore has been completed successfully for host '%s'", self._hostname)
        return RestoreResult(self._hostname, RestoreResultStatus.RESTORED, stats)
