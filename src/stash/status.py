# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Merge of host restore outcomes into the RestoreSession status."""

import logging
from typing import Callable, Optional

from kubernetes.client.exceptions import ApiException

from constants import (
    EVENT_REASON_HOST_RESTORE_SUCCEEDED,
    STATUS_UPDATE_ATTEMPTS,
    STATUS_UPDATE_DELAY,
)
from k8s_utils import k8s_is_conflict, k8s_retry_on_conflict

from .client import StashClient, to_restore_session
from .crds import (
    TERMINAL_PHASES,
    HostRestorePhase,
    HostRestoreStatsModel,
    RestoreSession,
    RestoreSessionPhase,
    RestoreSessionStatusModel,
)
from .errors import StatusUpdateError
from .eventer import EVENT_TYPE_NORMAL, EventRecorder
from .metrics import RestoreMetrics

logger = logging.getLogger(__name__)


def merge_host_stats(
    status: RestoreSessionStatusModel, host_stats: HostRestoreStatsModel, total_hosts: int
) -> RestoreSessionStatusModel:
    """Return the status with the outcome of a host merged in.

    The entry of the host is added or replaced, then the overall phase is recomputed:
    a single failed host fails the RestoreSession, and it succeeds once every expected
    host has succeeded. A status already in a terminal phase is returned unchanged.
    """
    if status.phase in TERMINAL_PHASES:
        return status

    stats = [s for s in status.stats if s.hostname != host_stats.hostname]
    stats.append(host_stats)

    if host_stats.phase == HostRestorePhase.Failed:
        phase = RestoreSessionPhase.Failed
    elif len(stats) >= total_hosts and all(
        s.phase == HostRestorePhase.Succeeded for s in stats
    ):
        phase = RestoreSessionPhase.Succeeded
    elif status.phase in (None, RestoreSessionPhase.Pending):
        phase = RestoreSessionPhase.Running
    else:
        phase = status.phase

    return status.model_copy(update={"stats": stats, "phase": phase, "totalHosts": total_hosts})


class StatusSynchronizer:
    """The only writer of the RestoreSession status."""

    def __init__(
        self,
        stash_client: StashClient,
        total_hosts: Callable[[RestoreSession], int],
        recorder: Optional[EventRecorder] = None,
        metrics: Optional[RestoreMetrics] = None,
        attempts: int = STATUS_UPDATE_ATTEMPTS,
        delay: float = STATUS_UPDATE_DELAY,
    ) -> None:
        """Initialize the StatusSynchronizer class.

        Args:
            stash_client: The client of the Stash resources.
            total_hosts: Returns the number of hosts expected for a RestoreSession.
            recorder: Records an event for every successful host.
            metrics: Pushes the metrics of every recorded host.
            attempts: Maximum number of attempts when the status update conflicts.
            delay: Delay between attempts in seconds.
        """
        self._stash_client = stash_client
        self._total_hosts = total_hosts
        self._recorder = recorder
        self._metrics = metrics
        self._attempts = attempts
        self._delay = delay

    def _update_once(self, name: str, host_stats: HostRestoreStatsModel) -> RestoreSession:
        obj = self._stash_client.get_restore_session_object(name)
        restore_session = to_restore_session(obj)

        if restore_session.phase in TERMINAL_PHASES:
            logger.warning(
                "RestoreSession %s/%s is already %s, not recording host '%s'",
                restore_session.namespace,
                restore_session.name,
                restore_session.phase.value,
                host_stats.hostname,
            )
            return restore_session

        if restore_session.status.host_stats(host_stats.hostname) == host_stats:
            return restore_session

        restore_session.status = merge_host_stats(
            restore_session.status, host_stats, self._total_hosts(restore_session)
        )
        obj["status"] = restore_session.status_dict()
        return self._stash_client.replace_restore_session_status(obj)

    def update(self, name: str, host_stats: HostRestoreStatsModel) -> RestoreSession:
        """Record the outcome of a host in the RestoreSession status.

        The RestoreSession is read and written back until no other contender updates it
        in between.

        Args:
            name (str): The name of the RestoreSession.
            host_stats (HostRestoreStatsModel): The outcome of the host.

        Returns:
            RestoreSession: The updated RestoreSession.

        Raises:
            StatusUpdateError: If the update keeps conflicting.
            ApiException: If the RestoreSession cannot be read or written.
        """
        try:
            restore_session = k8s_retry_on_conflict(
                lambda: self._update_once(name, host_stats),
                attempts=self._attempts,
                delay=self._delay,
            )
        except ApiException as ae:
            if k8s_is_conflict(ae):
                raise StatusUpdateError(
                    f"Failed to update status of RestoreSession '{name}' "
                    f"after {self._attempts} attempts"
                ) from ae
            raise

        if restore_session.status.host_stats(host_stats.hostname) != host_stats:
            return restore_session

        phase = restore_session.phase.value if restore_session.phase else "Unknown"
        logger.info(
            "Recorded host '%s' as %s, RestoreSession '%s' is %s",
            host_stats.hostname,
            host_stats.phase.value,
            name,
            phase,
        )
        if self._recorder is not None and host_stats.phase == HostRestorePhase.Succeeded:
            self._recorder.record(
                restore_session,
                EVENT_TYPE_NORMAL,
                EVENT_REASON_HOST_RESTORE_SUCCEEDED,
                f"Restore succeeded for host '{host_stats.hostname}'",
            )
        if self._metrics is not None:
            self._metrics.push(restore_session, host_stats)
        return restore_session
