# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Handling of restore failures."""

import logging
from typing import NoReturn, Optional

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from constants import EVENT_REASON_HOST_RESTORE_FAILED

from .client import StashClient
from .crds import HostRestorePhase, HostRestoreStatsModel, RestoreSession
from .errors import RestoreFailedError, StashError
from .eventer import EVENT_TYPE_WARNING, EventRecorder
from .mutex import LeaseMutex
from .status import StatusSynchronizer

logger = logging.getLogger(__name__)


class FailureHandler:
    """Record a restore failure before the process exits."""

    def __init__(
        self,
        stash_client: StashClient,
        synchronizer: StatusSynchronizer,
        recorder: EventRecorder,
    ) -> None:
        self._stash_client = stash_client
        self._synchronizer = synchronizer
        self._recorder = recorder

    def handle(
        self,
        restore_session_name: str,
        hostname: str,
        error: Exception,
        mutex: Optional[LeaseMutex] = None,
    ) -> NoReturn:
        """Record the failure of a host, step down and fail the process.

        The failed host marks the whole RestoreSession as Failed, so a restarted process
        skips the restore until the status is reset.

        Args:
            restore_session_name (str): The name of the RestoreSession.
            hostname (str): The host whose restore failed.
            error (Exception): The restore error.
            mutex (Optional[LeaseMutex]): The restore lock to release, if held.

        Raises:
            RestoreFailedError: Always, once the failure has been handled.
        """
        reason = str(error)
        host_stats = HostRestoreStatsModel(
            hostname=hostname, phase=HostRestorePhase.Failed, error=reason
        )
        restore_session: Optional[RestoreSession] = None
        try:
            restore_session = self._synchronizer.update(restore_session_name, host_stats)
        except (StashError, ApiException, HTTPError) as e:
            logger.error("Failed to record the restore failure of host '%s': %s", hostname, e)
            reason = f"{reason}; failed to record the failure: {e}"
            try:
                restore_session = self._stash_client.get_restore_session(restore_session_name)
            except (StashError, ApiException, HTTPError) as ae:
                logger.error("Failed to read RestoreSession '%s': %s", restore_session_name, ae)

        if restore_session is not None:
            self._recorder.record(
                restore_session,
                EVENT_TYPE_WARNING,
                EVENT_REASON_HOST_RESTORE_FAILED,
                f"Failed to restore for host '{hostname}'. Reason: {error}",
            )

        # step down before failing the process
        if mutex is not None:
            mutex.release()

        raise RestoreFailedError(hostname, reason) from error
