# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Coordination of the restore between the replicas of a workload."""

import logging
from typing import Optional

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from config import RestoreConfig
from constants import EVENT_SOURCE_RESTORE_INIT_CONTAINER, EVENT_SOURCE_RESTORE_JOB
from k8s_utils import k8s_get_total_hosts

from .backends import get_backend
from .client import StashClient
from .crds import RestoreSession
from .errors import LockError, RestoreConfigError, StashError, TransferError
from .eventer import EventRecorder
from .failure import FailureHandler
from .metrics import RestoreMetrics
from .mutex import LeaseMutex, get_restore_lock_name
from .restic import ResticWrapper, SetupOptions
from .restore import RestoreExecutor, RestoreResult, get_host_name
from .status import StatusSynchronizer

logger = logging.getLogger(__name__)


class RestoreCoordinator:
    """Run the restore of this replica, serialized with the other replicas when needed."""

    def __init__(
        self,
        config: RestoreConfig,
        stash_client: StashClient,
        coordination_api: client.CoordinationV1Api,
        core_api: client.CoreV1Api,
        apps_api: client.AppsV1Api,
    ) -> None:
        self._config = config
        self._stash_client = stash_client
        self._coordination_api = coordination_api
        self._core_api = core_api
        self._apps_api = apps_api

    @classmethod
    def from_api_client(
        cls, config: RestoreConfig, api_client: client.ApiClient
    ) -> "RestoreCoordinator":
        """Build the coordinator from a configured Kubernetes API client."""
        return cls(
            config,
            StashClient(client.CustomObjectsApi(api_client), config.namespace),
            client.CoordinationV1Api(api_client),
            client.CoreV1Api(api_client),
            client.AppsV1Api(api_client),
        )

    # PROPERTIES

    @property
    def _event_source(self) -> str:
        if self._config.exclusive:
            return EVENT_SOURCE_RESTORE_INIT_CONTAINER
        return EVENT_SOURCE_RESTORE_JOB

    # METHODS

    def _total_hosts(self, restore_session: RestoreSession) -> int:
        target = restore_session.spec.target
        if target is None:
            return 1
        return k8s_get_total_hosts(
            self._apps_api,
            self._config.namespace,
            target.ref.kind,
            target.ref.name,
            target.replicas,
        )

    def _setup_engine(self, restore_session: RestoreSession) -> ResticWrapper:
        """Return the restic wrapper for the repository of the RestoreSession.

        Raises:
            RestoreConfigError: If the repository backend or its secret is invalid.
            ApiException: If the Repository cannot be retrieved.
        """
        repository = self._stash_client.get_repository(restore_session.spec.repository.name)
        backend = get_backend(repository.spec.backend)
        logger.info(
            "Using '%s' repository '%s' at '%s'",
            backend.provider,
            repository.metadata.name,
            backend.repository_url,
        )
        setup = SetupOptions(
            repository_env=backend.restic_env(self._config.secret_dir),
            scratch_dir=self._config.scratch_dir,
            enable_cache=self._config.enable_cache,
            nice_adjustment=self._config.nice_adjustment,
            ionice_class=self._config.ionice_class,
            ionice_class_data=self._config.ionice_class_data,
        )
        return ResticWrapper(self._config.restic_binary_path, setup)

    def _execute(
        self,
        executor: RestoreExecutor,
        failure_handler: FailureHandler,
        mutex: Optional[LeaseMutex],
    ) -> RestoreResult:
        """Run the executor, recording any failure of the host except a lost lock."""
        try:
            return executor.run()
        except LockError:
            raise
        except TransferError as te:
            failure_handler.handle(self._config.restore_session, te.hostname, te, mutex)
        except (StashError, ApiException, HTTPError) as e:
            failure_handler.handle(self._config.restore_session, executor.hostname, e, mutex)

    def run(self) -> RestoreResult:
        """Restore the host of this replica.

        Returns:
            RestoreResult: The outcome of the restore, skipped if already processed.

        Raises:
            RestoreConfigError: If the RestoreSession or the environment is invalid.
            LockError: If the restore lock cannot be acquired, or is lost.
            RestoreFailedError: If the restore failed, after the failure is recorded.
            ApiException: If a Stash resource cannot be retrieved.
        """
        name = self._config.restore_session
        restore_session = self._stash_client.get_restore_session(name)
        target = restore_session.spec.target
        if target is None:
            raise RestoreConfigError(f"Invalid RestoreSession '{name}'. Target is nil")

        hostname = get_host_name(target, self._config.pod_name, self._config.node_name)
        engine = self._setup_engine(restore_session)

        recorder = EventRecorder(
            self._core_api,
            self._event_source,
            host=self._config.node_name or self._config.pod_name or "",
        )
        metrics = None
        if self._config.metrics_enabled:
            metrics = RestoreMetrics(
                self._config.pushgateway_url,
                self._config.metrics_job,
                self._config.metrics_labels,
            )
        synchronizer = StatusSynchronizer(
            self._stash_client, self._total_hosts, recorder, metrics=metrics
        )
        executor = RestoreExecutor(self._stash_client, engine, synchronizer, name, hostname)
        failure_handler = FailureHandler(self._stash_client, synchronizer, recorder)

        if not self._config.exclusive:
            logger.info("Restoring host '%s' without the restore lock", hostname)
            return self._execute(executor, failure_handler, None)

        mutex = LeaseMutex(
            self._coordination_api,
            get_restore_lock_name(target.ref.kind, target.ref.name),
            self._config.namespace,
            self._config.pod_name or "",
            lease_duration=self._config.lease_duration,
            renew_deadline=self._config.renew_deadline,
            retry_period=self._config.retry_period,
        )

        def on_lost() -> None:
            logger.error("Lost the restore lock, aborting the restore of host '%s'", hostname)
            executor.abort()

        return mutex.run(lambda: self._execute(executor, failure_handler, mutex), on_lost)
