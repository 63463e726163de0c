# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Restore metrics pushed to a Prometheus push gateway."""

import logging
from typing import Dict, Mapping, Optional

from prometheus_client import CollectorRegistry, Gauge, push_to_gateway

from .crds import (
    TERMINAL_PHASES,
    HostRestorePhase,
    HostRestoreStatsModel,
    RestoreSession,
    RestoreSessionPhase,
)

logger = logging.getLogger(__name__)

METRIC_PREFIX = "stash_restore"


def parse_duration(duration: Optional[str]) -> Optional[float]:
    """Return the seconds of a duration as shown in the RestoreSession status."""
    if not duration:
        return None
    try:
        return float(duration.rstrip("s"))
    except ValueError:
        logger.warning("Ignoring unparsable restore duration '%s'", duration)
        return None


class RestoreMetrics:
    """Push the outcome of a host restore to a Prometheus push gateway.

    Every host pushes its own group, keyed by the RestoreSession and the host, so the
    replicas of a workload never overwrite each other's metrics.
    """

    def __init__(
        self,
        pushgateway_url: str,
        job_name: str,
        labels: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Initialize the RestoreMetrics class.

        Args:
            pushgateway_url: The address of the push gateway.
            job_name: The job label of the pushed metrics.
            labels: Extra labels added to every metric.
        """
        self._pushgateway_url = pushgateway_url
        self._job_name = job_name
        self._labels = dict(labels or {})

    def _registry(
        self, restore_session: RestoreSession, host_stats: HostRestoreStatsModel
    ) -> CollectorRegistry:
        registry = CollectorRegistry()
        labels = {
            **self._labels,
            "namespace": restore_session.namespace or "",
            "restore_session": restore_session.name,
            "host": host_stats.hostname,
        }
        names = list(labels)

        def gauge(name: str, documentation: str, value: float) -> None:
            metric = Gauge(f"{METRIC_PREFIX}_{name}", documentation, names, registry=registry)
            metric.labels(**labels).set(value)

        gauge(
            "host_success",
            "Whether the restore of the host succeeded",
            1 if host_stats.phase == HostRestorePhase.Succeeded else 0,
        )
        duration = parse_duration(host_stats.duration)
        if duration is not None:
            gauge("host_duration_seconds", "Time taken to restore the host", duration)
        if host_stats.filesRestored is not None:
            gauge("host_files_restored", "Files restored on the host", host_stats.filesRestored)
        if host_stats.bytesRestored is not None:
            gauge("host_bytes_restored", "Bytes restored on the host", host_stats.bytesRestored)
        if restore_session.phase in TERMINAL_PHASES:
            gauge(
                "session_success",
                "Whether the RestoreSession succeeded",
                1 if restore_session.phase == RestoreSessionPhase.Succeeded else 0,
            )
        return registry

    def grouping_key(self, restore_session: RestoreSession, hostname: str) -> Dict[str, str]:
        """Return the push gateway group of a host."""
        return {
            "namespace": restore_session.namespace or "",
            "restore_session": restore_session.name,
            "host": hostname,
        }

    def push(self, restore_session: RestoreSession, host_stats: HostRestoreStatsModel) -> None:
        """Push the metrics of a recorded host.

        Failures are logged only, metrics never fail a restore.
        """
        registry = self._registry(restore_session, host_stats)
        try:
            push_to_gateway(
                self._pushgateway_url,
                job=self._job_name,
                registry=registry,
                grouping_key=self.grouping_key(restore_session, host_stats.hostname),
            )
        except OSError as e:
            logger.warning(
                "Failed to push restore metrics of host '%s' to '%s': %s",
                host_stats.hostname,
                self._pushgateway_url,
                e,
            )
            return
        logger.debug("Pushed restore metrics of host '%s'", host_stats.hostname)
