# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Utility functions for Kubernetes operations."""

import logging
from typing import Callable, Optional, TypeVar

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from constants import (
    KIND_DAEMONSET,
    KIND_STATEFULSET,
    STATUS_UPDATE_ATTEMPTS,
    STATUS_UPDATE_DELAY,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def k8s_load_config() -> None:
    """Load the in-cluster configuration, falling back to the local kubeconfig.

    Raises:
        ConfigException: If neither configuration can be loaded.
    """
    try:
        config.load_incluster_config()
    except ConfigException:
        logger.info("Not running inside a cluster, loading the local kubeconfig")
        config.load_kube_config()


def k8s_is_conflict(error: BaseException) -> bool:
    """Check if an exception is a 409 Conflict returned by the API server."""
    return isinstance(error, ApiException) and error.status == 409


def k8s_is_not_found(error: BaseException) -> bool:
    """Check if an exception is a 404 Not Found returned by the API server."""
    return isinstance(error, ApiException) and error.status == 404


def k8s_retry_on_conflict(
    func: Callable[[], T],
    *,
    attempts: int = STATUS_UPDATE_ATTEMPTS,
    delay: float = STATUS_UPDATE_DELAY,
) -> T:
    """Retry a read-modify-write function while the API server reports a conflict.

    Args:
        func (Callable[[], T]): The function to run. It should read the object it writes,
            so that every attempt works on the latest resource version.
        attempts (int): Maximum number of attempts.
        delay (float): Delay between attempts in seconds.

    Returns:
        T: The value returned by the first successful call.

    Raises:
        ApiException: If the conflict persists after all the attempts,
            or the API server returns any other error.
    """
    for attempt in Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception(k8s_is_conflict),
        before_sleep=lambda rs: logger.warning(
            "Conflict while updating the resource, retrying (attempt: %d/%d)",
            rs.attempt_number,
            attempts,
        ),
        reraise=True,
    ):
        with attempt:
            return func()
    raise AssertionError("unreachable")  # pragma: no cover


def k8s_get_total_hosts(
    apps_api: client.AppsV1Api,
    namespace: str,
    kind: Optional[str],
    name: Optional[str],
    replicas: Optional[int] = None,
) -> int:
    """Return the number of hosts expected to be restored for a workload.

    Args:
        apps_api (AppsV1Api): The Kubernetes apps API client.
        namespace (str): The namespace of the workload.
        kind (Optional[str]): The kind of the workload, None when there is no target.
        name (Optional[str]): The name of the workload.
        replicas (Optional[int]): Replicas explicitly requested for the restore.

    Returns:
        int: The expected number of hosts, at least 1.

    Raises:
        ApiException: If the workload cannot be retrieved.
    """
    if kind == KIND_STATEFULSET:
        if replicas is not None:
            return max(replicas, 1)
        statefulset = apps_api.read_namespaced_stateful_set(name, namespace)
        spec_replicas = statefulset.spec.replicas if statefulset.spec else None
        return max(spec_replicas if spec_replicas is not None else 1, 1)

    if kind == KIND_DAEMONSET:
        daemonset = apps_api.read_namespaced_daemon_set(name, namespace)
        scheduled = daemonset.status.desired_number_scheduled if daemonset.status else None
        return max(scheduled or 1, 1)

    return 1
