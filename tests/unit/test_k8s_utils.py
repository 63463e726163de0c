# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from k8s_utils import (
    k8s_get_total_hosts,
    k8s_is_conflict,
    k8s_is_not_found,
    k8s_load_config,
    k8s_retry_on_conflict,
)

NAMESPACE = "test-namespace"


def test_k8s_load_config_in_cluster():
    """Test the in-cluster configuration is loaded first."""
    with patch("k8s_utils.config") as mock_config:
        k8s_load_config()

    mock_config.load_incluster_config.assert_called_once()
    mock_config.load_kube_config.assert_not_called()


def test_k8s_load_config_fallback():
    """Test the local kubeconfig is loaded outside of a cluster."""
    with patch("k8s_utils.config") as mock_config:
        mock_config.load_incluster_config.side_effect = ConfigException("not in cluster")
        k8s_load_config()

    mock_config.load_kube_config.assert_called_once()


@pytest.mark.parametrize(
    "error,conflict,not_found",
    [
        (ApiException(status=409, reason="Conflict"), True, False),
        (ApiException(status=404, reason="Not Found"), False, True),
        (ApiException(status=500, reason="Internal Error"), False, False),
        (ValueError("409"), False, False),
    ],
)
def test_k8s_error_checks(error, conflict, not_found):
    """Test API errors are classified by status."""
    assert k8s_is_conflict(error) is conflict
    assert k8s_is_not_found(error) is not_found


def test_k8s_retry_on_conflict_success():
    """Test the function is retried until it stops conflicting."""
    func = MagicMock(
        side_effect=[
            ApiException(status=409, reason="Conflict"),
            ApiException(status=409, reason="Conflict"),
            "updated",
        ]
    )

    assert k8s_retry_on_conflict(func, attempts=3, delay=0) == "updated"
    assert func.call_count == 3


def test_k8s_retry_on_conflict_exhausted():
    """Test the conflict is raised once all attempts are used."""
    func = MagicMock(side_effect=ApiException(status=409, reason="Conflict"))

    with pytest.raises(ApiException) as exc_info:
        k8s_retry_on_conflict(func, attempts=2, delay=0)

    assert exc_info.value.status == 409
    assert func.call_count == 2


def test_k8s_retry_on_conflict_other_error():
    """Test errors other than conflicts are not retried."""
    func = MagicMock(side_effect=ApiException(status=403, reason="Forbidden"))

    with pytest.raises(ApiException):
        k8s_retry_on_conflict(func, attempts=5, delay=0)

    assert func.call_count == 1


@pytest.mark.parametrize(
    "kind,replicas,spec_replicas,expected",
    [
        ("StatefulSet", 2, 5, 2),
        ("StatefulSet", None, 5, 5),
        ("StatefulSet", None, None, 1),
        ("StatefulSet", 0, 5, 1),
    ],
)
def test_k8s_get_total_hosts_statefulset(kind, replicas, spec_replicas, expected):
    """Test the expected hosts of a StatefulSet."""
    apps_api = MagicMock()
    apps_api.read_namespaced_stateful_set.return_value.spec.replicas = spec_replicas

    assert k8s_get_total_hosts(apps_api, NAMESPACE, kind, "db", replicas) == expected


def test_k8s_get_total_hosts_daemonset():
    """Test the expected hosts of a DaemonSet are its scheduled pods."""
    apps_api = MagicMock()
    apps_api.read_namespaced_daemon_set.return_value.status.desired_number_scheduled = 4

    assert k8s_get_total_hosts(apps_api, NAMESPACE, "DaemonSet", "agent") == 4
    apps_api.read_namespaced_daemon_set.assert_called_once_with("agent", NAMESPACE)


@pytest.mark.parametrize("kind", ["PersistentVolumeClaim", "Deployment", None])
def test_k8s_get_total_hosts_single(kind):
    """Test other workloads restore a single host."""
    apps_api = MagicMock()

    assert k8s_get_total_hosts(apps_api, NAMESPACE, kind, "data") == 1
    assert apps_api.method_calls == []


def test_k8s_get_total_hosts_api_error():
    """Test API errors are raised."""
    apps_api = MagicMock()
    apps_api.read_namespaced_stateful_set.side_effect = ApiException(
        status=404, reason="Not Found"
    )

    with pytest.raises(ApiException):
        k8s_get_total_hosts(apps_api, NAMESPACE, "StatefulSet", "db")
