# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

import copy
import threading
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException

NAMESPACE = "test-namespace"
RESTORE_SESSION_NAME = "db-restore"
REPOSITORY_NAME = "db-repo"
STATEFULSET_NAME = "db"


class FakeLeaseApi:
    """In-memory CoordinationV1Api, strict on resource versions like the API server."""

    def __init__(self) -> None:
        self._leases: Dict[tuple, client.V1Lease] = {}
        self._lock = threading.Lock()
        self._version = 0

    def _bump(self, lease: client.V1Lease) -> None:
        self._version += 1
        lease.metadata.resource_version = str(self._version)

    def read_namespaced_lease(self, name, namespace):
        with self._lock:
            lease = self._leases.get((namespace, name))
            if lease is None:
                raise ApiException(status=404, reason="Not Found")
            return copy.deepcopy(lease)

    def create_namespaced_lease(self, namespace, body):
        with self._lock:
            key = (namespace, body.metadata.name)
            if key in self._leases:
                raise ApiException(status=409, reason="AlreadyExists")
            stored = copy.deepcopy(body)
            self._bump(stored)
            self._leases[key] = stored
            return copy.deepcopy(stored)

    def replace_namespaced_lease(self, name, namespace, body):
        with self._lock:
            current = self._leases.get((namespace, name))
            if current is None:
                raise ApiException(status=404, reason="Not Found")
            if body.metadata.resource_version != current.metadata.resource_version:
                raise ApiException(status=409, reason="Conflict")
            stored = copy.deepcopy(body)
            self._bump(stored)
            self._leases[(namespace, name)] = stored
            return copy.deepcopy(stored)

    def get(self, name: str, namespace: str = NAMESPACE) -> Optional[client.V1Lease]:
        with self._lock:
            lease = self._leases.get((namespace, name))
            return copy.deepcopy(lease)

    def holder(self, name: str, namespace: str = NAMESPACE) -> Optional[str]:
        lease = self.get(name, namespace)
        return lease.spec.holder_identity if lease else None

    def set_holder(
        self, name: str, holder: str, duration: int = 15, namespace: str = NAMESPACE
    ) -> None:
        """Overwrite the holder, as another contender taking over the Lease would."""
        with self._lock:
            lease = self._leases[(namespace, name)]
            lease.spec.holder_identity = holder
            lease.spec.lease_duration_seconds = duration
            lease.spec.lease_transitions = (lease.spec.lease_transitions or 0) + 1
            self._bump(lease)


class FakeCustomObjectsApi:
    """In-memory CustomObjectsApi for the Stash resources."""

    def __init__(self) -> None:
        self._objects: Dict[tuple, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._version = 0
        self.conflicts = 0
        self.failures: List[Exception] = []
        self.status_writes = 0

    def add(self, plural: str, obj: Dict[str, Any]) -> None:
        with self._lock:
            stored = copy.deepcopy(obj)
            self._version += 1
            stored["metadata"]["resourceVersion"] = str(self._version)
            key = (stored["metadata"]["namespace"], plural, stored["metadata"]["name"])
            self._objects[key] = stored

    def get(self, plural: str, name: str, namespace: str = NAMESPACE) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._objects[(namespace, plural, name)])

    def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        with self._lock:
            obj = self._objects.get((namespace, plural, name))
            if obj is None:
                raise ApiException(status=404, reason="Not Found")
            return copy.deepcopy(obj)

    def replace_namespaced_custom_object_status(
        self, group, version, namespace, plural, name, body
    ):
        with self._lock:
            if self.failures:
                raise self.failures.pop(0)
            if self.conflicts > 0:
                self.conflicts -= 1
                raise ApiException(status=409, reason="Conflict")
            current = self._objects.get((namespace, plural, name))
            if current is None:
                raise ApiException(status=404, reason="Not Found")
            if body["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
                raise ApiException(status=409, reason="Conflict")
            updated = copy.deepcopy(current)
            updated["status"] = copy.deepcopy(body.get("status"))
            self._version += 1
            updated["metadata"]["resourceVersion"] = str(self._version)
            self._objects[(namespace, plural, name)] = updated
            self.status_writes += 1
            return copy.deepcopy(updated)


def restore_session_obj(
    kind: str = "StatefulSet",
    target_name: str = STATEFULSET_NAME,
    replicas: Optional[int] = 1,
    rules: Optional[List[Dict[str, Any]]] = None,
    status: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Return a RestoreSession object as returned by the API server."""
    target: Dict[str, Any] = {"ref": {"apiVersion": "apps/v1", "kind": kind, "name": target_name}}
    if replicas is not None:
        target["replicas"] = replicas
    obj = {
        "apiVersion": "stash.appscode.com/v1beta1",
        "kind": "RestoreSession",
        "metadata": {
            "name": RESTORE_SESSION_NAME,
            "namespace": NAMESPACE,
            "uid": "d3c1b4f0-0000-0000-0000-000000000001",
            "resourceVersion": "1",
        },
        "spec": {
            "repository": {"name": REPOSITORY_NAME},
            "target": target,
            "rules": rules if rules is not None else [{"paths": ["/data"]}],
        },
    }
    if status is not None:
        obj["status"] = status
    return obj


def repository_obj(backend: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return a Repository object as returned by the API server."""
    return {
        "apiVersion": "stash.appscode.com/v1alpha1",
        "kind": "Repository",
        "metadata": {"name": REPOSITORY_NAME, "namespace": NAMESPACE},
        "spec": {
            "backend": backend
            or {
                "storageSecretName": "s3-secret",
                "s3": {"endpoint": "minio.storage:9000", "bucket": "stash", "prefix": "db"},
            }
        },
    }


@pytest.fixture()
def fake_lease_api():
    """Return an in-memory Lease API."""
    return FakeLeaseApi()


@pytest.fixture()
def fake_custom_api():
    """Return an in-memory custom objects API holding a RestoreSession and its Repository."""
    api = FakeCustomObjectsApi()
    api.add("restoresessions", restore_session_obj())
    api.add("repositories", repository_obj())
    return api


@pytest.fixture()
def mock_core_api():
    """Return a mocked CoreV1Api."""
    return MagicMock()


@pytest.fixture()
def mock_apps_api():
    """Return a mocked AppsV1Api."""
    return MagicMock()


@pytest.fixture()
def secret_dir(tmp_path):
    """Return a mounted storage secret directory."""
    secret = tmp_path / "secret"
    secret.mkdir()
    (secret / "RESTIC_PASSWORD").write_text("not-so-secret\n")
    (secret / "AWS_ACCESS_KEY_ID").write_text("access-key")
    (secret / "AWS_SECRET_ACCESS_KEY").write_text("secret-key")
    return secret
