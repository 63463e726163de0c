# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Client for the Stash custom resources."""

import logging
from typing import Any, Dict

from kubernetes import client
from pydantic import ValidationError
from urllib3.exceptions import HTTPError

from .crds import Repository, RestoreSession
from .errors import ClusterUnreachableError, RestoreConfigError

logger = logging.getLogger(__name__)


def to_restore_session(obj: Dict[str, Any]) -> RestoreSession:
    """Return the RestoreSession model of an object returned by the API server.

    Raises:
        RestoreConfigError: If the object is not a valid RestoreSession.
    """
    try:
        return RestoreSession.from_dict(obj)
    except ValidationError as ve:
        name = (obj.get("metadata") or {}).get("name")
        raise RestoreConfigError(f"Invalid RestoreSession '{name}': {ve}") from ve


class StashClient:
    """Read and write the Stash resources of a namespace."""

    def __init__(self, custom_api: client.CustomObjectsApi, namespace: str) -> None:
        self._custom_api = custom_api
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        """Return the namespace of the resources."""
        return self._namespace

    def get_restore_session_object(self, name: str) -> Dict[str, Any]:
        """Return the raw RestoreSession object.

        Raises:
            ApiException: If the RestoreSession cannot be retrieved.
            ClusterUnreachableError: If the API server cannot be reached.
        """
        try:
            return self._custom_api.get_namespaced_custom_object(
                RestoreSession.group,
                RestoreSession.version,
                self._namespace,
                RestoreSession.plural,
                name,
            )
        except HTTPError as he:
            raise ClusterUnreachableError(f"Failed to read RestoreSession '{name}': {he}") from he

    def get_restore_session(self, name: str) -> RestoreSession:
        """Return the RestoreSession.

        Raises:
            ApiException: If the RestoreSession cannot be retrieved.
            ClusterUnreachableError: If the API server cannot be reached.
            RestoreConfigError: If the RestoreSession is malformed.
        """
        return to_restore_session(self.get_restore_session_object(name))

    def get_repository(self, name: str) -> Repository:
        """Return the Repository.

        Raises:
            ApiException: If the Repository cannot be retrieved.
            ClusterUnreachableError: If the API server cannot be reached.
            RestoreConfigError: If the Repository is malformed.
        """
        try:
            obj = self._custom_api.get_namespaced_custom_object(
                Repository.group,
                Repository.version,
                self._namespace,
                Repository.plural,
                name,
            )
        except HTTPError as he:
            raise ClusterUnreachableError(f"Failed to read Repository '{name}': {he}") from he

        try:
            return Repository.model_validate(obj)
        except ValidationError as ve:
            raise RestoreConfigError(f"Invalid Repository '{name}': {ve}") from ve

    def replace_restore_session_status(self, obj: Dict[str, Any]) -> RestoreSession:
        """Replace the status of a RestoreSession.

        The object keeps the resource version it was read with, so the API server rejects
        the write with a 409 Conflict if the RestoreSession changed in the meantime.

        Raises:
            ApiException: If the status cannot be replaced.
            ClusterUnreachableError: If the API server cannot be reached.
        """
        name = obj["metadata"]["name"]
        logger.debug(
            "Replacing status of RestoreSession '%s' (resourceVersion: %s)",
            name,
            obj["metadata"].get("resourceVersion"),
        )
        try:
            updated = self._custom_api.replace_namespaced_custom_object_status(
                RestoreSession.group,
                RestoreSession.version,
                self._namespace,
                RestoreSession.plural,
                name,
                obj,
            )
        except HTTPError as he:
            raise ClusterUnreachableError(
                f"Failed to update status of RestoreSession '{name}': {he}"
            ) from he
        return to_restore_session(updated)
