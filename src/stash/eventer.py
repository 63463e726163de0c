# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Kubernetes events written against the RestoreSession."""

import logging
import uuid
from datetime import datetime, timezone

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from constants import RESTORE_SESSION_KIND

from .crds import RestoreSession

logger = logging.getLogger(__name__)

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"


class EventRecorder:
    """Best-effort recorder of events about a RestoreSession."""

    def __init__(self, core_api: client.CoreV1Api, component: str, host: str = "") -> None:
        """Initialize the EventRecorder class.

        Args:
            core_api: The Kubernetes core API client.
            component: The event source component.
            host: The node or pod emitting the events.
        """
        self._core_api = core_api
        self._component = component
        self._host = host

    def record(
        self, restore_session: RestoreSession, event_type: str, reason: str, message: str
    ) -> None:
        """Log and write an event referencing the RestoreSession.

        Failures to write the event are logged and never raised.

        Args:
            restore_session (RestoreSession): The object the event is about.
            event_type (str): Either "Normal" or "Warning".
            reason (str): The machine readable reason of the event.
            message (str): The human readable description of the event.
        """
        if event_type == EVENT_TYPE_WARNING:
            logger.warning("%s: %s", reason, message)
        else:
            logger.info("%s: %s", reason, message)

        now = datetime.now(timezone.utc)
        namespace = restore_session.namespace or "default"
        event = client.CoreV1Event(
            metadata=client.V1ObjectMeta(
                name=f"{restore_session.name}.{uuid.uuid4().hex[:16]}",
                namespace=namespace,
            ),
            involved_object=client.V1ObjectReference(
                api_version=restore_session.apiVersion
                or f"{RestoreSession.group}/{RestoreSession.version}",
                kind=restore_session.kind or RESTORE_SESSION_KIND,
                name=restore_session.name,
                namespace=namespace,
                uid=restore_session.metadata.uid,
                resource_version=restore_session.metadata.resourceVersion,
            ),
            reason=reason,
            message=message,
            type=event_type,
            source=client.V1EventSource(component=self._component, host=self._host or None),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )
        try:
            self._core_api.create_namespaced_event(namespace, event)
        except (ApiException, HTTPError) as e:
            logger.error("Failed to write '%s' event: %s", reason, e)
