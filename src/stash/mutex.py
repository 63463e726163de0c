# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Restore lock shared by every replica of a workload.

The lock is a ``coordination.k8s.io/v1`` Lease. Unlike a classic leader election, the
holder keeps the lock only while its restore runs and then steps down explicitly, so the
next replica can restore its own host without waiting for the lease to expire.
"""

import logging
import math
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple, TypeVar

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_delay,
    stop_when_event_set,
    wait_fixed,
)
from urllib3.exceptions import HTTPError

from constants import LEASE_DURATION, RENEW_DEADLINE, RETRY_PERIOD
from k8s_utils import k8s_is_conflict, k8s_is_not_found, k8s_retry_on_conflict

from .errors import LockError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_restore_lock_name(kind: str, name: str) -> str:
    """Return the name of the restore lock shared by every replica of a workload."""
    return f"lock-{kind}-{name}-restore".lower()


class LeaseMutex:
    """Mutual exclusion between the contenders of a workload, backed by a Lease."""

    def __init__(
        self,
        coordination_api: client.CoordinationV1Api,
        name: str,
        namespace: str,
        identity: str,
        lease_duration: float = LEASE_DURATION,
        renew_deadline: float = RENEW_DEADLINE,
        retry_period: float = RETRY_PERIOD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the LeaseMutex class.

        Args:
            coordination_api: The Kubernetes coordination API client.
            name: The name of the Lease.
            namespace: The namespace of the Lease.
            identity: The identity of this contender, written as the Lease holder.
            lease_duration: Seconds a holder keeps the lock without renewing it.
            renew_deadline: Seconds the holder keeps retrying a renewal before giving up.
            retry_period: Seconds between two acquisition or renewal attempts.
            clock: Monotonic clock used to observe changes of the Lease.
        """
        if not lease_duration > renew_deadline > retry_period > 0:
            raise ValueError("lease_duration > renew_deadline > retry_period > 0 is required")
        if not identity:
            raise ValueError("identity must not be empty")

        self._api = coordination_api
        self._name = name
        self._namespace = namespace
        self._identity = identity
        self._lease_duration = lease_duration
        self._renew_deadline = renew_deadline
        self._retry_period = retry_period
        self._clock = clock

        self._observed_record: Optional[Tuple] = None
        self._observed_time = 0.0
        self._held = False
        self._lost = threading.Event()
        self._stop = threading.Event()
        self._renewer: Optional[threading.Thread] = None

    # PROPERTIES

    @property
    def name(self) -> str:
        """Return the name of the Lease."""
        return self._name

    @property
    def identity(self) -> str:
        """Return the identity of this contender."""
        return self._identity

    @property
    def held(self) -> bool:
        """Whether this contender currently holds the lock."""
        return self._held

    @property
    def lost(self) -> bool:
        """Whether the lock was lost because it could not be renewed in time."""
        return self._lost.is_set()

    # METHODS

    def _lease_spec(
        self, acquire_time: datetime, renew_time: datetime, transitions: int
    ) -> client.V1LeaseSpec:
        return client.V1LeaseSpec(
            holder_identity=self._identity,
            lease_duration_seconds=math.ceil(self._lease_duration),
            acquire_time=acquire_time,
            renew_time=renew_time,
            lease_transitions=transitions,
        )

    def _observe(self, spec: client.V1LeaseSpec) -> None:
        """Record the local time at which the Lease was last seen changing."""
        record = (
            spec.holder_identity,
            spec.lease_duration_seconds,
            spec.acquire_time,
            spec.renew_time,
            spec.lease_transitions,
        )
        if record != self._observed_record:
            self._observed_record = record
            self._observed_time = self._clock()

    def _observed_expired(self, spec: client.V1LeaseSpec) -> bool:
        duration = spec.lease_duration_seconds or self._lease_duration
        return self._observed_time + duration <= self._clock()

    def try_acquire_or_renew(self) -> bool:
        """Try once to acquire the lock, or to renew it if already held.

        Returns:
            bool: True if this contender holds the lock after the attempt.

        Raises:
            LockError: If the Lease cannot be read or written for any reason
                other than a concurrent update.
        """
        now = datetime.now(timezone.utc)
        try:
            lease = self._api.read_namespaced_lease(self._name, self._namespace)
        except ApiException as ae:
            if not k8s_is_not_found(ae):
                raise LockError(f"Failed to read lock '{self._name}': {ae.reason}") from ae
            return self._create(now)
        except HTTPError as he:
            raise LockError(f"Failed to read lock '{self._name}': {he}") from he

        spec = lease.spec or client.V1LeaseSpec()
        self._observe(spec)
        holder = spec.holder_identity or ""
        if holder and holder != self._identity and not self._observed_expired(spec):
            logger.debug("Lock '%s' is held by '%s' and has not expired", self._name, holder)
            return False

        if holder == self._identity:
            acquire_time = spec.acquire_time or now
            transitions = spec.lease_transitions or 0
        else:
            acquire_time = now
            transitions = (spec.lease_transitions or 0) + 1
        lease.spec = self._lease_spec(acquire_time, now, transitions)

        try:
            self._api.replace_namespaced_lease(self._name, self._namespace, lease)
        except ApiException as ae:
            if k8s_is_conflict(ae):
                logger.debug("Lock '%s' was updated concurrently", self._name)
                return False
            raise LockError(f"Failed to update lock '{self._name}': {ae.reason}") from ae
        except HTTPError as he:
            raise LockError(f"Failed to update lock '{self._name}': {he}") from he

        self._observe(lease.spec)
        self._held = True
        return True

    def _create(self, now: datetime) -> bool:
        lease = client.V1Lease(
            metadata=client.V1ObjectMeta(name=self._name, namespace=self._namespace),
            spec=self._lease_spec(now, now, 0),
        )
        try:
            self._api.create_namespaced_lease(self._namespace, lease)
        except ApiException as ae:
            if k8s_is_conflict(ae):
                logger.debug("Lock '%s' was created concurrently", self._name)
                return False
            raise LockError(f"Failed to create lock '{self._name}': {ae.reason}") from ae
        except HTTPError as he:
            raise LockError(f"Failed to create lock '{self._name}': {he}") from he

        logger.info("Created lock '%s' in namespace '%s'", self._name, self._namespace)
        self._observe(lease.spec)
        self._held = True
        return True

    def acquire(self) -> None:
        """Block until this contender holds the lock.

        Every contender retries every retry period, there is no timeout.

        Raises:
            LockError: If the lock backend returns an unexpected error.
        """
        logger.info("Attempting to acquire lock '%s' as '%s'", self._name, self._identity)
        retrying = Retrying(
            wait=wait_fixed(self._retry_period),
            retry=retry_if_result(lambda acquired: not acquired),
        )
        retrying(self.try_acquire_or_renew)
        logger.info("Acquired lock '%s'", self._name)

    def _renew(self) -> bool:
        """Renew the lock, retrying until the renew deadline.

        Returns:
            bool: False if the lock could not be renewed before the deadline.
        """
        retrying = Retrying(
            stop=stop_after_delay(self._renew_deadline) | stop_when_event_set(self._stop),
            wait=wait_fixed(self._retry_period),
            retry=retry_if_result(lambda renewed: not renewed) | retry_if_exception_type(),
            sleep=self._stop.wait,
            retry_error_callback=lambda retry_state: False,
        )
        return retrying(self.try_acquire_or_renew)

    def _renew_loop(self, on_lost: Optional[Callable[[], None]]) -> None:
        while not self._stop.wait(self._retry_period):
            if self._renew():
                continue
            if self._stop.is_set():
                return
            logger.error(
                "Failed to renew lock '%s' within %s seconds, lost leadership",
                self._name,
                self._renew_deadline,
            )
            self._held = False
            self._lost.set()
            if on_lost is not None:
                on_lost()
            return

    def _start_renewing(self, on_lost: Optional[Callable[[], None]]) -> None:
        self._stop.clear()
        self._lost.clear()
        self._renewer = threading.Thread(
            target=self._renew_loop, args=(on_lost,), name="lease-renewer", daemon=True
        )
        self._renewer.start()

    def _stop_renewing(self) -> None:
        self._stop.set()
        if self._renewer is not None and self._renewer is not threading.current_thread():
            self._renewer.join()
        self._renewer = None

    def release(self) -> None:
        """Step down, so that the next contender can acquire the lock right away.

        Releasing a lock that is not held is a no-op. Failures are logged only, the
        Lease then expires after its lease duration.
        """
        self._stop_renewing()
        if not self._held:
            return

        def clear_holder() -> None:
            lease = self._api.read_namespaced_lease(self._name, self._namespace)
            if not lease.spec or lease.spec.holder_identity != self._identity:
                logger.warning("Lock '%s' is no longer held by '%s'", self._name, self._identity)
                return
            now = datetime.now(timezone.utc)
            lease.spec.holder_identity = ""
            lease.spec.lease_duration_seconds = 1
            lease.spec.acquire_time = now
            lease.spec.renew_time = now
            self._api.replace_namespaced_lease(self._name, self._namespace, lease)

        try:
            k8s_retry_on_conflict(clear_holder, delay=self._retry_period)
            logger.info("Released lock '%s'", self._name)
        except (ApiException, HTTPError) as e:
            logger.error(
                "Failed to release lock '%s', it expires in %s seconds: %s",
                self._name,
                self._lease_duration,
                e,
            )
        finally:
            self._held = False

    def run(self, on_acquired: Callable[[], T], on_lost: Optional[Callable[[], None]] = None) -> T:
        """Run a unit of work while holding the lock.

        The lock is renewed in the background while the work runs and released as soon as
        it completes, successfully or not.

        Args:
            on_acquired: The work to run once the lock is acquired.
            on_lost: Called from the renewal thread if the lock is lost.

        Returns:
            T: The value returned by on_acquired.

        Raises:
            LockError: If the lock cannot be acquired.
        """
        self.acquire()
        self._start_renewing(on_lost)
        try:
            return on_acquired()
        finally:
            self.release()
