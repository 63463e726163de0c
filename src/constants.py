# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""File containing constants."""

from enum import Enum

RESTIC_BINARY_PATH = "/bin/restic"

STASH_GROUP = "stash.appscode.com"
RESTORE_SESSION_VERSION = "v1beta1"
RESTORE_SESSION_PLURAL = "restoresessions"
RESTORE_SESSION_KIND = "RestoreSession"
REPOSITORY_VERSION = "v1alpha1"
REPOSITORY_PLURAL = "repositories"

DEFAULT_SECRET_DIR = "/etc/stash/repository/secret"
DEFAULT_SCRATCH_DIR = "/tmp"
DEFAULT_METRICS_JOB = "stash-restore"
RESTIC_PASSWORD_KEY = "RESTIC_PASSWORD"

LEASE_DURATION = 15
RENEW_DEADLINE = 10
RETRY_PERIOD = 2

STATUS_UPDATE_ATTEMPTS = 10
STATUS_UPDATE_DELAY = 1

DEFAULT_HOST = "host-0"

KIND_STATEFULSET = "StatefulSet"
KIND_DAEMONSET = "DaemonSet"
KIND_PERSISTENT_VOLUME_CLAIM = "PersistentVolumeClaim"

EVENT_SOURCE_RESTORE_INIT_CONTAINER = "stash-restore-init-container"
EVENT_SOURCE_RESTORE_JOB = "stash-restore-job"
EVENT_REASON_HOST_RESTORE_SUCCEEDED = "HostRestoreSucceeded"
EVENT_REASON_HOST_RESTORE_FAILED = "HostRestoreFailed"


class RestoreModel(str, Enum):
    """How the restore process is run next to the workload."""

    INIT_CONTAINER = "init-container"
    JOB = "job"
