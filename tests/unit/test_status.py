# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from stash import StashClient, StatusSynchronizer, StatusUpdateError
from stash.crds import (
    HostRestorePhase,
    HostRestoreStatsModel,
    RestoreSessionPhase,
    RestoreSessionStatusModel,
)
from stash.eventer import EVENT_TYPE_NORMAL
from stash.status import merge_host_stats

from conftest import NAMESPACE, RESTORE_SESSION_NAME, restore_session_obj


def succeeded(hostname):
    return HostRestoreStatsModel(
        hostname=hostname, phase=HostRestorePhase.Succeeded, duration="1.000s"
    )


def failed(hostname, error="repository is already locked"):
    return HostRestoreStatsModel(hostname=hostname, phase=HostRestorePhase.Failed, error=error)


@pytest.mark.parametrize(
    "stats,host_stats,total_hosts,expected_phase",
    [
        ([], succeeded("host-0"), 1, RestoreSessionPhase.Succeeded),
        ([], succeeded("host-0"), 2, RestoreSessionPhase.Running),
        ([succeeded("host-1")], succeeded("host-0"), 2, RestoreSessionPhase.Succeeded),
        ([succeeded("host-1")], failed("host-0"), 2, RestoreSessionPhase.Failed),
        ([], failed("host-0"), 3, RestoreSessionPhase.Failed),
    ],
)
def test_merge_host_stats_phase(stats, host_stats, total_hosts, expected_phase):
    """Check the overall phase is aggregated from the host outcomes."""
    status = RestoreSessionStatusModel(stats=stats)

    merged = merge_host_stats(status, host_stats, total_hosts)

    assert merged.phase == expected_phase
    assert merged.totalHosts == total_hosts
    assert merged.host_stats(host_stats.hostname) == host_stats


def test_merge_host_stats_replaces_host_entry():
    """Check a host has a single entry in the status."""
    status = RestoreSessionStatusModel(
        phase=RestoreSessionPhase.Running, stats=[failed("host-0", "old")]
    )

    merged = merge_host_stats(status, succeeded("host-0"), 2)

    assert merged.stats == [succeeded("host-0")]
    assert merged.phase == RestoreSessionPhase.Running


@pytest.mark.parametrize("phase", [RestoreSessionPhase.Succeeded, RestoreSessionPhase.Failed])
def test_merge_host_stats_terminal(phase):
    """Check a terminal status is never changed."""
    status = RestoreSessionStatusModel(phase=phase, stats=[succeeded("host-1")])

    assert merge_host_stats(status, failed("host-0"), 2) is status


@pytest.fixture()
def stash_client(fake_custom_api):
    return StashClient(fake_custom_api, NAMESPACE)


@pytest.fixture()
def recorder():
    return MagicMock()


def new_synchronizer(stash_client, recorder=None, total_hosts=1, attempts=3, metrics=None):
    return StatusSynchronizer(
        stash_client,
        lambda rs: total_hosts,
        recorder,
        metrics=metrics,
        attempts=attempts,
        delay=0,
    )


def test_update_records_host(stash_client, fake_custom_api, recorder, caplog):
    """Check the host outcome is written to the status subresource."""
    synchronizer = new_synchronizer(stash_client, recorder, total_hosts=2)

    restore_session = synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))

    assert restore_session.phase == RestoreSessionPhase.Running
    obj = fake_custom_api.get("restoresessions", RESTORE_SESSION_NAME)
    assert obj["status"] == {
        "phase": "Running",
        "totalHosts": 2,
        "stats": [{"hostname": "host-0", "phase": "Succeeded", "duration": "1.000s"}],
    }
    recorder.record.assert_called_once()
    _, event_type, reason, message = recorder.record.call_args.args
    assert event_type == EVENT_TYPE_NORMAL
    assert reason == "HostRestoreSucceeded"
    assert "host-0" in message
    assert "Recorded host 'host-0' as Succeeded" in caplog.text


def test_update_last_host_succeeds(stash_client, fake_custom_api):
    """Check the RestoreSession succeeds once every expected host succeeded."""
    synchronizer = new_synchronizer(stash_client, total_hosts=2)

    synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))
    restore_session = synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-1"))

    assert restore_session.phase == RestoreSessionPhase.Succeeded
    assert [s.hostname for s in restore_session.status.stats] == ["host-0", "host-1"]


def test_update_failure_does_not_emit_success(stash_client, recorder):
    """Check a failed host fails the RestoreSession without a success event."""
    synchronizer = new_synchronizer(stash_client, recorder, total_hosts=2)

    restore_session = synchronizer.update(RESTORE_SESSION_NAME, failed("host-0"))

    assert restore_session.phase == RestoreSessionPhase.Failed
    assert restore_session.status.host_stats("host-0").error == "repository is already locked"
    recorder.record.assert_not_called()


def test_update_terminal_is_locked(stash_client, fake_custom_api, recorder, caplog):
    """Check a terminal RestoreSession is not updated any more."""
    fake_custom_api.add(
        "restoresessions",
        restore_session_obj(status={"phase": "Failed", "stats": [failed("host-1").model_dump()]}),
    )
    synchronizer = new_synchronizer(stash_client, recorder, total_hosts=2)

    restore_session = synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))

    assert restore_session.phase == RestoreSessionPhase.Failed
    assert restore_session.status.host_stats("host-0") is None
    assert fake_custom_api.status_writes == 0
    recorder.record.assert_not_called()
    assert "is already Failed" in caplog.text


def test_update_same_stats_is_noop(stash_client, fake_custom_api):
    """Check recording the same outcome twice writes the status once."""
    synchronizer = new_synchronizer(stash_client, total_hosts=2)

    synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))
    synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))

    assert fake_custom_api.status_writes == 1


def test_update_preserves_unknown_fields(stash_client, fake_custom_api):
    """Check status fields that are not modelled survive the update."""
    conditions = [{"type": "RepositoryFound", "status": "True"}]
    fake_custom_api.add(
        "restoresessions",
        restore_session_obj(status={"phase": "Running", "conditions": conditions}),
    )
    synchronizer = new_synchronizer(stash_client, total_hosts=2)

    synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))

    obj = fake_custom_api.get("restoresessions", RESTORE_SESSION_NAME)
    assert obj["status"]["conditions"] == conditions


def test_update_retries_on_conflict(stash_client, fake_custom_api, caplog):
    """Check a concurrent update is retried on the latest version."""
    fake_custom_api.conflicts = 2
    synchronizer = new_synchronizer(stash_client, total_hosts=1)

    restore_session = synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))

    assert restore_session.phase == RestoreSessionPhase.Succeeded
    assert fake_custom_api.status_writes == 1
    assert "Conflict while updating the resource" in caplog.text


def test_update_persistent_conflict(stash_client, fake_custom_api):
    """Check a conflict persisting after all attempts raises StatusUpdateError."""
    fake_custom_api.conflicts = 5
    synchronizer = new_synchronizer(stash_client, attempts=3)

    with pytest.raises(StatusUpdateError):
        synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))

    assert fake_custom_api.conflicts == 2


def test_update_api_error():
    """Check API errors other than conflicts are raised unchanged."""
    stash_client = MagicMock()
    stash_client.get_restore_session_object.side_effect = ApiException(
        status=403, reason="Forbidden"
    )
    synchronizer = new_synchronizer(stash_client)

    with pytest.raises(ApiException) as exc_info:
        synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))

    assert exc_info.value.status == 403
    stash_client.get_restore_session_object.assert_called_once()


def test_update_pushes_metrics(stash_client):
    """Check the metrics of a host are pushed once its outcome is recorded."""
    metrics = MagicMock()
    synchronizer = new_synchronizer(stash_client, total_hosts=2, metrics=metrics)

    restore_session = synchronizer.update(RESTORE_SESSION_NAME, failed("host-0"))

    metrics.push.assert_called_once_with(restore_session, failed("host-0"))


def test_update_terminal_does_not_push_metrics(stash_client, fake_custom_api):
    """Check no metrics are pushed for a host that was not recorded."""
    fake_custom_api.add("restoresessions", restore_session_obj(status={"phase": "Succeeded"}))
    metrics = MagicMock()
    synchronizer = new_synchronizer(stash_client, metrics=metrics)

    synchronizer.update(RESTORE_SESSION_NAME, succeeded("host-0"))

    metrics.push.assert_not_called()
