"""Tests for domain models.

Covers parsing of the ``ibmcloud pi`` JSON payloads into domain objects and
the bookkeeping done by ``RunContext``.
"""
from __future__ import annotations

import pytest

from pvs_clone_restore.domain import (
    MARKING_STAGES,
    AttachedVolume,
    ClonedVolume,
    CloneTask,
    CloneTaskStatus,
    FailedStage,
    Partition,
    RunContext,
    Snapshot,
    Volume,
    VolumeSet,
)


# ==============================================================================
# Partition Tests
# ==============================================================================


class TestPartition:
    """Test Partition parsing."""

    def test_from_instance_get_payload(self):
        partition = Partition.from_json(
            {"pvmInstanceID": "abc", "serverName": "lpar-dr", "status": "active"}
        )

        assert partition.partition_id == "abc"
        assert partition.name == "lpar-dr"
        assert partition.status == "ACTIVE"
        assert partition.is_active
        assert not partition.is_error

    def test_from_instance_list_entry(self):
        partition = Partition.from_json({"id": "xyz", "name": "lpar-prod"})

        assert partition.partition_id == "xyz"
        assert partition.name == "lpar-prod"
        assert partition.status == "UNKNOWN"

    def test_error_status(self):
        assert Partition("p", "n", "ERROR").is_error

    def test_missing_id_raises_key_error(self):
        with pytest.raises(KeyError):
            Partition.from_json({"name": "no-id"})


# ==============================================================================
# Volume Tests
# ==============================================================================


class TestAttachedVolume:
    def test_boot_volume_flag_takes_precedence(self):
        volume = AttachedVolume.from_json(
            {"volumeID": "v1", "bootVolume": False, "bootable": True}
        )

        assert volume.bootable is False

    def test_falls_back_to_bootable(self):
        volume = AttachedVolume.from_json({"volumeID": "v1", "bootable": True})

        assert volume.bootable is True

    def test_missing_flags_mean_data_volume(self):
        assert AttachedVolume.from_json({"volumeID": "v1"}).bootable is False


class TestVolume:
    @pytest.mark.parametrize("state", ["available", "AVAILABLE", " Available "])
    def test_available_is_case_insensitive(self, state):
        assert Volume("v", "n", state).is_available

    def test_creating_is_not_available(self):
        assert not Volume("v", "n", "creating").is_available

    def test_has_marker(self):
        assert Volume("v", "boot-1__FAILED", "available").has_marker("__FAILED")
        assert not Volume("v", "boot-1", "available").has_marker("__FAILED")

    def test_from_json_defaults(self):
        volume = Volume.from_json({"volumeID": "v1"})

        assert volume.name == ""
        assert volume.state == "unknown"


# ==============================================================================
# Clone Task Tests
# ==============================================================================


class TestCloneTaskStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("completed", CloneTaskStatus.COMPLETED),
            ("FAILED", CloneTaskStatus.FAILED),
            ("running", CloneTaskStatus.RUNNING),
            ("queued", CloneTaskStatus.PENDING),
            (None, CloneTaskStatus.PENDING),
        ],
    )
    def test_parse(self, raw, expected):
        assert CloneTaskStatus.parse(raw) is expected

    def test_terminal_states(self):
        assert CloneTaskStatus.COMPLETED.is_terminal
        assert CloneTaskStatus.FAILED.is_terminal
        assert not CloneTaskStatus.RUNNING.is_terminal


class TestCloneTask:
    def test_mapping_with_id_suffixed_keys(self):
        task = CloneTask.from_json(
            "t1",
            {
                "status": "completed",
                "clonedVolumes": [
                    {"sourceVolumeID": "s1", "clonedVolumeID": "c1"},
                    {"sourceVolumeID": "s2", "clonedVolumeID": "c2"},
                ],
            },
        )

        assert task.status is CloneTaskStatus.COMPLETED
        assert task.cloned_volumes == (ClonedVolume("s1", "c1"), ClonedVolume("s2", "c2"))

    def test_mapping_with_short_keys(self):
        task = CloneTask.from_json(
            "t1", {"status": "completed", "clonedVolumes": [{"sourceVolume": "s1", "clonedVolume": "c1"}]}
        )

        assert task.cloned_volumes == (ClonedVolume("s1", "c1"),)

    def test_pending_task_has_no_mapping(self):
        task = CloneTask.from_json("t1", {"status": "running"})

        assert task.cloned_volumes == ()


class TestSnapshot:
    def test_volume_snapshots_parsed(self):
        snapshot = Snapshot.from_json(
            {
                "snapshotID": "snap-1",
                "status": "Available",
                "volumeSnapshots": [
                    {"volumeID": "b", "bootable": True},
                    {"volumeID": "d", "bootable": False},
                    {"bootable": False},
                ],
            }
        )

        assert snapshot.normalized_status == "available"
        assert [v.volume_id for v in snapshot.volumes] == ["b", "d"]
        assert snapshot.volumes[0].bootable


# ==============================================================================
# Workflow values
# ==============================================================================


class TestVolumeSet:
    def test_all_ids_boot_first(self):
        volume_set = VolumeSet("b", ("d1", "d2"))

        assert volume_set.all_ids == ("b", "d1", "d2")
        assert len(volume_set) == 3

    def test_boot_only(self):
        assert VolumeSet("b").all_ids == ("b",)


class TestRunContext:
    def test_record_failure_keeps_first_stage(self):
        ctx = RunContext("src", "tgt", "prefix")

        ctx.record_failure(FailedStage.ATTACH_VOLUME, "first")
        ctx.record_failure(FailedStage.STARTUP, "second")

        assert ctx.failed_stage is FailedStage.ATTACH_VOLUME
        assert ctx.failure_reason == "first"

    def test_clone_ids_empty_before_clone(self):
        ctx = RunContext("src", "tgt", "prefix")

        assert ctx.clone_boot_id is None
        assert ctx.clone_data_ids == ()

    def test_clone_ids_from_cloned_volumes(self):
        ctx = RunContext("src", "tgt", "prefix", cloned_volumes=VolumeSet("b", ("d",)))

        assert ctx.clone_boot_id == "b"
        assert ctx.clone_data_ids == ("d",)


def test_marking_stages_are_attach_and_later():
    assert MARKING_STAGES == {
        FailedStage.ATTACH_VOLUME,
        FailedStage.BOOT_CONFIG,
        FailedStage.STARTUP,
        FailedStage.FINAL_STATUS_CHECK,
    }
    assert FailedStage.UNKNOWN.value == "UNKNOWN_STAGE"
