"""Tests for the attachment stage."""
import pytest

from pvs_clone_restore.domain import AttachedVolume, VolumeSet
from pvs_clone_restore.exceptions import AttachTimeoutError, CommandFailedError
from pvs_clone_restore.workflow.attachment import attach_and_confirm, wait_for_attachment

from conftest import TARGET_ID

CLONES = VolumeSet("c-boot", ("c-data-1", "c-data-2"))


def _attach(control_plane, volumes=CLONES, **overrides):
    options = dict(initial_wait=60, interval=60, max_wait=1800, post_attach_pause=180)
    options.update(overrides)
    attach_and_confirm(control_plane, TARGET_ID, volumes, **options)


def test_attach_boot_and_data_in_one_call(control_plane, no_sleep):
    _attach(control_plane)

    assert control_plane.called("attach_volumes") == [
        (TARGET_ID, "c-boot", ("c-data-1", "c-data-2"))
    ]
    # settle, then post-attach pause; confirmed on the first poll
    assert [c.args[0] for c in no_sleep.call_args_list] == [60, 180]


def test_attach_boot_only(control_plane):
    _attach(control_plane, VolumeSet("c-boot"))

    assert control_plane.called("attach_volumes") == [(TARGET_ID, "c-boot", ())]


def test_rejected_attach_is_attach_failure(control_plane):
    control_plane.fail_next("attach_volumes", CommandFailedError("attach", 1, "busy"))

    with pytest.raises(AttachTimeoutError, match="busy"):
        _attach(control_plane, VolumeSet("c-boot"))


def test_partial_visibility_is_not_success(control_plane, no_sleep):
    control_plane.hidden_after_attach = {"c-data-2"}

    with pytest.raises(AttachTimeoutError) as excinfo:
        _attach(control_plane, max_wait=300)

    assert excinfo.value.missing == ["c-data-2"]
    # probes at 0, 60, ..., 300
    assert len(control_plane.called("list_attached_volumes")) == 6


def test_requires_all_ids_simultaneously(control_plane):
    snapshots = iter(
        [
            [AttachedVolume("c-boot", True), AttachedVolume("c-data-1", False)],
            [AttachedVolume("c-data-1", False), AttachedVolume("c-data-2", False)],
            [
                AttachedVolume("c-boot", True),
                AttachedVolume("c-data-1", False),
                AttachedVolume("c-data-2", False),
            ],
        ]
    )

    def list_attached(partition_id):
        control_plane.calls.append(("list_attached_volumes", (partition_id,)))
        return next(snapshots)

    control_plane.list_attached_volumes = list_attached

    wait_for_attachment(control_plane, TARGET_ID, CLONES, interval=60, max_wait=1800)

    assert len(control_plane.called("list_attached_volumes")) == 3


def test_list_failure_counts_as_not_yet(control_plane):
    control_plane.attached[TARGET_ID] = [
        AttachedVolume("c-boot", True),
        AttachedVolume("c-data-1", False),
        AttachedVolume("c-data-2", False),
    ]
    control_plane.fail_next("list_attached_volumes", CommandFailedError("list", 1, "timeout"))

    wait_for_attachment(control_plane, TARGET_ID, CLONES, interval=60, max_wait=1800)

    assert len(control_plane.called("list_attached_volumes")) == 2
