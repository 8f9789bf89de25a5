"""Clone coordination and availability verification.

One asynchronous clone task covers the whole volume set (boot and data
together). The finished task's mapping is checked to be a bijection over the
submitted ids before it is split back into boot and data clones.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence

from pvs_clone_restore.domain import CloneTask, CloneTaskStatus, Volume, VolumeSet
from pvs_clone_restore.exceptions import (
    CloneMappingIncompleteError,
    CloneTaskFailedError,
    ControlPlaneError,
    PollTimeoutError,
    VolumeUnavailableError,
)
from pvs_clone_restore.logging import EventLogger, LoggerFactory
from pvs_clone_restore.powervs.ssh import DiskPreparation

from .polling import poll_until

log = LoggerFactory.for_workflow()


def submit_clone(
    client,
    volume_set: VolumeSet,
    prefix: str,
    *,
    storage_tier: Optional[str] = None,
    disk_prep: Optional[DiskPreparation] = None,
) -> str:
    """Submit one clone task for every volume in ``volume_set``.

    With disk preparation enabled the submission is bracketed by a suspend
    and a resume of the source disks. The resume runs even when the
    submission fails.

    Raises:
        CloneTaskFailedError: If the clone request is rejected
    """
    bracketed = disk_prep is not None and disk_prep.enabled
    if bracketed:
        disk_prep.suspend()
        log.info(f"  Waiting {disk_prep.settings.suspend_settle:g}s for suspend to settle...")
        time.sleep(disk_prep.settings.suspend_settle)

    submitted = False
    try:
        log.info("→ Submitting clone request...")
        log.info(f"  Clone prefix: {prefix}")
        if storage_tier:
            log.info(f"  Storage tier: {storage_tier}")
        try:
            task_id = client.submit_clone_task(volume_set.all_ids, prefix, storage_tier)
        except ControlPlaneError as error:
            raise CloneTaskFailedError(f"clone request rejected: {error}") from error
        submitted = True
    finally:
        if bracketed:
            if submitted:
                log.info(f"  Waiting {disk_prep.settings.resume_delay:g}s before resuming source disks...")
                time.sleep(disk_prep.settings.resume_delay)
            disk_prep.resume()

    EventLogger.log_clone_submitted(log, task_id, volume_set.all_ids, prefix)
    return task_id


def wait_for_clone_task(client, task_id: str, *, interval: float) -> CloneTask:
    """Poll the clone task until it completes. No upper bound.

    Raises:
        CloneTaskFailedError: If the task reaches ``failed``
    """
    log.info(f"→ Waiting for asynchronous clone task: {task_id}...")
    poll_log = LoggerFactory.for_poll(f"clone task {task_id}")

    def is_done(task: CloneTask) -> bool:
        if task.status is CloneTaskStatus.FAILED:
            raise CloneTaskFailedError("task reported failed", task_id)
        return task.status is CloneTaskStatus.COMPLETED

    def on_wait(task: CloneTask, elapsed: float) -> None:
        poll_log.info(f"  Clone task status: {task.status.value} - waiting {interval:g}s...")

    poll_until(
        lambda: client.get_clone_task(task_id),
        is_done,
        interval=interval,
        description=f"clone task {task_id}",
        on_wait=on_wait,
    )
    log.info("✓ Clone task completed successfully")
    # Re-read for the finished mapping.
    return client.get_clone_task(task_id)


def map_cloned_volumes(task: CloneTask, source: VolumeSet) -> VolumeSet:
    """Split a completed task's mapping into boot and data clones.

    Data clones keep the order the task reported them in.

    Raises:
        CloneMappingIncompleteError: If the mapping is not a bijection over
            the submitted ids or the boot clone is missing
    """
    submitted = set(source.all_ids)
    mapping: dict[str, str] = {}
    for entry in task.cloned_volumes:
        if not entry.source_id or not entry.clone_id:
            raise CloneMappingIncompleteError(task.task_id, "mapping entry without source or clone id")
        if entry.source_id not in submitted:
            raise CloneMappingIncompleteError(
                task.task_id, f"unexpected source volume {entry.source_id}"
            )
        if entry.source_id in mapping:
            raise CloneMappingIncompleteError(
                task.task_id, f"source volume {entry.source_id} mapped more than once"
            )
        mapping[entry.source_id] = entry.clone_id

    missing = [volume_id for volume_id in source.all_ids if volume_id not in mapping]
    if missing:
        raise CloneMappingIncompleteError(
            task.task_id, f"no clone for {', '.join(missing)}", missing
        )
    if len(set(mapping.values())) != len(mapping):
        raise CloneMappingIncompleteError(task.task_id, "clone ids are not distinct")

    boot_clone = mapping[source.boot_id]
    data_clones = tuple(
        entry.clone_id for entry in task.cloned_volumes if entry.source_id != source.boot_id
    )
    EventLogger.log_clone_completed(log, task.task_id, mapping)
    return VolumeSet(boot_id=boot_clone, data_ids=data_clones)


def wait_for_volume_available(
    client, volume_id: str, *, interval: float, timeout: Optional[float] = None
) -> Volume:
    """Poll one volume until its state is ``available``.

    ``timeout=None`` keeps waiting forever, including through ``error``.

    Raises:
        VolumeUnavailableError: If ``timeout`` elapses first
    """
    poll_log = LoggerFactory.for_poll(f"volume {volume_id}")
    last_state = {"state": "unknown"}

    def probe() -> Volume:
        volume = client.get_volume(volume_id)
        last_state["state"] = volume.state
        return volume

    def on_wait(volume: Volume, elapsed: float) -> None:
        poll_log.info(f"  Volume {volume_id} state: {volume.state} - waiting {interval:g}s...")

    try:
        return poll_until(
            probe,
            lambda volume: volume.is_available,
            interval=interval,
            timeout=timeout,
            description=f"volume {volume_id} to become available",
            on_wait=on_wait,
        )
    except PollTimeoutError as error:
        raise VolumeUnavailableError(volume_id, last_state["state"], error.elapsed) from error


def verify_volumes_available(
    client, volume_ids: Sequence[str], *, interval: float, timeout: Optional[float] = None
) -> None:
    """Wait for each volume in turn, boot first."""
    for volume_id in volume_ids:
        log.info(f"→ Waiting for volume {volume_id} to become available...")
        wait_for_volume_available(client, volume_id, interval=interval, timeout=timeout)
        log.info(f"  ✓ Volume {volume_id} is available")
