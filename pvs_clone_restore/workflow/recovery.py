"""Failure classification and recovery of cloned volumes.

Runs once after a failed pipeline. Only failures at or after attachment leave
cloned volumes on the target, so only those stages trigger recovery. The
default ``mark`` policy renames the clones with a trailing marker so an
operator can find them; the legacy ``delete`` policy detaches and deletes
them instead.
"""

from __future__ import annotations

import time
from typing import Optional

from pvs_clone_restore.domain import MARKING_STAGES, FailedStage, RecoveryPolicy, RunContext, VolumeSet
from pvs_clone_restore.exceptions import ControlPlaneError, PollTimeoutError
from pvs_clone_restore.logging import EventLogger, LoggerFactory
from pvs_clone_restore.report import banner, print_failure_summary

from .polling import poll_until

log = LoggerFactory.for_recovery()

DETACH_SETTLE = 30
DELETE_SETTLE = 5


def should_mark(stage: Optional[FailedStage]) -> bool:
    return stage in MARKING_STAGES


def marked_name(name: str, marker: str) -> str:
    """Append ``marker`` unless the name already ends with it."""
    return name if name.endswith(marker) else f"{name}{marker}"


def mark_volume(client, volume_id: str, marker: str) -> str:
    """Rename one volume with the failure marker and return its new name.

    Idempotent: a name already carrying the marker is left alone.
    """
    volume = client.get_volume(volume_id)
    new_name = marked_name(volume.name, marker)
    if new_name == volume.name:
        log.info(f"  Volume {volume_id} already marked: {volume.name}")
        return volume.name
    client.update_volume_name(volume_id, new_name)
    EventLogger.log_volume_marked(log, volume_id, volume.name, new_name)
    return new_name


def mark_cloned_volumes(client, volumes: VolumeSet, marker: str) -> list[str]:
    """Mark boot then data clones; a failed rename is a warning, not an abort."""
    marked = []
    for role, volume_id in [("boot", volumes.boot_id)] + [("data", v) for v in volumes.data_ids]:
        log.info(f"→ Marking {role} volume {volume_id} as FAILED...")
        try:
            mark_volume(client, volume_id, marker)
        except ControlPlaneError as error:
            log.warning(f"  ⚠ WARNING: Unable to mark volume {volume_id}: {error}")
            continue
        marked.append(volume_id)
    return marked


def _wait_for_detach(client, partition_id: str, *, interval: float, max_wait: float) -> bool:
    def attached_ids():
        try:
            return [volume.volume_id for volume in client.list_attached_volumes(partition_id)]
        except ControlPlaneError as error:
            log.warning(f"  ⚠ Unable to list attached volumes: {error}")
            return ["?"]

    time.sleep(DETACH_SETTLE)
    try:
        poll_until(
            attached_ids,
            lambda ids: not ids,
            interval=interval,
            # the settle above already counts towards the bound
            timeout=max(max_wait - DETACH_SETTLE, 0),
            description=f"volumes detached from {partition_id}",
        )
    except PollTimeoutError:
        log.warning(f"  ⚠ WARNING: Volumes still attached after {max_wait:g}s")
        log.warning("  ⚠ Proceeding with deletion anyway")
        return False
    log.info("✓ All volumes detached")
    return True


def delete_cloned_volumes(
    client,
    partition_id: Optional[str],
    volumes: VolumeSet,
    *,
    interval: float,
    max_detach_wait: float,
) -> list[str]:
    """Detach everything from the target, delete the clones, report survivors."""
    if partition_id:
        log.info("→ Requesting bulk detach of all volumes...")
        try:
            client.bulk_detach_all(partition_id)
        except ControlPlaneError as error:
            log.warning(f"  ⚠ WARNING: Bulk detach failed: {error}")
        _wait_for_detach(client, partition_id, interval=interval, max_wait=max_detach_wait)

    log.info("→ Deleting cloned volumes...")
    try:
        client.bulk_delete_volumes(volumes.all_ids)
    except ControlPlaneError as error:
        log.warning(f"  ⚠ WARNING: Bulk delete failed: {error}")

    log.info("→ Verifying volume deletion...")
    time.sleep(DELETE_SETTLE)
    survivors = []
    for volume_id in volumes.all_ids:
        try:
            exists = client.volume_exists(volume_id)
        except ControlPlaneError as error:
            log.warning(f"  ⚠ WARNING: Unable to verify deletion of {volume_id}: {error}")
            survivors.append(volume_id)
            continue
        if exists:
            log.warning(f"  ⚠ WARNING: Volume still exists - manual review required: {volume_id}")
            survivors.append(volume_id)
        else:
            log.info(f"✓ Volume deleted: {volume_id}")
    return survivors


def finalize_failure(
    client,
    ctx: RunContext,
    *,
    policy: RecoveryPolicy = RecoveryPolicy.MARK,
    marker: str = "__FAILED",
    poll_interval: float = 60,
    max_detach_wait: float = 240,
) -> bool:
    """Apply the recovery policy for a failed run.

    Returns True if recovery touched any volume. Never raises for control
    plane errors; everything here is best-effort.
    """
    if ctx.job_success:
        return False
    stage = ctx.failed_stage or FailedStage.UNKNOWN

    banner("JOB FAILED - PRESERVING RECOVERY ARTIFACTS", log)
    log.error(f"Failure detected at stage: {stage.value}")

    acted = False
    if policy is RecoveryPolicy.DELETE:
        if ctx.cloned_volumes is None:
            log.info("No cloned volumes recorded - nothing to delete")
        else:
            delete_cloned_volumes(
                client,
                ctx.target_id,
                ctx.cloned_volumes,
                interval=poll_interval,
                max_detach_wait=max_detach_wait,
            )
            acted = True
    elif not should_mark(stage):
        log.info("Failure stage does not require volume marking - skipping")
    elif ctx.cloned_volumes is None:
        log.info("No cloned volumes recorded - nothing to mark")
    else:
        ctx.marked_volumes = mark_cloned_volumes(client, ctx.cloned_volumes, marker)
        acted = bool(ctx.marked_volumes)

    print_failure_summary(ctx, marker, marked=bool(ctx.marked_volumes))
    return acted
