"""Snapshot source mode: take a fresh snapshot and clone its volumes."""

from __future__ import annotations

from pvs_clone_restore.domain import Snapshot, VolumeSet
from pvs_clone_restore.exceptions import ControlPlaneError, SnapshotFailedError
from pvs_clone_restore.logging import LoggerFactory

from .polling import poll_until
from .volumes import classify_volumes, log_volume_set

log = LoggerFactory.for_workflow()


def create_source_snapshot(client, source_name: str, snapshot_name: str, *, poll_interval: float) -> Snapshot:
    """Create a snapshot of the source partition and wait until it is available.

    The wait has no bound; a snapshot in ``error`` state fails at once. The
    snapshot itself is never deleted.

    Raises:
        SnapshotFailedError: If creation is rejected or the snapshot errors
    """
    log.info(f"→ Creating snapshot {snapshot_name} of {source_name}...")
    try:
        snapshot_id = client.create_snapshot(source_name, snapshot_name)
    except ControlPlaneError as error:
        raise SnapshotFailedError(str(error)) from error
    log.info(f"✓ Snapshot requested: {snapshot_id}")

    poll_log = LoggerFactory.for_poll(f"snapshot {snapshot_id}")

    def is_done(snapshot: Snapshot) -> bool:
        status = snapshot.normalized_status
        if status == "error":
            raise SnapshotFailedError("snapshot entered ERROR state", snapshot_id)
        return status == "available"

    def on_wait(snapshot: Snapshot, elapsed: float) -> None:
        poll_log.debug(f"  Snapshot status: {snapshot.status} (elapsed {elapsed:g}s)")

    snapshot = poll_until(
        lambda: client.get_snapshot(snapshot_id),
        is_done,
        interval=poll_interval,
        description=f"snapshot {snapshot_id}",
        on_wait=on_wait,
    )
    log.info(f"✓ Snapshot {snapshot_id} is available")
    return snapshot


def snapshot_volume_set(snapshot: Snapshot) -> VolumeSet:
    """Classify the volumes captured in a snapshot.

    Raises:
        SnapshotFailedError: If the snapshot lists no volumes
        NoBootVolumeError: If none of them is bootable
    """
    if not snapshot.volumes:
        raise SnapshotFailedError("no volumes found in snapshot", snapshot.snapshot_id)
    volume_set = classify_volumes(snapshot.volumes, f"snapshot {snapshot.snapshot_id}")
    log_volume_set(volume_set)
    return volume_set
