"""Attach cloned volumes to the target and confirm they are visible."""

from __future__ import annotations

import time

from pvs_clone_restore.domain import VolumeSet
from pvs_clone_restore.exceptions import AttachTimeoutError, ControlPlaneError, PollTimeoutError
from pvs_clone_restore.logging import LoggerFactory

from .polling import poll_until

log = LoggerFactory.for_workflow()


def attach_volumes(client, partition_id: str, volumes: VolumeSet) -> None:
    """Issue the attach request: boot + data in one call, or boot only.

    Raises:
        AttachTimeoutError: If the control plane rejects the request
    """
    if volumes.data_ids:
        log.info("  Attaching boot + data volumes...")
    else:
        log.info("  Attaching boot volume only...")
    try:
        client.attach_volumes(partition_id, volumes.boot_id, volumes.data_ids)
    except ControlPlaneError as error:
        raise AttachTimeoutError(partition_id, f"attach request rejected: {error}") from error
    log.info("✓ Attachment request accepted")


def _attached_ids(client, partition_id: str) -> set[str]:
    try:
        return {volume.volume_id for volume in client.list_attached_volumes(partition_id)}
    except ControlPlaneError as error:
        # Listing can fail while the attach is in flight; count it as "not yet".
        log.warning(f"  ⚠ Unable to list attached volumes: {error}")
        return set()


def wait_for_attachment(
    client,
    partition_id: str,
    volumes: VolumeSet,
    *,
    interval: float,
    max_wait: float,
) -> None:
    """Poll until the boot id and every data id are attached at the same time.

    Raises:
        AttachTimeoutError: If not all ids are visible within ``max_wait``
    """
    expected = set(volumes.all_ids)
    poll_log = LoggerFactory.for_poll(f"attach {partition_id}")
    last_seen: dict[str, set[str]] = {"ids": set()}

    def probe() -> set[str]:
        last_seen["ids"] = _attached_ids(client, partition_id)
        return last_seen["ids"]

    def on_wait(_ids: set[str], elapsed: float) -> None:
        poll_log.info(f"  Volumes not fully visible yet - checking again in {interval:g}s...")

    log.info("→ Polling for volume attachment confirmation...")
    try:
        poll_until(
            probe,
            lambda ids: expected <= ids,
            interval=interval,
            timeout=max_wait,
            description=f"volumes attached to {partition_id}",
            on_wait=on_wait,
        )
    except PollTimeoutError as error:
        missing = [volume_id for volume_id in volumes.all_ids if volume_id not in last_seen["ids"]]
        raise AttachTimeoutError(
            partition_id, f"volumes not attached after {max_wait:g}s", missing
        ) from error
    log.info("✓ All volumes confirmed attached")


def attach_and_confirm(
    client,
    partition_id: str,
    volumes: VolumeSet,
    *,
    initial_wait: float,
    interval: float,
    max_wait: float,
    post_attach_pause: float = 0,
) -> None:
    """Attach, settle, confirm, then pause before handing over to boot."""
    attach_volumes(client, partition_id, volumes)
    log.info(f"→ Waiting {initial_wait:g}s for backend stabilization...")
    time.sleep(initial_wait)
    wait_for_attachment(client, partition_id, volumes, interval=interval, max_wait=max_wait)
    if post_attach_pause:
        log.info(f"Pausing {post_attach_pause:g} seconds to allow logs to sync...")
        time.sleep(post_attach_pause)
