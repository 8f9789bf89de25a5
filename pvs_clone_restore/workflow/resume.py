"""Target resolution and the resume guard.

A target that already has a bootable volume attached is the leftover of an
interrupted run: its volumes were cloned and attached but never booted. Such a
run resumes at the boot stage with the attached ids instead of cloning again.
"""

from __future__ import annotations

from typing import Optional

from pvs_clone_restore.domain import VolumeSet
from pvs_clone_restore.exceptions import (
    ControlPlaneError,
    PartitionNotFoundError,
    TargetResolutionError,
)
from pvs_clone_restore.logging import LoggerFactory

from .volumes import classify_volumes, log_volume_set

log = LoggerFactory.for_workflow()


def resolve_target(client, target_name: str) -> str:
    """Look up the target partition id by name.

    Raises:
        TargetResolutionError: If the partition is missing or the lookup fails
    """
    log.info(f"→ Resolving target partition: {target_name}")
    try:
        target_id = client.find_partition_id(target_name)
    except PartitionNotFoundError as error:
        log.error(f"✗ Target partition '{target_name}' not found in workspace")
        if error.available:
            log.info("Available instances in workspace:")
            for entry in error.available:
                log.info(f"  - {entry}")
        raise TargetResolutionError(target_name, "not found in workspace") from error
    except ControlPlaneError as error:
        raise TargetResolutionError(target_name, str(error)) from error
    log.info(f"✓ Target partition ID: {target_id}")
    return target_id


def check_resume(client, target_id: str, target_name: Optional[str] = None) -> Optional[VolumeSet]:
    """Return the already-attached volume set if the run should resume at boot.

    Returns ``None`` when the target has no bootable volume attached, i.e. a
    fresh run.

    Raises:
        TargetResolutionError: If the attached volumes cannot be listed
    """
    log.info("→ Checking attached volumes on target partition...")
    try:
        attached = client.list_attached_volumes(target_id)
    except ControlPlaneError as error:
        raise TargetResolutionError(target_name or target_id, str(error)) from error

    bootable = [volume for volume in attached if volume.bootable]
    log.info(f"  Total attached volumes: {len(attached)}")
    log.info(f"  Bootable volumes       : {len(bootable)}")
    if not bootable:
        return None

    log.warning("⚠ Boot volume already attached - skipping clone/attach stages")
    log.info("→ Resume mode: capturing existing attached volumes...")
    volume_set = classify_volumes(attached, target_id)
    log_volume_set(volume_set, label="Attached Volumes")
    return volume_set
