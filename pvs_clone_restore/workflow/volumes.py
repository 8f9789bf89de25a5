"""Volume identification: split a volume list into boot + ordered data ids."""

from __future__ import annotations

from typing import Iterable

from pvs_clone_restore.domain import AttachedVolume, VolumeSet
from pvs_clone_restore.exceptions import NoBootVolumeError
from pvs_clone_restore.logging import LoggerFactory

log = LoggerFactory.for_workflow()


def classify_volumes(volumes: Iterable[AttachedVolume], source: str) -> VolumeSet:
    """Pick the first bootable volume as boot; everything else is data.

    Data order follows the input order. Repeated ids are dropped so no id
    ends up in both sets.

    Raises:
        NoBootVolumeError: If no volume is flagged bootable
    """
    entries = list(volumes)
    boot_id = next((volume.volume_id for volume in entries if volume.bootable), None)
    if boot_id is None:
        raise NoBootVolumeError(source)
    seen = {boot_id}
    data_ids = []
    for volume in entries:
        if volume.volume_id in seen:
            continue
        seen.add(volume.volume_id)
        data_ids.append(volume.volume_id)
    return VolumeSet(boot_id=boot_id, data_ids=tuple(data_ids))


def resolve_source_id(client, source_instance_id: str | None, source_name: str | None) -> str:
    if source_instance_id:
        return source_instance_id
    log.info(f"→ Resolving source partition: {source_name}")
    return client.find_partition_id(source_name)


def identify_source_volumes(client, partition_id: str) -> VolumeSet:
    """Classify the volumes currently attached to the source partition."""
    log.info(f"→ Retrieving attached volumes for source partition {partition_id}...")
    volume_set = classify_volumes(client.list_attached_volumes(partition_id), partition_id)
    log_volume_set(volume_set)
    return volume_set


def log_volume_set(volume_set: VolumeSet, label: str = "Volume Classification") -> None:
    data = ", ".join(volume_set.data_ids) or "None"
    log.info(f"  {label}:")
    log.info(f"  ├─ Boot Volume:  {volume_set.boot_id}")
    log.info(f"  └─ Data Volumes: {data}")
