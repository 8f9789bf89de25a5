"""Domain model for PowerVS clone-and-restore runs.

Type-safe objects for the JSON payloads returned by the ``ibmcloud pi`` CLI,
plus the per-run ``RunContext`` that every workflow stage reads and updates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ==============================================================================
# Enumerations
# ==============================================================================


class PartitionStatus(str, Enum):
    """Known partition (LPAR) states.

    The control plane reports more states than these; anything unrecognised
    is carried through as a plain string.
    """

    UNKNOWN = "UNKNOWN"
    BUILD = "BUILD"
    STARTING = "STARTING"
    ACTIVE = "ACTIVE"
    SHUTOFF = "SHUTOFF"
    ERROR = "ERROR"


class CloneTaskStatus(Enum):
    """Status of an asynchronous clone task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: str | None) -> CloneTaskStatus:
        """Map a raw status string onto the enum; unknown values are pending."""
        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self in (CloneTaskStatus.COMPLETED, CloneTaskStatus.FAILED)


class FailedStage(Enum):
    """Pipeline stage a run failed in.

    Only ``MARKING_STAGES`` leave cloned volumes attached to the target, so
    only those trigger the recovery marker.
    """

    UNKNOWN = "UNKNOWN_STAGE"
    CONFIGURATION = "CONFIGURATION"
    TARGET_LOCK = "TARGET_LOCK"
    AUTHENTICATION = "AUTHENTICATION"
    TARGET_LOOKUP = "TARGET_LOOKUP"
    SNAPSHOT = "SNAPSHOT"
    VOLUME_IDENTIFICATION = "VOLUME_IDENTIFICATION"
    CLONE = "CLONE"
    VOLUME_AVAILABILITY = "VOLUME_AVAILABILITY"
    ATTACH_VOLUME = "ATTACH_VOLUME"
    BOOT_CONFIG = "BOOT_CONFIG"
    STARTUP = "STARTUP"
    FINAL_STATUS_CHECK = "FINAL_STATUS_CHECK"


MARKING_STAGES = frozenset(
    {
        FailedStage.ATTACH_VOLUME,
        FailedStage.BOOT_CONFIG,
        FailedStage.STARTUP,
        FailedStage.FINAL_STATUS_CHECK,
    }
)


class SourceMode(Enum):
    """Where the source volume set comes from."""

    VOLUMES = "volumes"  # volumes attached to the running source partition
    SNAPSHOT = "snapshot"  # volumes captured in a fresh partition snapshot


class RecoveryPolicy(Enum):
    """What to do with cloned volumes after a failed run."""

    MARK = "mark"  # rename with the failure marker, keep for the operator
    DELETE = "delete"  # bulk-detach and bulk-delete (legacy behaviour)


# ==============================================================================
# Control plane entities
# ==============================================================================


def _first(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


@dataclass(frozen=True)
class Partition:
    """A compute partition (LPAR) in the workspace."""

    partition_id: str
    name: str
    status: str = PartitionStatus.UNKNOWN.value

    @property
    def is_active(self) -> bool:
        return self.status == PartitionStatus.ACTIVE.value

    @property
    def is_error(self) -> bool:
        return self.status == PartitionStatus.ERROR.value

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> Partition:
        """Build from an ``instance get``/``instance list`` entry.

        Raises:
            KeyError: If the payload carries no instance id
        """
        partition_id = _first(payload, "pvmInstanceID", "id")
        if partition_id is None:
            raise KeyError("pvmInstanceID")
        status = _first(payload, "status") or PartitionStatus.UNKNOWN.value
        return cls(
            partition_id=str(partition_id),
            name=str(payload.get("serverName") or payload.get("name") or ""),
            status=str(status).upper(),
        )


@dataclass(frozen=True)
class AttachedVolume:
    """One entry of a partition's attached-volume list."""

    volume_id: str
    bootable: bool
    name: str = ""

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> AttachedVolume:
        # ``bootVolume`` marks the partition's boot disk; older payloads and
        # snapshot entries only carry ``bootable``.
        if "bootVolume" in payload:
            bootable = payload.get("bootVolume") is True
        else:
            bootable = payload.get("bootable") is True
        return cls(
            volume_id=str(_first(payload, "volumeID", "id") or ""),
            bootable=bootable,
            name=str(payload.get("name") or ""),
        )


@dataclass(frozen=True)
class Volume:
    """A block storage volume as reported by ``volume get``."""

    volume_id: str
    name: str
    state: str
    bootable: bool = False

    @property
    def is_available(self) -> bool:
        return self.state.strip().lower() == "available"

    def has_marker(self, marker: str) -> bool:
        return self.name.endswith(marker)

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> Volume:
        return cls(
            volume_id=str(_first(payload, "volumeID", "id") or ""),
            name=str(payload.get("name") or ""),
            state=str(payload.get("state") or "unknown"),
            bootable=payload.get("bootable") is True,
        )


@dataclass(frozen=True)
class ClonedVolume:
    """One source -> clone pair from a finished clone task."""

    source_id: str
    clone_id: str

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> ClonedVolume:
        return cls(
            source_id=str(_first(payload, "sourceVolumeID", "sourceVolume") or ""),
            clone_id=str(_first(payload, "clonedVolumeID", "clonedVolume") or ""),
        )


@dataclass(frozen=True)
class CloneTask:
    """Asynchronous clone task and, once completed, its volume mapping."""

    task_id: str
    status: CloneTaskStatus
    cloned_volumes: tuple[ClonedVolume, ...] = ()

    @classmethod
    def from_json(cls, task_id: str, payload: dict[str, Any]) -> CloneTask:
        entries = payload.get("clonedVolumes") or []
        return cls(
            task_id=task_id,
            status=CloneTaskStatus.parse(payload.get("status")),
            cloned_volumes=tuple(
                ClonedVolume.from_json(entry)
                for entry in entries
                if isinstance(entry, dict)
            ),
        )


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time snapshot of a partition's volumes."""

    snapshot_id: str
    status: str
    volumes: tuple[AttachedVolume, ...] = ()

    @property
    def normalized_status(self) -> str:
        return self.status.strip().lower()

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> Snapshot:
        entries = payload.get("volumeSnapshots") or []
        return cls(
            snapshot_id=str(_first(payload, "snapshotID", "id") or ""),
            status=str(payload.get("status") or "unknown"),
            volumes=tuple(
                AttachedVolume.from_json(entry)
                for entry in entries
                if isinstance(entry, dict) and _first(entry, "volumeID", "id")
            ),
        )


# ==============================================================================
# Workflow values
# ==============================================================================


@dataclass(frozen=True)
class VolumeSet:
    """A classified volume set: exactly one boot volume plus ordered data volumes."""

    boot_id: str
    data_ids: tuple[str, ...] = ()

    @property
    def all_ids(self) -> tuple[str, ...]:
        """Boot first, then data, in order."""
        return (self.boot_id, *self.data_ids)

    def __len__(self) -> int:
        return 1 + len(self.data_ids)


@dataclass
class RunContext:
    """State accumulated by one orchestration run.

    Stages fill in ids as they succeed. ``failed_stage`` and ``job_success``
    drive the finalizer that runs after the pipeline.
    """

    source_name: str
    target_name: str
    clone_prefix: str
    source_id: str | None = None
    target_id: str | None = None
    source_volumes: VolumeSet | None = None
    cloned_volumes: VolumeSet | None = None
    clone_task_id: str | None = None
    snapshot_id: str | None = None
    resumed: bool = False
    current_stage: FailedStage = FailedStage.UNKNOWN
    failed_stage: FailedStage | None = None
    failure_reason: str | None = None
    final_status: str | None = None
    job_success: bool = False
    marked_volumes: list[str] = field(default_factory=list)

    @property
    def clone_boot_id(self) -> str | None:
        return self.cloned_volumes.boot_id if self.cloned_volumes else None

    @property
    def clone_data_ids(self) -> tuple[str, ...]:
        return self.cloned_volumes.data_ids if self.cloned_volumes else ()

    def record_failure(self, stage: FailedStage, reason: str) -> None:
        """Record the first failure only; later errors keep the original tag."""
        if self.failed_stage is None:
            self.failed_stage = stage
            self.failure_reason = reason
