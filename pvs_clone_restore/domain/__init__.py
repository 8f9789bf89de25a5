"""Domain models for PowerVS clone-and-restore runs.

This package contains type-safe domain objects for the control-plane payloads
and the per-run context threaded through the workflow stages.
"""

from __future__ import annotations

from .models import (
    MARKING_STAGES,
    AttachedVolume,
    ClonedVolume,
    CloneTask,
    CloneTaskStatus,
    FailedStage,
    Partition,
    PartitionStatus,
    RecoveryPolicy,
    RunContext,
    Snapshot,
    SourceMode,
    Volume,
    VolumeSet,
)


__all__ = [
    "MARKING_STAGES",
    "AttachedVolume",
    "ClonedVolume",
    "CloneTask",
    "CloneTaskStatus",
    "FailedStage",
    "Partition",
    "PartitionStatus",
    "RecoveryPolicy",
    "RunContext",
    "Snapshot",
    "SourceMode",
    "Volume",
    "VolumeSet",
]
