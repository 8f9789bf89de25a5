"""Custom exceptions for clone-and-restore runs.

This module defines a hierarchy of exceptions so callers can tell control
plane failures, lookups that came back empty, and stage failures apart.
Every ``StageFailure`` carries the ``FailedStage`` it belongs to; the
finalizer reads that tag to decide whether cloned volumes need marking.

Exception Hierarchy:
    CloneRestoreError (base)
        ├── ControlPlaneError
        │   ├── CommandFailedError
        │   └── MalformedResponseError
        ├── ResourceLookupError
        │   ├── PartitionNotFoundError
        │   └── VolumeNotFoundError
        ├── PollTimeoutError
        ├── TargetBusyError
        └── StageFailure
            ├── ConfigurationError
            ├── AuthenticationError
            ├── TargetResolutionError
            ├── SnapshotFailedError
            ├── NoBootVolumeError
            ├── CloneTaskFailedError
            ├── CloneMappingIncompleteError
            ├── VolumeUnavailableError
            ├── AttachTimeoutError
            ├── BootConfigError
            ├── StartupError
            └── FinalStatusError

Usage:
    from pvs_clone_restore.exceptions import NoBootVolumeError

    if boot is None:
        raise NoBootVolumeError(partition_id)
"""

from __future__ import annotations

from typing import Iterable, Sequence

from pvs_clone_restore.domain import FailedStage


class CloneRestoreError(Exception):
    """Base exception for all clone-and-restore errors."""



class ControlPlaneError(CloneRestoreError):
    """Base exception for failed control plane (``ibmcloud``) calls."""



class CommandFailedError(ControlPlaneError):
    """A CLI command exited non-zero.

    ``error_kind`` holds a structured error code when the CLI printed a JSON
    error body; otherwise it is ``None`` and only ``output`` is available.
    """

    def __init__(
        self,
        command: str,
        returncode: int,
        output: str = "",
        error_kind: str | None = None,
    ):
        self.command = command
        self.returncode = returncode
        self.output = output
        self.error_kind = error_kind
        message = output.strip() or "Command failed"
        super().__init__(f"Command failed ({command}): {message}")


class MalformedResponseError(ControlPlaneError):
    """A CLI command succeeded but its output could not be used."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Unexpected response from ({command}): {reason}")


class ResourceLookupError(CloneRestoreError):
    """Base exception for resources that could not be found."""



class PartitionNotFoundError(ResourceLookupError):
    """No partition with the requested name exists in the workspace."""

    def __init__(self, name: str, available: Iterable[str] = ()):
        self.name = name
        self.available = list(available)
        super().__init__(f"Partition not found in workspace: {name}")


class VolumeNotFoundError(ResourceLookupError):
    """Volume does not exist (or no longer exists)."""

    def __init__(self, volume_id: str):
        self.volume_id = volume_id
        super().__init__(f"Volume not found: {volume_id}")


class PollTimeoutError(CloneRestoreError):
    """A bounded poll gave up before its condition was met."""

    def __init__(self, description: str, elapsed: float, timeout: float):
        self.description = description
        self.elapsed = elapsed
        self.timeout = timeout
        super().__init__(f"Timed out after {elapsed:g}s waiting for {description}")


class TargetBusyError(CloneRestoreError):
    """Another run already holds the advisory lock for this target."""

    def __init__(self, target: str, lock_path: str):
        self.target = target
        self.lock_path = lock_path
        super().__init__(f"Target {target} is locked by another run ({lock_path})")


class StageFailure(CloneRestoreError):
    """Base exception for fatal pipeline failures tagged with their stage."""

    stage: FailedStage = FailedStage.UNKNOWN

    def __init__(self, message: str):
        super().__init__(message)


class ConfigurationError(StageFailure):
    """Settings are missing or invalid."""

    stage = FailedStage.CONFIGURATION


class AuthenticationError(StageFailure):
    """Login or resource/workspace targeting failed."""

    stage = FailedStage.AUTHENTICATION

    def __init__(self, step: str, reason: str = ""):
        self.step = step
        self.reason = reason
        msg = f"Authentication failed while {step}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TargetResolutionError(StageFailure):
    """The target partition could not be resolved or inspected."""

    stage = FailedStage.TARGET_LOOKUP

    def __init__(self, target_name: str, reason: str):
        self.target_name = target_name
        self.reason = reason
        super().__init__(f"Unable to resolve target partition {target_name}: {reason}")


class SnapshotFailedError(StageFailure):
    """Snapshot creation failed or the snapshot entered an error state."""

    stage = FailedStage.SNAPSHOT

    def __init__(self, reason: str, snapshot_id: str | None = None):
        self.snapshot_id = snapshot_id
        self.reason = reason
        super().__init__(f"Snapshot failed: {reason}")


class NoBootVolumeError(StageFailure):
    """Source volume set has no bootable volume."""

    stage = FailedStage.VOLUME_IDENTIFICATION

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"No boot volume found on {source}")


class CloneTaskFailedError(StageFailure):
    """Clone submission failed or the clone task reached ``failed``."""

    stage = FailedStage.CLONE

    def __init__(self, reason: str, task_id: str | None = None):
        self.task_id = task_id
        self.reason = reason
        msg = f"Clone failed: {reason}"
        if task_id:
            msg = f"Clone task {task_id} failed: {reason}"
        super().__init__(msg)


class CloneMappingIncompleteError(StageFailure):
    """Completed clone task does not map every submitted volume exactly once."""

    stage = FailedStage.CLONE

    def __init__(self, task_id: str, reason: str, missing: Sequence[str] = ()):
        self.task_id = task_id
        self.reason = reason
        self.missing = list(missing)
        super().__init__(f"Clone task {task_id} mapping incomplete: {reason}")


class VolumeUnavailableError(StageFailure):
    """A cloned volume did not become available within the configured bound."""

    stage = FailedStage.VOLUME_AVAILABILITY

    def __init__(self, volume_id: str, last_state: str, elapsed: float):
        self.volume_id = volume_id
        self.last_state = last_state
        self.elapsed = elapsed
        super().__init__(
            f"Volume {volume_id} not available after {elapsed:g}s "
            f"(last state: {last_state})"
        )


class AttachTimeoutError(StageFailure):
    """Attach request failed or the volumes never showed up on the target."""

    stage = FailedStage.ATTACH_VOLUME

    def __init__(self, partition_id: str, reason: str, missing: Sequence[str] = ()):
        self.partition_id = partition_id
        self.reason = reason
        self.missing = list(missing)
        super().__init__(f"Volume attachment to {partition_id} failed: {reason}")


class BootConfigError(StageFailure):
    """Boot mode configuration failed on every attempt."""

    stage = FailedStage.BOOT_CONFIG

    def __init__(self, partition_id: str, attempts: int, reason: str = ""):
        self.partition_id = partition_id
        self.attempts = attempts
        self.reason = reason
        msg = f"Boot configuration of {partition_id} failed after {attempts} attempt(s)"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StartupError(StageFailure):
    """Start was rejected, the partition hit ERROR, or it never became ACTIVE."""

    stage = FailedStage.STARTUP

    def __init__(self, partition_id: str, reason: str, status: str | None = None):
        self.partition_id = partition_id
        self.reason = reason
        self.status = status
        super().__init__(f"Startup of {partition_id} failed: {reason}")


class FinalStatusError(StageFailure):
    """Partition did not remain ACTIVE at the final read-back."""

    stage = FailedStage.FINAL_STATUS_CHECK

    def __init__(self, partition_id: str, status: str | None):
        self.partition_id = partition_id
        self.status = status
        super().__init__(
            f"Partition {partition_id} did not remain ACTIVE "
            f"(final status: {status or 'unavailable'})"
        )
