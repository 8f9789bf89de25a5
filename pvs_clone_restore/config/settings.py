"""Settings storage for run configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from pvs_clone_restore.domain import RecoveryPolicy, SourceMode
from pvs_clone_restore.exceptions import ConfigurationError


SETTINGS_PATH = Path(
    os.environ.get(
        "PVS_CLONE_RESTORE_SETTINGS_PATH",
        Path.home() / ".config" / "pvs-clone-restore" / "settings.json",
    )
)

DEFAULT_LOCK_DIR = Path.home() / ".local" / "state" / "pvs-clone-restore" / "locks"

API_KEY_ENV = "IBMCLOUD_API_KEY"
TRIGGER_JOB_ENV = "RUN_CLEANUP_JOB"

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_POLL_INTERVAL = 60
DEFAULT_MAX_ATTACH_WAIT = 1800
DEFAULT_MAX_BOOT_WAIT = 1200
DEFAULT_RETRY_BACKOFF = 60
DEFAULT_FAILURE_MARKER = "__FAILED"

# IBM i ASP suspend/resume around the clone submission
DEFAULT_PREP_COMMANDS = [
    'system "CHGASPACT ASPDEV(*SYSBAS) OPTION(*FRCWRT)"',
    'system "CHGASPACT ASPDEV(*SYSBAS) OPTION(*SUSPEND) SSPTIMO(120)"',
]
DEFAULT_RESUME_COMMANDS = [
    'system "CHGASPACT ASPDEV(*SYSBAS) OPTION(*RESUME)"',
]

DEFAULT_SETTINGS: dict[str, Any] = {
    "region": "us-south",
    "resource_group": "Default",
    "workspace_crn": None,
    "source_instance_id": None,
    "source_name": None,
    "target_name": None,
    "clone_name": None,
    "source_mode": SourceMode.VOLUMES.value,
    "storage_tier": None,
    "poll_interval": DEFAULT_POLL_INTERVAL,
    "clone_poll_interval": DEFAULT_POLL_INTERVAL,
    "snapshot_poll_interval": 45,
    "initial_attach_wait": 60,
    "max_attach_wait": DEFAULT_MAX_ATTACH_WAIT,
    "max_boot_wait": DEFAULT_MAX_BOOT_WAIT,
    "max_availability_wait": None,
    "post_attach_pause": 180,
    "pre_start_pause": 60,
    "boot_config_attempts": 2,
    "start_attempts": 3,
    "retry_backoff": DEFAULT_RETRY_BACKOFF,
    "boot_mode": "b",
    "boot_operating_mode": "normal",
    "recovery_policy": RecoveryPolicy.MARK.value,
    "failure_marker": DEFAULT_FAILURE_MARKER,
    "max_detach_wait": 240,
    "lock_enabled": True,
    "lock_dir": None,
    "ssh_prep_enabled": False,
    "ssh_jump_host": None,
    "ssh_jump_user": None,
    "ssh_jump_key_path": "~/.ssh/id_rsa",
    "ssh_target_host": None,
    "ssh_target_user": None,
    "ssh_target_key_path": None,
    "ssh_prep_commands": DEFAULT_PREP_COMMANDS,
    "ssh_resume_commands": DEFAULT_RESUME_COMMANDS,
    "suspend_settle": 5,
    "resume_delay": 90,
    "trigger_job": False,
    "job_resource_group": None,
    "job_project": None,
    "job_name": None,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings(path: Path | None = None) -> dict[str, Any]:
    settings_store.values = dict(DEFAULT_SETTINGS)
    path = path or SETTINGS_PATH
    if not path.exists():
        return settings_store.values
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return settings_store.values
    if isinstance(data, dict):
        settings_store.values.update(data)
    return settings_store.values


def _optional_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    return float(value)


@dataclass(frozen=True)
class SSHSettings:
    """Nested SSH hop used to suspend and resume source disks."""

    enabled: bool
    jump_host: str | None
    jump_user: str | None
    jump_key_path: str | None
    target_host: str | None
    target_user: str | None
    target_key_path: str | None
    prep_commands: tuple[str, ...]
    resume_commands: tuple[str, ...]
    suspend_settle: float
    resume_delay: float


@dataclass(frozen=True)
class JobTriggerSettings:
    """Follow-on Code Engine job submitted after a successful run."""

    enabled: bool
    resource_group: str | None
    project: str | None
    job_name: str | None


@dataclass(frozen=True)
class RunSettings:
    """Typed, validated settings for one run."""

    api_key: str
    region: str
    resource_group: str
    workspace_crn: str
    target_name: str
    source_instance_id: str | None
    source_name: str | None
    clone_name: str
    source_mode: SourceMode
    storage_tier: str | None
    poll_interval: float
    clone_poll_interval: float
    snapshot_poll_interval: float
    initial_attach_wait: float
    max_attach_wait: float
    max_boot_wait: float
    max_availability_wait: float | None
    post_attach_pause: float
    pre_start_pause: float
    boot_config_attempts: int
    start_attempts: int
    retry_backoff: float
    boot_mode: str
    boot_operating_mode: str
    recovery_policy: RecoveryPolicy
    failure_marker: str
    max_detach_wait: float
    lock_enabled: bool
    lock_dir: Path
    ssh: SSHSettings
    job: JobTriggerSettings

    def clone_prefix(self, now: datetime | None = None) -> str:
        """Clone name prefix: ``<clone_name>-<YYYYMMDDHHMM>``."""
        now = now or datetime.now()
        return f"{self.clone_name}-{now.strftime('%Y%m%d%H%M')}"

    @property
    def source_label(self) -> str:
        return self.source_name or self.source_instance_id or "-"

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, Any],
        environ: Mapping[str, str] | None = None,
    ) -> RunSettings:
        """Build settings from merged file/CLI values plus the environment.

        Raises:
            ConfigurationError: If a required value is missing or invalid
        """
        environ = os.environ if environ is None else environ
        merged = dict(DEFAULT_SETTINGS)
        merged.update({key: value for key, value in values.items() if value is not None})

        api_key = environ.get(API_KEY_ENV, "")
        if not api_key:
            raise ConfigurationError(f"{API_KEY_ENV} is not set")
        for key in ("workspace_crn", "target_name"):
            if not merged.get(key):
                raise ConfigurationError(f"Missing required setting: {key}")
        if not (merged.get("source_instance_id") or merged.get("source_name")):
            raise ConfigurationError(
                "Either source_instance_id or source_name must be set"
            )

        try:
            source_mode = SourceMode(str(merged["source_mode"]).lower())
            recovery_policy = RecoveryPolicy(str(merged["recovery_policy"]).lower())
            boot_config_attempts = int(merged["boot_config_attempts"])
            start_attempts = int(merged["start_attempts"])
            numbers = {
                key: float(merged[key])
                for key in (
                    "poll_interval",
                    "clone_poll_interval",
                    "snapshot_poll_interval",
                    "initial_attach_wait",
                    "max_attach_wait",
                    "max_boot_wait",
                    "post_attach_pause",
                    "pre_start_pause",
                    "retry_backoff",
                    "max_detach_wait",
                    "suspend_settle",
                    "resume_delay",
                )
            }
            max_availability_wait = _optional_float(merged.get("max_availability_wait"))
        except (TypeError, ValueError) as error:
            raise ConfigurationError(f"Invalid setting: {error}") from error

        if boot_config_attempts < 1 or start_attempts < 1:
            raise ConfigurationError("Retry attempt counts must be at least 1")
        if numbers["poll_interval"] <= 0 or numbers["clone_poll_interval"] <= 0:
            raise ConfigurationError("Poll intervals must be positive")

        if source_mode is SourceMode.SNAPSHOT and not merged.get("source_name"):
            raise ConfigurationError("Snapshot mode requires source_name")

        ssh_enabled = bool(merged.get("ssh_prep_enabled"))
        if ssh_enabled and not (merged.get("ssh_jump_host") and merged.get("ssh_target_host")):
            raise ConfigurationError(
                "SSH preparation requires ssh_jump_host and ssh_target_host"
            )

        trigger_job = bool(merged.get("trigger_job")) or (
            environ.get(TRIGGER_JOB_ENV, "").strip().lower() in ("yes", "true", "1")
        )

        lock_dir = merged.get("lock_dir")
        clone_name = merged.get("clone_name") or merged.get("source_name") or "clone"

        return cls(
            api_key=api_key,
            region=str(merged["region"]),
            resource_group=str(merged["resource_group"]),
            workspace_crn=str(merged["workspace_crn"]),
            target_name=str(merged["target_name"]),
            source_instance_id=merged.get("source_instance_id"),
            source_name=merged.get("source_name"),
            clone_name=str(clone_name),
            source_mode=source_mode,
            storage_tier=merged.get("storage_tier"),
            max_availability_wait=max_availability_wait,
            boot_config_attempts=boot_config_attempts,
            start_attempts=start_attempts,
            boot_mode=str(merged["boot_mode"]),
            boot_operating_mode=str(merged["boot_operating_mode"]),
            recovery_policy=recovery_policy,
            failure_marker=str(merged["failure_marker"]),
            lock_enabled=bool(merged["lock_enabled"]),
            lock_dir=Path(lock_dir).expanduser() if lock_dir else DEFAULT_LOCK_DIR,
            ssh=SSHSettings(
                enabled=ssh_enabled,
                jump_host=merged.get("ssh_jump_host"),
                jump_user=merged.get("ssh_jump_user"),
                jump_key_path=merged.get("ssh_jump_key_path"),
                target_host=merged.get("ssh_target_host"),
                target_user=merged.get("ssh_target_user"),
                target_key_path=merged.get("ssh_target_key_path"),
                prep_commands=tuple(merged.get("ssh_prep_commands") or ()),
                resume_commands=tuple(merged.get("ssh_resume_commands") or ()),
                suspend_settle=numbers["suspend_settle"],
                resume_delay=numbers["resume_delay"],
            ),
            job=JobTriggerSettings(
                enabled=trigger_job,
                resource_group=merged.get("job_resource_group"),
                project=merged.get("job_project"),
                job_name=merged.get("job_name"),
            ),
            poll_interval=numbers["poll_interval"],
            clone_poll_interval=numbers["clone_poll_interval"],
            snapshot_poll_interval=numbers["snapshot_poll_interval"],
            initial_attach_wait=numbers["initial_attach_wait"],
            max_attach_wait=numbers["max_attach_wait"],
            max_boot_wait=numbers["max_boot_wait"],
            post_attach_pause=numbers["post_attach_pause"],
            pre_start_pause=numbers["pre_start_pause"],
            retry_backoff=numbers["retry_backoff"],
            max_detach_wait=numbers["max_detach_wait"],
        )


def load_run_settings(
    path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> RunSettings:
    """Load the settings file, apply CLI overrides and validate."""
    values = dict(load_settings(path))
    if overrides:
        values.update({key: value for key, value in overrides.items() if value is not None})
    return RunSettings.from_mapping(values, environ=environ)
