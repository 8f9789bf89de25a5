"""
Pytest configuration and shared fixtures for pvs-clone-restore tests.

This module provides an in-memory control plane standing in for
``PowerVSClient`` plus the settings and logging fixtures used across all test
modules.
"""

import contextlib
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from pvs_clone_restore.config.settings import RunSettings
from pvs_clone_restore.domain import (
    AttachedVolume,
    ClonedVolume,
    CloneTask,
    CloneTaskStatus,
    Partition,
    Snapshot,
    Volume,
)
from pvs_clone_restore.exceptions import CommandFailedError, PartitionNotFoundError
from pvs_clone_restore.logging import logger
from pvs_clone_restore.powervs.command_runners import configure_command_runner


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: end-to-end pipeline runs against the fake control plane"
    )


# ==============================================================================
# Fake control plane
# ==============================================================================


SOURCE_NAME = "lpar-prod"
SOURCE_ID = "src-1"
TARGET_NAME = "lpar-dr"
TARGET_ID = "tgt-1"
SOURCE_BOOT = "v-boot-1"
SOURCE_DATA = ["v-data-1", "v-data-2"]


def clone_id_for(source_id: str) -> str:
    return f"clone-{source_id}"


class FakeControlPlane:
    """In-memory stand-in for ``PowerVSClient``.

    Every call is recorded in ``calls`` as ``(method, args)``. Failures are
    scripted per method with ``fail_next``; status sequences are consumed one
    value per read, and the last value repeats.
    """

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.partitions: Dict[str, str] = {SOURCE_NAME: SOURCE_ID, TARGET_NAME: TARGET_ID}
        self.attached: Dict[str, List[AttachedVolume]] = {
            SOURCE_ID: [AttachedVolume(SOURCE_BOOT, True)]
            + [AttachedVolume(volume_id, False) for volume_id in SOURCE_DATA],
            TARGET_ID: [],
        }
        self.statuses: Dict[str, List[str]] = {TARGET_ID: ["SHUTOFF", "STARTING", "ACTIVE"]}
        self.volumes: Dict[str, Volume] = {}
        self.volume_states: Dict[str, List[str]] = {}
        self.clone_statuses: List[str] = ["running", "completed"]
        self.clone_mapping: Optional[List[ClonedVolume]] = None
        self.hidden_after_attach: set = set()
        self.attach_applies = True
        self.detach_applies = True
        self.delete_applies = True
        self.snapshot_statuses: List[str] = ["creating", "available"]
        self.snapshot_volumes: List[AttachedVolume] = [
            AttachedVolume("snap-boot", True),
            AttachedVolume("snap-data", False),
        ]
        self.job_run_name: Optional[str] = "jobrun-1"
        self._failures: Dict[str, List[Exception]] = {}
        self._submitted: List[str] = []

    # -- scripting helpers -------------------------------------------------

    def fail_next(self, method: str, *errors: Exception) -> None:
        self._failures.setdefault(method, []).extend(errors)

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        queue = self._failures.get(method)
        if queue:
            raise queue.pop(0)

    def called(self, method: str) -> List[tuple]:
        return [args for name, args in self.calls if name == method]

    def method_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    @staticmethod
    def _next(sequence: List[str]) -> str:
        return sequence.pop(0) if len(sequence) > 1 else sequence[0]

    def add_volume(self, volume_id: str, name: str, state: str = "available") -> None:
        self.volumes[volume_id] = Volume(volume_id=volume_id, name=name, state=state)

    # -- session -----------------------------------------------------------

    def login(self, api_key, region):
        self._record("login", api_key, region)

    def target_resource_group(self, resource_group):
        self._record("target_resource_group", resource_group)

    def target_workspace(self, crn):
        self._record("target_workspace", crn)

    # -- partitions --------------------------------------------------------

    def list_partitions(self):
        self._record("list_partitions")
        return [Partition(pid, name) for name, pid in self.partitions.items()]

    def find_partition_id(self, name):
        self._record("find_partition_id", name)
        if name not in self.partitions:
            raise PartitionNotFoundError(
                name, [f"{n} (ID: {pid})" for n, pid in self.partitions.items()]
            )
        return self.partitions[name]

    def get_partition(self, partition_id):
        self._record("get_partition", partition_id)
        status = self._next(self.statuses.setdefault(partition_id, ["SHUTOFF"]))
        return Partition(partition_id, "", status)

    def list_attached_volumes(self, partition_id):
        self._record("list_attached_volumes", partition_id)
        return list(self.attached.get(partition_id, []))

    def attach_volumes(self, partition_id, boot_volume_id, data_volume_ids=()):
        self._record("attach_volumes", partition_id, boot_volume_id, tuple(data_volume_ids))
        if not self.attach_applies:
            return
        attached = self.attached.setdefault(partition_id, [])
        for volume_id, bootable in [(boot_volume_id, True)] + [(v, False) for v in data_volume_ids]:
            if volume_id not in self.hidden_after_attach:
                attached.append(AttachedVolume(volume_id, bootable))

    def bulk_detach_all(self, partition_id):
        self._record("bulk_detach_all", partition_id)
        if self.detach_applies:
            self.attached[partition_id] = []

    def configure_boot(self, partition_id, boot_mode, operating_mode):
        self._record("configure_boot", partition_id, boot_mode, operating_mode)

    def start_partition(self, partition_id):
        self._record("start_partition", partition_id)

    # -- volumes -----------------------------------------------------------

    def get_volume(self, volume_id):
        self._record("get_volume", volume_id)
        if volume_id not in self.volumes:
            raise CommandFailedError(
                f"ibmcloud pi volume get {volume_id}", 1, "volume does not exist"
            )
        volume = self.volumes[volume_id]
        states = self.volume_states.get(volume_id)
        if states:
            volume = Volume(volume.volume_id, volume.name, self._next(states))
        return volume

    def volume_exists(self, volume_id):
        self._record("volume_exists", volume_id)
        return volume_id in self.volumes

    def update_volume_name(self, volume_id, new_name):
        self._record("update_volume_name", volume_id, new_name)
        volume = self.volumes[volume_id]
        self.volumes[volume_id] = Volume(volume_id, new_name, volume.state, volume.bootable)

    def bulk_delete_volumes(self, volume_ids):
        self._record("bulk_delete_volumes", *volume_ids)
        if self.delete_applies:
            for volume_id in volume_ids:
                self.volumes.pop(volume_id, None)

    # -- clone tasks -------------------------------------------------------

    def submit_clone_task(self, volume_ids, name_prefix, target_tier=None):
        self._record("submit_clone_task", tuple(volume_ids), name_prefix, target_tier)
        self._submitted = list(volume_ids)
        for index, source_id in enumerate(volume_ids, start=1):
            self.add_volume(clone_id_for(source_id), f"{name_prefix}-{index}")
        return "task-1"

    def get_clone_task(self, task_id):
        self._record("get_clone_task", task_id)
        status = CloneTaskStatus.parse(self._next(self.clone_statuses))
        mapping = ()
        if status is CloneTaskStatus.COMPLETED:
            if self.clone_mapping is not None:
                mapping = tuple(self.clone_mapping)
            else:
                mapping = tuple(ClonedVolume(s, clone_id_for(s)) for s in self._submitted)
        return CloneTask(task_id, status, mapping)

    # -- snapshots ---------------------------------------------------------

    def create_snapshot(self, partition, name):
        self._record("create_snapshot", partition, name)
        return "snap-1"

    def get_snapshot(self, snapshot_id):
        self._record("get_snapshot", snapshot_id)
        return Snapshot(
            snapshot_id, self._next(self.snapshot_statuses), tuple(self.snapshot_volumes)
        )

    # -- code engine -------------------------------------------------------

    def target_code_engine_project(self, project):
        self._record("target_code_engine_project", project)

    def submit_job_run(self, job_name):
        self._record("submit_job_run", job_name)
        return self.job_run_name


@pytest.fixture
def control_plane() -> FakeControlPlane:
    """Fixture providing a fresh fake control plane with source and target LPARs."""
    return FakeControlPlane()


# ==============================================================================
# Settings fixtures
# ==============================================================================


@pytest.fixture
def settings_values(tmp_path) -> Dict[str, Any]:
    """Minimal valid settings mapping; the lock directory lives under tmp_path."""
    return {
        "workspace_crn": "crn:v1:bluemix:public:power-iaas:us-south:a/acct:ws::",
        "source_name": SOURCE_NAME,
        "target_name": TARGET_NAME,
        "clone_name": "prod",
        "lock_dir": str(tmp_path / "locks"),
    }


@pytest.fixture
def api_environ() -> Dict[str, str]:
    return {"IBMCLOUD_API_KEY": "test-api-key"}


@pytest.fixture
def run_settings(settings_values, api_environ) -> RunSettings:
    """Fixture providing validated run settings."""
    return RunSettings.from_mapping(settings_values, environ=api_environ)


@pytest.fixture
def make_settings(settings_values, api_environ):
    """Factory fixture: build RunSettings with overrides."""

    def _make(**overrides) -> RunSettings:
        values = dict(settings_values)
        values.update(overrides)
        return RunSettings.from_mapping(values, environ=api_environ)

    return _make


@pytest.fixture
def temp_settings_file(tmp_path, settings_values) -> Path:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps(settings_values), encoding="utf-8")
    return path


# ==============================================================================
# Global state
# ==============================================================================


@pytest.fixture(autouse=True)
def no_sleep(mocker):
    """Auto-use fixture: every ``time.sleep`` in the package returns at once."""
    return mocker.patch("time.sleep")


@pytest.fixture(autouse=True)
def reset_command_runner():
    """Auto-use fixture restoring the real command runner after each test."""
    yield
    configure_command_runner(None)


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records: List[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    # setup_logging() may already have removed every handler.
    with contextlib.suppress(ValueError):
        logger.remove(handler_id)


@pytest.fixture
def log_messages(log_records):
    class _Messages:
        def all(self) -> List[str]:
            return [record["message"] for record in log_records]

        def text(self) -> str:
            return "\n".join(self.all())

    return _Messages()
