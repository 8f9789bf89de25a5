"""PowerVS control plane client built on the ``ibmcloud`` CLI.

Every method maps to one CLI invocation and returns domain objects. Errors
surface as ``ControlPlaneError`` subclasses; deciding which of them are fatal
is left to the workflow stages.

Usage:
    client = PowerVSClient()
    client.login(api_key, "us-south")
    partition = client.get_partition(partition_id)
"""

from __future__ import annotations

from typing import Any, Sequence

from pvs_clone_restore.domain import (
    AttachedVolume,
    CloneTask,
    Partition,
    Snapshot,
    Volume,
)
from pvs_clone_restore.exceptions import (
    CommandFailedError,
    MalformedResponseError,
    PartitionNotFoundError,
)

from .command_runners import run_checked_command, run_json_command

IBMCLOUD = "ibmcloud"

# Substrings the CLI prints when a resource does not exist.
_NOT_FOUND_MARKERS = ("not found", "does not exist", "404")


def _require_dict(payload: Any, command: Sequence[str]) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise MalformedResponseError(" ".join(command), "expected a JSON object")
    return payload


def _is_not_found(error: CommandFailedError) -> bool:
    text = error.output.lower()
    return any(marker in text for marker in _NOT_FOUND_MARKERS)


class PowerVSClient:
    """Thin wrapper over ``ibmcloud`` / ``ibmcloud pi`` / ``ibmcloud ce``."""

    def __init__(self, executable: str = IBMCLOUD):
        self.executable = executable

    def _command(self, *parts: str) -> list[str]:
        return [self.executable, *parts]

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def login(self, api_key: str, region: str) -> None:
        command = self._command("login", "--apikey", api_key, "-r", region)
        run_checked_command(command, redactions=[3])

    def target_resource_group(self, resource_group: str) -> None:
        run_checked_command(self._command("target", "-g", resource_group))

    def target_workspace(self, crn: str) -> None:
        run_checked_command(self._command("pi", "ws", "target", crn))

    # ------------------------------------------------------------------
    # Partitions
    # ------------------------------------------------------------------

    def list_partitions(self) -> list[Partition]:
        command = self._command("pi", "instance", "list", "--json")
        payload = _require_dict(run_json_command(command), command)
        partitions = []
        for entry in payload.get("pvmInstances") or []:
            if isinstance(entry, dict) and (entry.get("pvmInstanceID") or entry.get("id")):
                partitions.append(Partition.from_json(entry))
        return partitions

    def find_partition_id(self, name: str) -> str:
        """Resolve a partition name to its id (first match wins).

        Raises:
            PartitionNotFoundError: If no partition carries that name
        """
        partitions = self.list_partitions()
        for partition in partitions:
            if partition.name == name:
                return partition.partition_id
        raise PartitionNotFoundError(
            name, [f"{partition.name} (ID: {partition.partition_id})" for partition in partitions]
        )

    def get_partition(self, partition_id: str) -> Partition:
        command = self._command("pi", "instance", "get", partition_id, "--json")
        payload = _require_dict(run_json_command(command), command)
        try:
            return Partition.from_json(payload)
        except KeyError as error:
            raise MalformedResponseError(" ".join(command), "missing instance id") from error

    def list_attached_volumes(self, partition_id: str) -> list[AttachedVolume]:
        command = self._command("pi", "instance", "volume", "list", partition_id, "--json")
        payload = _require_dict(run_json_command(command), command)
        return [
            AttachedVolume.from_json(entry)
            for entry in payload.get("volumes") or []
            if isinstance(entry, dict) and (entry.get("volumeID") or entry.get("id"))
        ]

    def attach_volumes(
        self, partition_id: str, boot_volume_id: str, data_volume_ids: Sequence[str] = ()
    ) -> None:
        command = self._command("pi", "instance", "volume", "attach", partition_id)
        if data_volume_ids:
            command += ["--volumes", ",".join(data_volume_ids)]
        command += ["--boot-volume", boot_volume_id]
        run_checked_command(command)

    def bulk_detach_all(self, partition_id: str) -> None:
        run_checked_command(
            self._command(
                "pi", "instance", "volume", "bulk-detach", partition_id,
                "--detach-all", "--detach-primary",
            )
        )

    def configure_boot(self, partition_id: str, boot_mode: str, operating_mode: str) -> None:
        run_checked_command(
            self._command(
                "pi", "instance", "operation", partition_id,
                "--operation-type", "boot",
                "--boot-mode", boot_mode,
                "--boot-operating-mode", operating_mode,
            )
        )

    def start_partition(self, partition_id: str) -> None:
        run_checked_command(
            self._command("pi", "instance", "action", partition_id, "--operation", "start")
        )

    # ------------------------------------------------------------------
    # Volumes
    # ------------------------------------------------------------------

    def get_volume(self, volume_id: str) -> Volume:
        command = self._command("pi", "volume", "get", volume_id, "--json")
        return Volume.from_json(_require_dict(run_json_command(command), command))

    def volume_exists(self, volume_id: str) -> bool:
        try:
            self.get_volume(volume_id)
        except CommandFailedError as error:
            if _is_not_found(error):
                return False
            raise
        return True

    def update_volume_name(self, volume_id: str, new_name: str) -> None:
        run_checked_command(self._command("pi", "volume", "update", volume_id, "--name", new_name))

    def bulk_delete_volumes(self, volume_ids: Sequence[str]) -> None:
        run_checked_command(
            self._command("pi", "volume", "bulk-delete", "--volumes", ",".join(volume_ids))
        )

    # ------------------------------------------------------------------
    # Clone tasks
    # ------------------------------------------------------------------

    def submit_clone_task(
        self,
        volume_ids: Sequence[str],
        name_prefix: str,
        target_tier: str | None = None,
    ) -> str:
        """Submit one asynchronous clone request for the whole volume set."""
        command = self._command(
            "pi", "volume", "clone-async", "create", name_prefix,
            "--volumes", ",".join(volume_ids),
        )
        if target_tier:
            command += ["--target-tier", target_tier]
        command.append("--json")
        payload = _require_dict(run_json_command(command), command)
        task_id = payload.get("cloneTaskID")
        if not task_id:
            # Some CLI versions nest the task id under the first cloned volume.
            cloned = payload.get("clonedVolumes") or []
            if cloned and isinstance(cloned[0], dict):
                task_id = cloned[0].get("cloneTaskID")
        if not task_id or task_id == "null":
            raise MalformedResponseError(" ".join(command), "cloneTaskID not returned")
        return str(task_id)

    def get_clone_task(self, task_id: str) -> CloneTask:
        command = self._command("pi", "volume", "clone-async", "get", task_id, "--json")
        return CloneTask.from_json(task_id, _require_dict(run_json_command(command), command))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def create_snapshot(self, partition: str, name: str) -> str:
        command = self._command(
            "pi", "instance", "snapshot", "create", partition, "--name", name, "--json"
        )
        payload = _require_dict(run_json_command(command), command)
        snapshot_id = payload.get("snapshotID")
        if not snapshot_id:
            raise MalformedResponseError(" ".join(command), "snapshotID not returned")
        return str(snapshot_id)

    def get_snapshot(self, snapshot_id: str) -> Snapshot:
        command = self._command("pi", "instance", "snapshot", "get", snapshot_id, "--json")
        payload = _require_dict(run_json_command(command), command)
        payload.setdefault("snapshotID", snapshot_id)
        return Snapshot.from_json(payload)

    # ------------------------------------------------------------------
    # Code Engine
    # ------------------------------------------------------------------

    def target_code_engine_project(self, project: str) -> None:
        run_checked_command(self._command("ce", "project", "target", "--name", project))

    def submit_job_run(self, job_name: str) -> str | None:
        """Submit a Code Engine job run and return its name, if reported."""
        command = self._command("ce", "jobrun", "submit", "--job", job_name, "--output", "json")
        payload = run_json_command(command)
        if not isinstance(payload, dict):
            return None
        metadata = payload.get("metadata") or {}
        return metadata.get("name") or payload.get("name") or None
