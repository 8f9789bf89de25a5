"""Best-effort disk suspend/resume on the source system over a jump host.

The source partition is only reachable through a jump host, so each step is
a nested ``ssh`` call: local -> jump host -> source system. Failures are
logged as warnings and never fail the run.
"""

from __future__ import annotations

import shlex
from typing import Sequence

from pvs_clone_restore.config.settings import SSHSettings
from pvs_clone_restore.exceptions import ControlPlaneError
from pvs_clone_restore.logging import LoggerFactory

from .command_runners import run_checked_command

log = LoggerFactory.for_ssh()

_SSH_OPTIONS = (
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
)


def _destination(user: str | None, host: str | None) -> str:
    return f"{user}@{host}" if user else str(host)


def build_nested_ssh_command(settings: SSHSettings, remote_commands: Sequence[str]) -> list[str]:
    """Build ``ssh jump "ssh target '<cmd1>; <cmd2>'"``."""
    remote_script = "; ".join(remote_commands)
    inner = ["ssh"]
    if settings.target_key_path:
        inner += ["-i", settings.target_key_path]
    inner += [*_SSH_OPTIONS, _destination(settings.target_user, settings.target_host)]
    inner.append(remote_script)

    outer = ["ssh"]
    if settings.jump_key_path:
        outer += ["-i", settings.jump_key_path]
    outer += [*_SSH_OPTIONS, _destination(settings.jump_user, settings.jump_host)]
    outer.append(shlex.join(inner))
    return outer


class DiskPreparation:
    """Suspend source disks before the clone and resume them afterwards."""

    def __init__(self, settings: SSHSettings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return self.settings.enabled and bool(self.settings.prep_commands)

    def _run(self, label: str, commands: Sequence[str]) -> bool:
        if not commands:
            return True
        command = build_nested_ssh_command(self.settings, commands)
        try:
            run_checked_command(command)
        except ControlPlaneError as error:
            log.warning(f"⚠ {label} failed (continuing): {error}")
            return False
        log.info(f"  ✓ {label} completed")
        return True

    def suspend(self) -> bool:
        """Run the preparation commands (flush + suspend)."""
        if not self.enabled:
            return False
        log.info(f"→ Connecting to {self.settings.target_host} via {self.settings.jump_host} for disk preparation...")
        return self._run("Disk preparation", self.settings.prep_commands)

    def resume(self) -> bool:
        """Run the resume commands."""
        if not self.enabled:
            return False
        log.info("→ Resuming disk activity on source system...")
        return self._run("Disk resume", self.settings.resume_commands)
