"""PowerVS control plane access through the ``ibmcloud`` CLI.

Main Classes:
    - PowerVSClient: partition, volume, clone-task, snapshot and Code Engine calls
    - DiskPreparation: best-effort SSH suspend/resume of the source disks

Command Execution:
    - run_checked_command(): Run a command and raise on non-zero exit
    - run_json_command(): Run a ``--json`` command and decode its output
"""

from .client import PowerVSClient
from .command_runners import (
    configure_command_runner,
    run_checked_command,
    run_json_command,
)
from .jobs import trigger_follow_on_job
from .ssh import DiskPreparation, build_nested_ssh_command

__all__ = [
    "DiskPreparation",
    "PowerVSClient",
    "build_nested_ssh_command",
    "configure_command_runner",
    "run_checked_command",
    "run_json_command",
    "trigger_follow_on_job",
]
