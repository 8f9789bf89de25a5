"""Command execution utilities for the ``ibmcloud`` CLI."""

from __future__ import annotations

import json
import subprocess
from typing import Any, Callable, Iterable, Optional, Sequence

from pvs_clone_restore.exceptions import CommandFailedError, MalformedResponseError
from pvs_clone_restore.logging import LoggerFactory

log = LoggerFactory.for_control_plane()

CommandRunner = Callable[[Sequence[str]], subprocess.CompletedProcess]

_command_runner: Optional[CommandRunner] = None


def configure_command_runner(command_runner: Optional[CommandRunner] = None) -> None:
    """Swap the process runner (tests and dry runs pass a fake here)."""
    global _command_runner
    _command_runner = command_runner


def _default_runner(command: Sequence[str]) -> subprocess.CompletedProcess:
    return subprocess.run(list(command), text=True, capture_output=True)


def format_command(command: Sequence[str], redactions: Optional[Iterable[int]] = None) -> str:
    if not redactions:
        return " ".join(command)
    redacted_indexes = set(redactions)
    redacted_parts = [
        "******" if index in redacted_indexes else part for index, part in enumerate(command)
    ]
    return " ".join(redacted_parts)


def extract_error_kind(output: str) -> Optional[str]:
    """Pull a structured error code out of a JSON error body, if there is one.

    PowerVS API errors surface as ``{"error": "...", "code": ..., "description": ...}``
    either as the whole output or on the last line of it.
    """
    candidates = [output.strip()]
    lines = output.strip().splitlines()
    if len(lines) > 1:
        candidates.append(lines[-1].strip())
    for candidate in candidates:
        if not candidate.startswith("{"):
            continue
        try:
            body = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(body, dict):
            continue
        for key in ("error", "code"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def run_checked_command(
    command: Sequence[str],
    redactions: Optional[Iterable[int]] = None,
) -> str:
    """Run a command and raise CommandFailedError if it fails."""
    runner = _command_runner or _default_runner
    command_display = format_command(command, redactions)
    log.debug(f"Running command: {command_display}")
    try:
        result = runner(command)
    except OSError as error:
        raise CommandFailedError(command_display, -1, str(error)) from error
    stdout = result.stdout or ""
    stderr = result.stderr or ""
    if result.returncode != 0:
        output = "\n".join(part for part in (stderr.strip(), stdout.strip()) if part)
        log.debug(f"Command failed with code {result.returncode}: {command_display}")
        raise CommandFailedError(
            command_display,
            result.returncode,
            output,
            error_kind=extract_error_kind(output),
        )
    if stdout:
        log.trace(f"stdout: {stdout.strip()}")
    return stdout


def run_json_command(
    command: Sequence[str],
    redactions: Optional[Iterable[int]] = None,
) -> Any:
    """Run a ``--json`` command and decode its output."""
    output = run_checked_command(command, redactions=redactions)
    if not output.strip():
        raise MalformedResponseError(format_command(command, redactions), "empty output")
    try:
        return json.loads(output)
    except json.JSONDecodeError as error:
        raise MalformedResponseError(
            format_command(command, redactions), f"invalid JSON ({error})"
        ) from error


__all__ = [
    "configure_command_runner",
    "extract_error_kind",
    "format_command",
    "run_checked_command",
    "run_json_command",
]
