"""Boot sequencer: configure boot mode, start, wait for ACTIVE, read back.

Status flow on the target partition::

    not ACTIVE -> configure boot (retried) -> start (retried, classified)
               -> poll -> ACTIVE | ERROR (fatal) | timeout (fatal)

An already ACTIVE partition skips configure and start.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from pvs_clone_restore.domain import Partition, PartitionStatus
from pvs_clone_restore.exceptions import (
    BootConfigError,
    ControlPlaneError,
    FinalStatusError,
    PollTimeoutError,
    StartupError,
)
from pvs_clone_restore.logging import EventLogger, LoggerFactory

from .classification import is_retryable_start_error
from .polling import poll_until
from .retry import retry

log = LoggerFactory.for_workflow()


@dataclass(frozen=True)
class BootOptions:
    boot_mode: str = "b"
    operating_mode: str = "normal"
    config_attempts: int = 2
    start_attempts: int = 3
    retry_backoff: float = 60
    pre_start_pause: float = 60
    poll_interval: float = 60
    max_boot_wait: float = 1200


def read_status(client, partition_id: str) -> str:
    return client.get_partition(partition_id).status


def configure_boot(client, partition_id: str, options: BootOptions) -> None:
    """Set the boot mode, retrying on any control plane error.

    Raises:
        BootConfigError: When every attempt failed
    """
    log.info(f"→ Configuring boot mode ({options.operating_mode.upper()})...")
    try:
        retry(
            lambda: client.configure_boot(partition_id, options.boot_mode, options.operating_mode),
            options.config_attempts,
            options.retry_backoff,
            description="Boot config",
            logger=log,
        )
    except ControlPlaneError as error:
        raise BootConfigError(partition_id, options.config_attempts, str(error)) from error
    log.info("✓ Boot mode configured")


def start_partition(client, partition_id: str, options: BootOptions) -> None:
    """Issue the start action.

    "Still attaching volumes" failures are retried; anything else ends the
    retries on the spot.

    Raises:
        StartupError: On a non-retryable failure or when attempts run out
    """
    log.info("→ Starting LPAR...")
    try:
        retry(
            lambda: client.start_partition(partition_id),
            options.start_attempts,
            options.retry_backoff,
            is_retryable_start_error,
            description="Start",
            logger=log,
        )
    except ControlPlaneError as error:
        if is_retryable_start_error(error):
            reason = f"still attaching volumes after {options.start_attempts} attempt(s)"
        else:
            reason = f"non-retryable start failure: {error}"
        raise StartupError(partition_id, reason) from error
    log.info("✓ Start command accepted")


def wait_for_active(client, partition_id: str, options: BootOptions) -> Partition:
    """Poll until ACTIVE.

    Raises:
        StartupError: On ERROR status or when ``max_boot_wait`` elapses
    """
    log.info("→ Waiting for LPAR to reach ACTIVE state...")
    elapsed_box = {"elapsed": 0.0}
    last_status = {"status": PartitionStatus.UNKNOWN.value}

    def probe() -> Partition:
        try:
            partition = client.get_partition(partition_id)
        except ControlPlaneError as error:
            log.warning(f"  ⚠ Unable to read LPAR status: {error}")
            partition = Partition(partition_id=partition_id, name="")
        last_status["status"] = partition.status
        EventLogger.log_status_observed(log, partition_id, partition.status, elapsed_box["elapsed"])
        return partition

    def is_done(partition: Partition) -> bool:
        if partition.is_error:
            raise StartupError(partition_id, "partition entered ERROR state", partition.status)
        return partition.is_active

    def on_wait(_partition: Partition, elapsed: float) -> None:
        elapsed_box["elapsed"] = elapsed + options.poll_interval

    try:
        partition = poll_until(
            probe,
            is_done,
            interval=options.poll_interval,
            timeout=options.max_boot_wait,
            description=f"{partition_id} to become ACTIVE",
            on_wait=on_wait,
        )
    except PollTimeoutError as error:
        raise StartupError(
            partition_id,
            f"not ACTIVE after {options.max_boot_wait:g}s",
            last_status["status"],
        ) from error
    log.info("✓ LPAR is ACTIVE")
    return partition


def verify_final_status(client, partition_id: str) -> str:
    """Independent read-back after the poll; the partition must still be ACTIVE.

    Raises:
        FinalStatusError: If the status regressed or cannot be read
    """
    try:
        status = read_status(client, partition_id)
    except ControlPlaneError as error:
        log.error(f"✗ ERROR: Unable to retrieve final LPAR status: {error}")
        raise FinalStatusError(partition_id, None) from error
    log.info(f"→ Final LPAR status check: {status}")
    if status != PartitionStatus.ACTIVE.value:
        raise FinalStatusError(partition_id, status)
    return status


def boot_partition(client, partition_id: str, options: BootOptions) -> Partition:
    """Run the sequencer up to ACTIVE (the final read-back is separate)."""
    log.info("→ Checking current LPAR status...")
    try:
        current = read_status(client, partition_id)
    except ControlPlaneError as error:
        raise StartupError(partition_id, f"unable to retrieve LPAR status: {error}") from error
    log.info(f"  Current status: {current}")

    if current != PartitionStatus.ACTIVE.value:
        configure_boot(client, partition_id, options)
        if options.pre_start_pause:
            log.info(f"  Waiting {options.pre_start_pause:g}s before start...")
            time.sleep(options.pre_start_pause)
        start_partition(client, partition_id, options)
    else:
        log.info("  LPAR already ACTIVE - skipping boot configuration and start")

    return wait_for_active(client, partition_id, options)
