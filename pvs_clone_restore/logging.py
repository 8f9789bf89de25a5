from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator

if TYPE_CHECKING:
    from loguru import Logger
    from pvs_clone_restore.domain import FailedStage, RunContext

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "PVS_CLONE_RESTORE_LOG_DIR",
        Path.home() / ".local" / "state" / "pvs-clone-restore" / "logs",
    )
)

BANNER_WIDTH = 72


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
    json_logs: bool = True,
) -> Logger:
    """
    Setup run logging with separate sinks for different audiences.

    Log Files:
    - run.log: INFO+ events, the operator audit trail (14 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (14 day retention)

    Args:
        debug: Enable DEBUG level logging (includes command lines and polls)
        trace: Enable TRACE level logging (includes raw command output)
        log_dir: Custom log directory (defaults to ~/.local/state/pvs-clone-restore/logs)
        json_logs: Also write the structured JSONL sink
    """
    logger.remove()
    logger.configure(extra={"run_id": "-", "stage": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr) - timestamped audit trail for CI job output
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        colorize=None,
        format=(
            "[{time:YYYY-MM-DD HH:mm:ss}] "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[stage]: <22}</cyan> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Run Log - Important events only (INFO+)
    logger.add(
        log_dir / "run.log",
        level="INFO",
        rotation="5 MB",
        retention="14 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[run_id]: <20} | "
            "{extra[stage]: <22} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Detailed diagnostics (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=False,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <32} | "
                "{extra[run_id]: <20} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log - For analysis tools (INFO+)
    if json_logs:
        logger.add(
            log_dir / "structured.jsonl",
            level="INFO",
            rotation="10 MB",
            retention="14 days",
            compression="zip",
            serialize=True,
            format="{message}",
        )

    return logger


def get_logger(
    *,
    run_id: str | None = None,
    stage: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        run_id: Run identifier shared by every line of one orchestration run
        stage: Pipeline stage name
        tags: Tags for filtering (e.g., ["clone", "poll"])
        source: Source component (usually the module name)

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if run_id is not None:
        extras["run_id"] = run_id
    if stage is not None:
        extras["stage"] = stage
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


def new_run_id() -> str:
    return f"run-{uuid.uuid4().hex[:8]}"


@contextmanager
def run_context(run_id: str, **details) -> Iterator[Logger]:
    """
    Context manager binding ``run_id`` to every log line emitted inside it.

    Args:
        run_id: Run identifier
        **details: Additional context to bind

    Yields:
        Logger bound with run_id
    """
    with logger.contextualize(run_id=run_id, **details):
        yield logger.bind(source="run", tags=["run"])


@contextmanager
def stage_context(
    ctx: RunContext, stage: FailedStage, title: str
) -> Iterator[Logger]:
    """
    Context manager for one pipeline stage with banner, timing and failure tagging.

    On entry the stage banner is logged and ``ctx.current_stage`` is set. On
    failure the run context records the stage the exception carries (falling
    back to the entered stage), a failure line is logged, and the exception is
    re-raised unchanged.

    Example:
        with stage_context(ctx, FailedStage.ATTACH_VOLUME, "STAGE 4/5: ATTACH") as log:
            log.info("→ Attaching volumes...")
    """
    ctx.current_stage = stage
    with logger.contextualize(stage=stage.value):
        log = logger.bind(source="workflow", tags=["stage", stage.value.lower()])
        log.info("=" * BANNER_WIDTH)
        log.info(f" {title}")
        log.info("=" * BANNER_WIDTH)
        start_time = time.time()
        try:
            yield log
        except Exception as error:
            duration = time.time() - start_time
            failed = getattr(error, "stage", None) or stage
            ctx.record_failure(failed, str(error))
            # Bound rather than passed as kwargs: CLI output may contain braces.
            log.bind(
                error_type=type(error).__name__,
                failed_stage=failed.value,
                duration_seconds=round(duration, 2),
            ).error(f"✗ ERROR: {error}")
            raise
        duration = time.time() - start_time
        log.success(
            f"Stage complete: {title}", duration_seconds=round(duration, 2)
        )


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source and tags for the domain.
    """

    @staticmethod
    def for_run(run_id: str | None = None) -> Logger:
        """Logger for the top-level run driver."""
        if run_id is None:
            run_id = new_run_id()
        return logger.bind(run_id=run_id, source="run", tags=["run"])

    @staticmethod
    def for_control_plane() -> Logger:
        """Logger for ibmcloud CLI calls."""
        return logger.bind(source="control-plane", tags=["ibmcloud", "cli"])

    @staticmethod
    def for_workflow(stage: str | None = None) -> Logger:
        """Logger for workflow stages."""
        extras: dict[str, object] = {"source": "workflow", "tags": ["workflow"]}
        if stage is not None:
            extras["stage"] = stage
        return logger.bind(**extras)

    @staticmethod
    def for_poll(description: str) -> Logger:
        """Logger for per-iteration "still waiting" lines of a poll."""
        return logger.bind(source="poll", tags=["poll"], poll=description)

    @staticmethod
    def for_ssh() -> Logger:
        """Logger for SSH disk preparation steps."""
        return logger.bind(source="ssh", tags=["ssh", "prep"])

    @staticmethod
    def for_recovery() -> Logger:
        """Logger for failure classification and volume recovery."""
        return logger.bind(source="recovery", tags=["recovery"])


class EventLogger:
    """
    Structured event logger using standardized schemas.

    Provides methods for logging the events audit tooling queries from
    ``structured.jsonl`` with consistent field names. Fields are bound rather
    than passed as format kwargs since ids and names come from the CLI.
    """

    @staticmethod
    def log_clone_submitted(
        log: Logger, task_id: str, volume_ids: Iterable[str], prefix: str, **extra
    ) -> None:
        """Log clone task submission."""
        log.bind(
            event_type="clone_submitted",
            task_id=task_id,
            source_volume_ids=list(volume_ids),
            clone_prefix=prefix,
            **extra,
        ).info(f"Clone task submitted: {task_id}")

    @staticmethod
    def log_clone_completed(
        log: Logger, task_id: str, mapping: dict[str, str], **extra
    ) -> None:
        """Log clone task completion with its source -> clone mapping."""
        log.bind(
            event_type="clone_completed",
            task_id=task_id,
            mapping=mapping,
            **extra,
        ).info(f"Clone task completed: {task_id}")

    @staticmethod
    def log_status_observed(
        log: Logger, partition_id: str, status: str, elapsed: float, **extra
    ) -> None:
        """Log a partition status observation."""
        log.bind(
            event_type="status_observed",
            partition_id=partition_id,
            status=status,
            elapsed_seconds=elapsed,
            **extra,
        ).info(f"  LPAR status: {status} (elapsed {elapsed:g}s)")

    @staticmethod
    def log_retry_attempt(
        log: Logger, operation: str, attempt: int, max_attempts: int, **extra
    ) -> None:
        """Log the start of one retry attempt."""
        log.bind(
            event_type="retry_attempt",
            operation=operation,
            attempt=attempt,
            max_attempts=max_attempts,
            **extra,
        ).info(f"  {operation} attempt {attempt}/{max_attempts}")

    @staticmethod
    def log_volume_marked(
        log: Logger, volume_id: str, old_name: str, new_name: str, **extra
    ) -> None:
        """Log a recovery-marker rename."""
        log.bind(
            event_type="volume_marked",
            volume_id=volume_id,
            old_name=old_name,
            new_name=new_name,
            **extra,
        ).warning(f"  Volume preserved: {new_name}")
