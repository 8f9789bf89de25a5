"""Fixed-backoff retry used by boot configuration and partition start."""

from __future__ import annotations

import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from pvs_clone_restore.exceptions import ControlPlaneError
from pvs_clone_restore.logging import EventLogger, LoggerFactory

T = TypeVar("T")

log = LoggerFactory.for_workflow()


def _always(_error: BaseException) -> bool:
    return True


def retry(
    operation: Callable[[], T],
    max_attempts: int,
    backoff: float,
    is_retryable: Callable[[BaseException], bool] = _always,
    *,
    description: str = "Operation",
    exceptions: Tuple[Type[BaseException], ...] = (ControlPlaneError,),
    logger=None,
) -> T:
    """Run ``operation`` up to ``max_attempts`` times.

    Only exceptions listed in ``exceptions`` are retried. An error that
    ``is_retryable`` rejects is re-raised at once, skipping the remaining
    attempts. After the last failed attempt the error is re-raised without
    sleeping.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    logger = logger or log
    for attempt in range(1, max_attempts + 1):
        EventLogger.log_retry_attempt(logger, description, attempt, max_attempts)
        try:
            return operation()
        except exceptions as error:
            if not is_retryable(error):
                logger.error(f"  ✗ {description} failed with a non-retryable error")
                raise
            if attempt == max_attempts:
                logger.error(f"  ✗ {description} failed after {max_attempts} attempt(s)")
                raise
            logger.warning(
                f"  ⚠ {description} failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {backoff:g}s: {error}"
            )
            time.sleep(backoff)
    # unreachable: the loop either returns or raises
    raise AssertionError("retry loop exited without a result")


__all__ = ["retry"]
