"""Poll primitive shared by every waiting stage."""

from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar

from pvs_clone_restore.exceptions import PollTimeoutError

T = TypeVar("T")


def poll_until(
    probe: Callable[[], T],
    is_done: Callable[[T], bool],
    *,
    interval: float,
    timeout: Optional[float] = None,
    description: str = "condition",
    on_wait: Optional[Callable[[T, float], None]] = None,
) -> T:
    """Call ``probe`` until ``is_done`` accepts its result.

    Elapsed time is the sum of the intervals slept, so a bound of 1800s with a
    60s interval gives 31 probes regardless of how long each probe takes.
    ``timeout=None`` waits forever. ``is_done`` may raise to abort early on a
    terminal failure state.

    Raises:
        PollTimeoutError: If ``timeout`` elapses before the condition holds
    """
    elapsed = 0.0
    while True:
        value = probe()
        if is_done(value):
            return value
        if timeout is not None and elapsed >= timeout:
            raise PollTimeoutError(description, elapsed, timeout)
        if on_wait is not None:
            on_wait(value, elapsed)
        time.sleep(interval)
        elapsed += interval
