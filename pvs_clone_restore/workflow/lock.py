"""Advisory per-target lock so two runs never drive the same partition.

The lock is an ``fcntl`` file lock on ``<lock_dir>/<target>.lock``. It only
guards runs on the same host sharing a lock directory, and is released by the
kernel if the process dies.

Usage:
    from pvs_clone_restore.workflow.lock import target_lock

    with target_lock("lpar-dr-01", lock_dir):
        run_pipeline(...)
"""

from __future__ import annotations

import fcntl
import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from pvs_clone_restore.exceptions import TargetBusyError
from pvs_clone_restore.logging import LoggerFactory

log = LoggerFactory.for_workflow()

# Lock files currently held by this process, keyed by path.
_held: set[str] = set()


def lock_path_for(target: str, lock_dir: Path) -> Path:
    safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", target) or "_"
    return Path(lock_dir) / f"{safe_name}.lock"


@contextmanager
def target_lock(target: str, lock_dir: Path, enabled: bool = True) -> Generator[Path | None, None, None]:
    """Hold the advisory lock for ``target`` for the duration of the block.

    Raises:
        TargetBusyError: If another run holds the lock
    """
    if not enabled:
        log.debug("Target lock disabled")
        yield None
        return

    path = lock_path_for(target, lock_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    if str(path) in _held:
        raise TargetBusyError(target, str(path))

    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as error:
            raise TargetBusyError(target, str(path)) from error
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        _held.add(str(path))
        log.debug(f"Target lock acquired: {path}")
        try:
            yield path
        finally:
            _held.discard(str(path))
            fcntl.flock(fd, fcntl.LOCK_UN)
            log.debug(f"Target lock released: {path}")
    finally:
        os.close(fd)


def is_target_locked(target: str, lock_dir: Path) -> bool:
    """Check whether some run currently holds the lock for ``target``."""
    path = lock_path_for(target, lock_dir)
    if str(path) in _held:
        return True
    if not path.exists():
        return False
    fd = os.open(path, os.O_RDWR)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
        return False
    finally:
        os.close(fd)
