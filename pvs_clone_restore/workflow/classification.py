"""Classification of partition start failures."""

from __future__ import annotations

from pvs_clone_restore.exceptions import CommandFailedError

# Error kind / text reported while the target is still attaching volumes.
ATTACHING_VOLUME = "attaching_volume"


def is_retryable_start_error(error: BaseException) -> bool:
    """Return True if a start failure is the transient "still attaching" case.

    A structured ``error_kind`` of ``attaching_volume`` is retryable on its
    own. Any other kind is usually the generic HTTP text (``Conflict``) with
    the detail in the description, so the full output is still searched for
    the ``attaching_volume`` signature.
    """
    if isinstance(error, CommandFailedError):
        if error.error_kind and error.error_kind.strip().lower() == ATTACHING_VOLUME:
            return True
        text = error.output
    else:
        text = str(error)
    return ATTACHING_VOLUME in text.lower()


__all__ = ["ATTACHING_VOLUME", "is_retryable_start_error"]
