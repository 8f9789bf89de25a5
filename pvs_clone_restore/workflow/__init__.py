"""Clone-and-restore workflow stages and the pipeline that sequences them."""

from .orchestrator import CloneRestoreOrchestrator, run_clone_restore

__all__ = ["CloneRestoreOrchestrator", "run_clone_restore"]
