"""Fire-and-forget submission of the follow-on Code Engine job."""

from __future__ import annotations

from pvs_clone_restore.config.settings import JobTriggerSettings
from pvs_clone_restore.exceptions import ControlPlaneError
from pvs_clone_restore.logging import get_logger

log = get_logger(source=__name__, tags=["job-trigger"])


def trigger_follow_on_job(client, settings: JobTriggerSettings) -> str | None:
    """Submit the follow-on job run and return its name.

    Every failure is downgraded to a warning: by the time this runs the
    restore itself has already succeeded.
    """
    if not settings.enabled:
        log.info("→ Follow-on job not requested - skipping")
        return None
    if not settings.job_name:
        log.warning("⚠ WARNING: Follow-on job requested but no job_name configured")
        return None

    log.info(f"→ Triggering follow-on job: {settings.job_name}...")
    if settings.resource_group:
        try:
            client.target_resource_group(settings.resource_group)
        except ControlPlaneError as error:
            log.warning(f"⚠ WARNING: Unable to target resource group {settings.resource_group}: {error}")
    if settings.project:
        try:
            client.target_code_engine_project(settings.project)
        except ControlPlaneError as error:
            log.warning(f"⚠ WARNING: Unable to target Code Engine project {settings.project}: {error}")

    try:
        run_name = client.submit_job_run(settings.job_name)
    except ControlPlaneError as error:
        log.warning(f"⚠ WARNING: Job submission failed: {error}")
        return None
    if not run_name:
        log.warning("⚠ WARNING: Job submission did not return a jobrun name")
        return None
    log.info(f"✓ Follow-on job triggered: {run_name}")
    return run_name
