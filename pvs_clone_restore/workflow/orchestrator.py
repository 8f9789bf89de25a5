"""Linear clone-and-restore pipeline with a guaranteed failure finalizer.

Stage order::

    target lock -> authentication -> target lookup / resume guard
      -> [snapshot] -> volume identification -> clone -> availability
      -> attach -> boot -> final status check

The resume guard skips everything from identification to attach. Whatever
happens inside the pipeline, the finalizer runs afterwards with the recorded
``FailedStage`` unless the run succeeded.
"""

from __future__ import annotations

from contextlib import ExitStack
from datetime import datetime
from typing import Optional

from pvs_clone_restore.config.settings import RunSettings
from pvs_clone_restore.domain import FailedStage, RunContext, SourceMode
from pvs_clone_restore.exceptions import AuthenticationError, CloneRestoreError, ControlPlaneError
from pvs_clone_restore.logging import new_run_id, run_context, stage_context
from pvs_clone_restore.powervs import DiskPreparation, PowerVSClient, trigger_follow_on_job
from pvs_clone_restore.report import print_success_summary

from .attachment import attach_and_confirm
from .boot import BootOptions, boot_partition, verify_final_status
from .cloning import map_cloned_volumes, submit_clone, verify_volumes_available, wait_for_clone_task
from .lock import target_lock
from .recovery import finalize_failure
from .resume import check_resume, resolve_target
from .snapshot import create_source_snapshot, snapshot_volume_set
from .volumes import identify_source_volumes, resolve_source_id


class CloneRestoreOrchestrator:
    """Drives one run against one target partition."""

    def __init__(
        self,
        settings: RunSettings,
        client=None,
        disk_prep: Optional[DiskPreparation] = None,
        now: Optional[datetime] = None,
    ):
        self.settings = settings
        self.client = client or PowerVSClient()
        self.disk_prep = disk_prep or DiskPreparation(settings.ssh)
        self.now = now

    @property
    def boot_options(self) -> BootOptions:
        s = self.settings
        return BootOptions(
            boot_mode=s.boot_mode,
            operating_mode=s.boot_operating_mode,
            config_attempts=s.boot_config_attempts,
            start_attempts=s.start_attempts,
            retry_backoff=s.retry_backoff,
            pre_start_pause=s.pre_start_pause,
            poll_interval=s.poll_interval,
            max_boot_wait=s.max_boot_wait,
        )

    def new_context(self) -> RunContext:
        return RunContext(
            source_name=self.settings.source_label,
            target_name=self.settings.target_name,
            clone_prefix=self.settings.clone_prefix(self.now),
        )

    def run(self, run_id: Optional[str] = None) -> RunContext:
        """Run the pipeline and the finalizer; never raises for stage failures."""
        ctx = self.new_context()
        with run_context(run_id or new_run_id(), target=ctx.target_name) as log:
            log.info(f"Clone & restore: {ctx.source_name} -> {ctx.target_name}")
            # The lock stays held until the finalizer is done with the target.
            with ExitStack() as stack:
                try:
                    with stage_context(ctx, FailedStage.TARGET_LOCK, "PRE-FLIGHT: TARGET LOCK"):
                        stack.enter_context(
                            target_lock(ctx.target_name, self.settings.lock_dir, self.settings.lock_enabled)
                        )
                    self._run_pipeline(ctx)
                except CloneRestoreError:
                    # Already tagged and logged by stage_context.
                    pass
                except Exception as error:
                    ctx.record_failure(ctx.current_stage, str(error))
                    log.exception(f"Unexpected error in stage {ctx.current_stage.value}")
                finally:
                    if not ctx.job_success:
                        if ctx.failed_stage is None:
                            # Interrupted (e.g. KeyboardInterrupt) inside a stage.
                            ctx.record_failure(ctx.current_stage, "run interrupted")
                        finalize_failure(
                            self.client,
                            ctx,
                            policy=self.settings.recovery_policy,
                            marker=self.settings.failure_marker,
                            poll_interval=self.settings.poll_interval,
                            max_detach_wait=self.settings.max_detach_wait,
                        )

            if ctx.job_success:
                print_success_summary(
                    ctx,
                    boot_mode=self.settings.boot_mode,
                    operating_mode=self.settings.boot_operating_mode,
                )
                trigger_follow_on_job(self.client, self.settings.job)
        return ctx

    def _run_pipeline(self, ctx: RunContext) -> None:
        s = self.settings
        client = self.client

        with stage_context(ctx, FailedStage.AUTHENTICATION, "IBM CLOUD AUTHENTICATION & WORKSPACE TARGETING") as log:
            log.info(f"→ Authenticating to IBM Cloud (Region: {s.region})...")
            self._authenticate()
            log.info("✓ Authentication and workspace targeting complete")

        with stage_context(ctx, FailedStage.TARGET_LOOKUP, "RESOLVE TARGET LPAR"):
            ctx.target_id = resolve_target(client, s.target_name)
            resumed = check_resume(client, ctx.target_id, s.target_name)
            if resumed is not None:
                ctx.cloned_volumes = resumed
                ctx.resumed = True

        if not ctx.resumed:
            self._clone_and_attach(ctx)

        with stage_context(ctx, FailedStage.STARTUP, "BOOT TARGET LPAR"):
            boot_partition(client, ctx.target_id, self.boot_options)

        with stage_context(ctx, FailedStage.FINAL_STATUS_CHECK, "FINAL VALIDATION"):
            ctx.final_status = verify_final_status(client, ctx.target_id)
            ctx.job_success = True

    def _authenticate(self) -> None:
        s = self.settings
        steps = (
            ("logging in", lambda: self.client.login(s.api_key, s.region)),
            (f"targeting resource group {s.resource_group}", lambda: self.client.target_resource_group(s.resource_group)),
            ("targeting workspace", lambda: self.client.target_workspace(s.workspace_crn)),
        )
        for step, call in steps:
            try:
                call()
            except ControlPlaneError as error:
                raise AuthenticationError(step, str(error)) from error

    def _clone_and_attach(self, ctx: RunContext) -> None:
        s = self.settings
        client = self.client

        if s.source_mode is SourceMode.SNAPSHOT:
            with stage_context(ctx, FailedStage.SNAPSHOT, "CREATE SOURCE SNAPSHOT"):
                snapshot = create_source_snapshot(
                    client, s.source_name, ctx.clone_prefix, poll_interval=s.snapshot_poll_interval
                )
                ctx.snapshot_id = snapshot.snapshot_id
            with stage_context(ctx, FailedStage.VOLUME_IDENTIFICATION, "EXTRACT SNAPSHOT VOLUME INFORMATION"):
                ctx.source_volumes = snapshot_volume_set(snapshot)
        else:
            with stage_context(ctx, FailedStage.VOLUME_IDENTIFICATION, "IDENTIFY SOURCE VOLUMES"):
                ctx.source_id = resolve_source_id(client, s.source_instance_id, s.source_name)
                ctx.source_volumes = identify_source_volumes(client, ctx.source_id)

        with stage_context(ctx, FailedStage.CLONE, "CLONE SOURCE VOLUMES"):
            ctx.clone_task_id = submit_clone(
                client,
                ctx.source_volumes,
                ctx.clone_prefix,
                storage_tier=s.storage_tier,
                disk_prep=self.disk_prep,
            )
            task = wait_for_clone_task(client, ctx.clone_task_id, interval=s.clone_poll_interval)
            ctx.cloned_volumes = map_cloned_volumes(task, ctx.source_volumes)

        with stage_context(ctx, FailedStage.VOLUME_AVAILABILITY, "VERIFY CLONED VOLUMES AVAILABLE"):
            verify_volumes_available(
                client,
                ctx.cloned_volumes.all_ids,
                interval=s.poll_interval,
                timeout=s.max_availability_wait,
            )

        with stage_context(ctx, FailedStage.ATTACH_VOLUME, "ATTACH VOLUMES TO TARGET LPAR"):
            attach_and_confirm(
                client,
                ctx.target_id,
                ctx.cloned_volumes,
                initial_wait=s.initial_attach_wait,
                interval=s.poll_interval,
                max_wait=s.max_attach_wait,
                post_attach_pause=s.post_attach_pause,
            )


def run_clone_restore(settings: RunSettings, client=None, **kwargs) -> RunContext:
    return CloneRestoreOrchestrator(settings, client=client, **kwargs).run()
