"""Section banners and end-of-run summaries."""

from __future__ import annotations

from typing import Iterable

from pvs_clone_restore.domain import RunContext
from pvs_clone_restore.logging import BANNER_WIDTH, get_logger

log = get_logger(source=__name__, tags=["report"])

RULE = "─" * 64


def banner(title: str, logger=None) -> None:
    logger = logger or log
    logger.info("=" * BANNER_WIDTH)
    logger.info(f" {title}")
    logger.info("=" * BANNER_WIDTH)


def _bullets(values: Iterable[str]) -> list[str]:
    lines = [f"    - {value}" for value in values]
    return lines or ["    - None"]


def success_lines(
    ctx: RunContext, *, boot_mode: str = "", operating_mode: str = ""
) -> list[str]:
    """Lines of the completion summary, in print order."""
    lines = [
        "  Status:                  ✓ SUCCESS",
        f"  Source LPAR:             {ctx.source_name}",
        f"  Target LPAR:             {ctx.target_name}",
        f"  Target Instance ID:      {ctx.target_id or '-'}",
        f"  Final Status:            {ctx.final_status or '-'}",
        f"  {RULE}",
        f"  Volumes Cloned:          {'✗ No (resumed run)' if ctx.resumed else '✓ Yes'}",
    ]
    if not ctx.resumed:
        lines.append(f"  Clone Prefix:            {ctx.clone_prefix}")
    if ctx.cloned_volumes is not None:
        lines.append(f"  Total Volumes:           {len(ctx.cloned_volumes)}")
    if boot_mode:
        lines.append(f"  Boot Mode:               {boot_mode} ({operating_mode.upper()})")
    lines.append("")
    lines.append("  Boot Volume:")
    lines.extend(_bullets([ctx.clone_boot_id] if ctx.clone_boot_id else []))
    lines.append("")
    lines.append("  Data Volumes:")
    lines.extend(_bullets(ctx.clone_data_ids))
    return lines


def print_success_summary(ctx: RunContext, *, boot_mode: str = "", operating_mode: str = "") -> None:
    banner("JOB COMPLETED SUCCESSFULLY")
    for line in success_lines(ctx, boot_mode=boot_mode, operating_mode=operating_mode):
        log.info(line)


def failure_lines(ctx: RunContext, marker: str, marked: bool) -> list[str]:
    stage = ctx.failed_stage.value if ctx.failed_stage else "UNKNOWN_STAGE"
    return [
        f" Target LPAR    : {ctx.target_name}",
        f" Failure stage  : {stage}",
        f" Reason         : {ctx.failure_reason or '-'}",
        f" Volumes marked : {marker if marked else 'none'}",
        " Cleanup job    : separate job required",
    ]


def print_failure_summary(ctx: RunContext, marker: str, marked: bool) -> None:
    banner("FAILURE SUMMARY")
    for line in failure_lines(ctx, marker, marked):
        log.error(line)
    log.info("=" * BANNER_WIDTH)
