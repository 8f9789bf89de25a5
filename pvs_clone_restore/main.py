import argparse
from pathlib import Path

from pvs_clone_restore.__version__ import __version__
from pvs_clone_restore.config.settings import load_run_settings
from pvs_clone_restore.domain import FailedStage, RecoveryPolicy, SourceMode
from pvs_clone_restore.exceptions import ConfigurationError
from pvs_clone_restore.logging import LoggerFactory, setup_logging
from pvs_clone_restore.workflow import CloneRestoreOrchestrator

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def build_parser():
    parser = argparse.ArgumentParser(
        prog="pvs-clone-restore",
        description="Clone a PowerVS LPAR's volumes onto a target LPAR and boot it",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--settings", type=Path, help="Path to the JSON settings file")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Also log raw command output")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    parser.add_argument("--no-json-logs", action="store_true", help="Skip the structured JSONL log")
    parser.add_argument("--target-name", help="Target LPAR name")
    parser.add_argument("--source-name", help="Source LPAR name")
    parser.add_argument("--source-instance-id", help="Source LPAR instance id")
    parser.add_argument("--clone-name", help="Base name for cloned volumes")
    parser.add_argument(
        "--source-mode",
        choices=[mode.value for mode in SourceMode],
        help="Clone attached volumes or a fresh snapshot",
    )
    parser.add_argument(
        "--recovery-policy",
        choices=[policy.value for policy in RecoveryPolicy],
        help="What to do with cloned volumes after a failure",
    )
    parser.add_argument(
        "--trigger-job",
        action="store_true",
        default=None,
        help="Submit the follow-on job after a successful run",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(
        debug=args.debug,
        trace=args.trace,
        log_dir=args.log_dir,
        json_logs=not args.no_json_logs,
    )
    log = LoggerFactory.for_run()

    overrides = {
        "target_name": args.target_name,
        "source_name": args.source_name,
        "source_instance_id": args.source_instance_id,
        "clone_name": args.clone_name,
        "source_mode": args.source_mode,
        "recovery_policy": args.recovery_policy,
        "trigger_job": args.trigger_job,
    }
    try:
        settings = load_run_settings(args.settings, overrides=overrides)
    except ConfigurationError as error:
        log.bind(failed_stage=FailedStage.CONFIGURATION.value).error(f"✗ ERROR: {error}")
        return EXIT_FAILURE

    ctx = CloneRestoreOrchestrator(settings).run()
    if ctx.job_success:
        return EXIT_SUCCESS
    stage = ctx.failed_stage.value if ctx.failed_stage else FailedStage.UNKNOWN.value
    log.error(f"Run failed at stage {stage}")
    return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
