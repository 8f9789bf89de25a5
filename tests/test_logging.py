"""Tests for logging setup and helpers."""

from __future__ import annotations

import pytest

from pvs_clone_restore import logging as logging_module
from pvs_clone_restore.domain import FailedStage, RunContext
from pvs_clone_restore.exceptions import AttachTimeoutError


@pytest.fixture(autouse=True)
def drop_sinks():
    """Remove sinks added by setup_logging() so they do not outlive the test."""
    yield
    logging_module.logger.remove()


def test_setup_logging_creates_sinks(tmp_path):
    """Test run.log and structured.jsonl are written."""
    log_dir = tmp_path / "logs"
    logging_module.setup_logging(log_dir=log_dir)

    logging_module.get_logger(source="test", tags=["unit"]).info("hello run log")
    logging_module.logger.complete()

    assert "hello run log" in (log_dir / "run.log").read_text()
    assert (log_dir / "structured.jsonl").exists()
    assert not (log_dir / "debug.log").exists()


def test_setup_logging_debug_sink(tmp_path):
    log_dir = tmp_path / "logs"
    logging_module.setup_logging(debug=True, log_dir=log_dir, json_logs=False)

    logging_module.get_logger(source="test").debug("debug detail")
    logging_module.logger.complete()

    assert "debug detail" in (log_dir / "debug.log").read_text()
    assert not (log_dir / "structured.jsonl").exists()


def test_get_logger_preserves_context_metadata(log_records):
    """Test bound logger keeps run_id, tags, and source metadata."""
    log = logging_module.get_logger(run_id="run-123", tags=["clone"], source="clone")
    log.info("Context test")

    record = log_records[-1]
    assert record["extra"]["run_id"] == "run-123"
    assert record["extra"]["tags"] == ["clone"]
    assert record["extra"]["source"] == "clone"


def test_poll_progress_shown_on_console(tmp_path, capsys):
    logging_module.setup_logging(log_dir=tmp_path, json_logs=False)

    poll_log = logging_module.LoggerFactory.for_poll("attach tgt-1")
    poll_log.info("Volumes not fully visible yet")
    poll_log.debug("raw probe result")

    err = capsys.readouterr().err
    assert "Volumes not fully visible yet" in err
    assert "raw probe result" not in err


def test_debug_console_shows_poll_detail(tmp_path, capsys):
    logging_module.setup_logging(debug=True, log_dir=tmp_path, json_logs=False)

    logging_module.LoggerFactory.for_poll("attach tgt-1").debug("raw probe result")

    assert "raw probe result" in capsys.readouterr().err


def test_new_run_id_format():
    run_id = logging_module.new_run_id()

    assert run_id.startswith("run-")
    assert len(run_id) == 12


class TestStageContext:
    def test_success_sets_current_stage(self, log_records):
        ctx = RunContext("src", "tgt", "prefix")

        with logging_module.stage_context(ctx, FailedStage.CLONE, "CLONE") as log:
            log.info("inside")

        assert ctx.current_stage is FailedStage.CLONE
        assert ctx.failed_stage is None
        assert any(r["level"].name == "SUCCESS" for r in log_records)
        assert all(
            r["extra"].get("stage") == "CLONE" for r in log_records if r["message"] == "inside"
        )

    def test_failure_uses_exception_stage(self):
        ctx = RunContext("src", "tgt", "prefix")

        with pytest.raises(AttachTimeoutError):
            with logging_module.stage_context(ctx, FailedStage.STARTUP, "BOOT"):
                raise AttachTimeoutError("tgt", "boot volume missing")

        assert ctx.failed_stage is FailedStage.ATTACH_VOLUME

    def test_failure_without_stage_uses_entered_stage(self, log_records):
        ctx = RunContext("src", "tgt", "prefix")

        with pytest.raises(RuntimeError):
            with logging_module.stage_context(ctx, FailedStage.CLONE, "CLONE"):
                raise RuntimeError("output with {braces}")

        assert ctx.failed_stage is FailedStage.CLONE
        assert ctx.failure_reason == "output with {braces}"
        assert any("✗ ERROR: output with {braces}" == r["message"] for r in log_records)


class TestEventLogger:
    def test_retry_attempt_event(self, log_records):
        log = logging_module.get_logger(source="test")

        logging_module.EventLogger.log_retry_attempt(log, "Start", 2, 3)

        record = log_records[-1]
        assert record["message"] == "  Start attempt 2/3"
        assert record["extra"]["event_type"] == "retry_attempt"
        assert record["extra"]["attempt"] == 2

    def test_volume_marked_event_is_warning(self, log_records):
        log = logging_module.get_logger(source="test")

        logging_module.EventLogger.log_volume_marked(log, "v1", "boot", "boot__FAILED")

        record = log_records[-1]
        assert record["level"].name == "WARNING"
        assert record["extra"]["new_name"] == "boot__FAILED"

    def test_clone_completed_event(self, log_records):
        log = logging_module.get_logger(source="test")

        logging_module.EventLogger.log_clone_completed(log, "task-1", {"s": "c"})

        assert log_records[-1]["extra"]["mapping"] == {"s": "c"}
