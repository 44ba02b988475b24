"""Structured logging tests."""

import io
import json

import pytest
from loguru import logger

from barcache.core.logging import LogConfig, StructuredLogger, configure_logging, current_trace_id, log_context


@pytest.fixture
def stream():
    buffer = io.StringIO()
    configure_logging("INFO", console_stream=buffer)
    yield buffer
    configure_logging("WARNING")


def _records(buffer: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in buffer.getvalue().splitlines() if line.strip()]


class TestStructuredLogger:
    def test_default_config(self):
        config = LogConfig()
        assert config.level == "INFO"
        assert config.console_output is True
        assert config.file_output is False

    def test_level_is_upper_cased(self):
        assert LogConfig(level="debug").level == "DEBUG"

    def test_dynamic_configuration(self):
        structured = StructuredLogger(LogConfig(console_output=False))
        structured.configure(level="DEBUG")
        assert structured.config.level == "DEBUG"
        configure_logging("WARNING")


def test_records_are_json_with_promoted_keys(stream):
    logger.info("vendor_fetch_failed", vendor="alpaca", granularity="5m", error="boom")

    (record,) = _records(stream)
    assert record["message"] == "vendor_fetch_failed"
    assert record["level"] == "INFO"
    assert record["vendor"] == "alpaca"
    assert record["granularity"] == "5m"
    assert record["error_code"] is None
    assert record["context"] == {"error": "boom"}
    assert record["trace_id"]


def test_level_filters_records(stream):
    logger.debug("too_chatty")
    logger.warning("kept")

    assert [record["message"] for record in _records(stream)] == ["kept"]


def test_log_context_propagates_fields_and_trace(stream):
    with log_context(trace_id="trace-1", job_type="scheduled", granularity="1d"):
        logger.info("ingestion_started", symbols=3)
        assert current_trace_id() == "trace-1"
    logger.info("outside")

    inside, outside = _records(stream)
    assert inside["trace_id"] == "trace-1"
    assert inside["granularity"] == "1d"
    assert inside["context"] == {"job_type": "scheduled", "symbols": 3}
    assert outside["trace_id"] != "trace-1"
    assert outside["granularity"] is None


def test_explicit_field_wins_over_context(stream):
    with log_context(granularity="1d"):
        logger.info("override", granularity="5m")

    assert _records(stream)[0]["granularity"] == "5m"


def test_exceptions_are_summarized(stream):
    try:
        raise ValueError("bad bar")
    except ValueError:
        logger.exception("ingestion_job_failed")

    record = _records(stream)[0]
    assert record["level"] == "ERROR"
    assert record["exception"] == "ValueError: bad bar"


def test_file_output(tmp_path):
    path = tmp_path / "logs" / "barcache.jsonl"
    configure_logging("INFO", console_output=False, file_output=True, file_path=str(path))
    try:
        logger.info("written", symbol="AAPL")
    finally:
        configure_logging("WARNING")

    record = json.loads(path.read_text().splitlines()[0])
    assert record["context"] == {"symbol": "AAPL"}
