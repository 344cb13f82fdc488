"""
Unit tests for structured logging and Prometheus metrics.
"""

import json
import logging

import pytest

from retail_conform.observability.logger import (
    CustomJsonFormatter,
    get_logger,
    log_operation,
    setup_logger,
)
from retail_conform.observability.metrics import (
    REGISTRY,
    generate_metrics,
    get_content_type,
    record_conformance,
    record_fact_assembly,
    stage_duration_seconds,
    track_duration,
)


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestLogger:
    """Tests for logger setup"""

    def test_module_loggers_are_children(self):
        """Test module loggers live under the application logger"""
        logger = get_logger("retail_conform.core.deduplicator")

        assert logger.name == "retail-conform.core.deduplicator"
        assert get_logger().name == "retail-conform"
        assert get_logger("retail_conform").name == "retail-conform"
        assert get_logger("test").name == "retail-conform.test"

    def test_setup_logger_level_and_handler(self):
        """Test a single handler is installed at the requested level"""
        logger = setup_logger("retail-conform-test", level="debug", format_type="text")
        setup_logger("retail-conform-test", level="debug", format_type="text")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_json_formatter_fields(self):
        """Test JSON log lines carry level, logger and extra fields"""
        formatter = CustomJsonFormatter(fmt="%(timestamp)s %(level)s %(logger)s %(message)s")
        record = logging.LogRecord(
            name="retail-conform.test", level=logging.WARNING, pathname=__file__, lineno=1,
            msg="Batch %s flagged", args=("b1",), exc_info=None,
        )
        record.dataset = "pos_items"

        payload = json.loads(formatter.format(record))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "retail-conform.test"
        assert payload["message"] == "Batch b1 flagged"
        assert payload["dataset"] == "pos_items"


class TestLogOperation:
    """Tests for log_operation"""

    def test_duration_recorded(self):
        """Test the operation duration is measured"""
        with log_operation("conform datasets", logger=get_logger("test")) as operation:
            pass

        assert operation.duration is not None
        assert operation.duration >= 0

    def test_exceptions_propagate(self):
        """Test failures are logged but not swallowed"""
        with pytest.raises(KeyError):
            with log_operation("build dimensions", logger=get_logger("test")):
                raise KeyError("dim_store")


class TestMetrics:
    """Tests for Prometheus metric helpers"""

    def test_record_conformance(self):
        """Test conformance outcomes are counted per dataset and flag"""
        before_current = _sample("conform_records_total", dataset="metrics_check", status="current")
        before_flags = _sample("conform_quality_flags_total", dataset="metrics_check", flag="MALFORMED_DATE")

        record_conformance("metrics_check", current=3, superseded=1, unkeyed=0,
                           flag_counts={"MALFORMED_DATE": 2})

        assert _sample("conform_records_total", dataset="metrics_check", status="current") == before_current + 3
        assert _sample("conform_quality_flags_total", dataset="metrics_check",
                       flag="MALFORMED_DATE") == before_flags + 2
        assert _sample("conform_duplicates_superseded_total", dataset="metrics_check") >= 1

    def test_record_fact_assembly(self):
        """Test written and quarantined fact counts"""
        before = _sample("conform_facts_written_total", fact_table="fact_check")

        record_fact_assembly("fact_check", 5, {"GRAIN_CONFLICT": 1})

        assert _sample("conform_facts_written_total", fact_table="fact_check") == before + 5
        assert _sample("conform_facts_quarantined_total", fact_table="fact_check",
                       reason="GRAIN_CONFLICT") >= 1

    def test_track_duration(self):
        """Test stage timings are observed"""
        before = _sample("conform_stage_duration_seconds_count", stage="timed_check")

        with track_duration(stage_duration_seconds, stage="timed_check"):
            pass

        assert _sample("conform_stage_duration_seconds_count", stage="timed_check") == before + 1

    def test_exposition(self):
        """Test the text exposition format"""
        record_fact_assembly("fact_exposition", 1, {})

        output = generate_metrics()

        assert b"conform_facts_written_total" in output
        assert get_content_type().startswith("text/plain")
