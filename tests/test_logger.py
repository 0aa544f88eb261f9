"""
Tests for logger functionality.
"""

import pytest
from pathlib import Path
from surveylink.logger import StructuredLogger, get_logger, reset_logger


class TestStructuredLogger:
    """Test structured logging functionality."""

    def test_logger_creation(self, tmp_path):
        """Logger should be created with default settings."""
        logger = StructuredLogger(
            name="test",
            level="INFO",
            log_dir=tmp_path,
            enable_console=False,
        )

        assert logger.logger.name == "test"
        assert logger.metrics["rows_imported"] == 0

    def test_log_methods(self, tmp_path):
        """All log level methods should work."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        # Should not raise exceptions
        logger.debug("Debug message")
        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message")
        logger.critical("Critical message")

    def test_log_with_context(self, tmp_path):
        """Context values that JSON can't encode are stringified."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_file=True,
            enable_console=False,
        )

        logger.info("Message with context", path=Path("data/x.json"), count=5)

        content = next(tmp_path.glob("*.log")).read_text()
        assert '"count": 5' in content
        assert "x.json" in content

    def test_import_metrics(self, tmp_path):
        """Import counters should be tracked."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.record_import()
        logger.record_import()
        logger.record_duplicate()
        logger.record_import_failure("ValidationError")

        metrics = logger.get_metrics()

        assert metrics["rows_imported"] == 2
        assert metrics["duplicates_skipped"] == 1
        assert metrics["rows_failed"] == 1
        assert metrics["rows_seen"] == 4
        assert metrics["errors_by_type"]["ValidationError"] == 1
        assert metrics["import_success_rate"] == pytest.approx(0.5)

    def test_match_metrics(self, tmp_path):
        """Matches should be counted per origin."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.record_match("AUTO_EMAIL")
        logger.record_match("AUTO_EMAIL")
        logger.record_match("MANUAL")
        logger.record_parse_warning()

        metrics = logger.get_metrics()
        assert metrics["matches_by_origin"] == {"AUTO_EMAIL": 2, "MANUAL": 1}
        assert metrics["parse_warnings"] == 1
        assert "import_success_rate" not in metrics

    def test_log_file_creation(self, tmp_path):
        """Log file should be created in specified directory."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_file=True,
            enable_console=False,
        )

        logger.info("Test message")

        log_files = list(tmp_path.glob("surveylink_*.log"))
        assert len(log_files) == 1
        assert "Test message" in log_files[0].read_text()

    def test_file_logging_disabled_by_env(self, tmp_path, monkeypatch):
        """SURVEYLINK_LOG_TO_FILE=0 should suppress the file handler."""
        monkeypatch.setenv("SURVEYLINK_LOG_TO_FILE", "0")
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.info("Test message")

        assert list(tmp_path.glob("*.log")) == []


class TestGlobalLogger:
    """Test global logger singleton."""

    def test_get_logger_singleton(self, tmp_path):
        """get_logger should return same instance."""
        reset_logger()  # Start fresh

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger2 = get_logger()

        assert logger1 is logger2

    def test_reset_logger(self, tmp_path):
        """reset_logger should create new instance."""
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger1.record_import()

        reset_logger()

        logger2 = get_logger(log_dir=tmp_path, enable_console=False)

        # Should be different instance with fresh metrics
        assert logger2.metrics["rows_imported"] == 0
