"""
Structured logging system for surveylink.

Provides centralized logging with console and file outputs, plus run metrics
for imports, matching and manual-override parsing.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks counters for import and matching runs.
    """

    def __init__(
        self,
        name: str = "surveylink",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: Optional[bool] = None,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: $SURVEYLINK_LOG_DIR or logs/)
            enable_file: Write logs to file (default: $SURVEYLINK_LOG_TO_FILE, on)
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        if enable_file is None:
            enable_file = os.getenv("SURVEYLINK_LOG_TO_FILE", "1").strip().lower() not in {"0", "false", "no", "off"}

        # Metrics tracking
        self.metrics = {
            "rows_imported": 0,
            "duplicates_skipped": 0,
            "rows_failed": 0,
            "parse_warnings": 0,
            "matches_by_origin": {},
            "errors_by_type": {},
        }

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path(os.getenv("SURVEYLINK_LOG_DIR", "logs"))
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"surveylink_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_import(self):
        """Count one imported survey row."""
        self.metrics["rows_imported"] += 1

    def record_duplicate(self):
        """Count one row skipped by the ingestion guard."""
        self.metrics["duplicates_skipped"] += 1

    def record_import_failure(self, error_type: str):
        """Count one row that failed validation or insertion."""
        self.metrics["rows_failed"] += 1
        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def record_match(self, origin: str):
        """Count one pairing created with the given origin."""
        by_origin = self.metrics["matches_by_origin"]
        by_origin[origin] = by_origin.get(origin, 0) + 1

    def record_parse_warning(self):
        """Count one skipped manual-override line."""
        self.metrics["parse_warnings"] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = self.metrics.copy()
        attempted = (
            metrics_copy["rows_imported"]
            + metrics_copy["duplicates_skipped"]
            + metrics_copy["rows_failed"]
        )
        metrics_copy["rows_seen"] = attempted
        if attempted > 0:
            metrics_copy["import_success_rate"] = round(
                metrics_copy["rows_imported"] / attempted, 3
            )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Run Metrics ===")
        self.info(
            f"Rows: {metrics['rows_imported']} imported, "
            f"{metrics['duplicates_skipped']} duplicate, {metrics['rows_failed']} failed"
        )

        if metrics["matches_by_origin"]:
            self.info("Matches by origin:")
            for origin, count in metrics["matches_by_origin"].items():
                self.info(f"  {origin}: {count}")

        if metrics["parse_warnings"]:
            self.info(f"Manual-override lines skipped: {metrics['parse_warnings']}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "surveylink",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
