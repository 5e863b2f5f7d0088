"""
Structured logging for CurtainCall batch runs.

Provides console and file output plus run metrics (model call health,
which cascade tier produced each score, how many records were flagged or
rejected) so a batch can be summarized at the end of a run.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class StructuredLogger:
    """
    Logger with console/file outputs and per-run scoring metrics.
    """

    def __init__(
        self,
        name: str = "curtaincall",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to a dated file
            enable_console: Write logs to stdout
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()
        self.logger.propagate = False

        self.metrics = {
            "model_calls": 0,
            "model_calls_successful": 0,
            "model_calls_failed": 0,
            "errors_by_type": {},
            "model_success_rate": {},
            "score_sources": {},
            "records_flagged": 0,
            "records_rejected": 0,
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_handler.setFormatter(logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            self.logger.addHandler(console_handler)

        if enable_file:
            log_dir = Path("logs") if log_dir is None else Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"{name}_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking

    def record_model_attempt(self, model: str):
        """Record one call to a scoring model."""
        self.metrics["model_calls"] += 1
        stats = self.metrics["model_success_rate"].setdefault(
            model, {"attempts": 0, "successes": 0}
        )
        stats["attempts"] += 1

    def record_model_success(self, model: str):
        self.metrics["model_calls_successful"] += 1
        if model in self.metrics["model_success_rate"]:
            self.metrics["model_success_rate"][model]["successes"] += 1

    def record_model_failure(self, model: str, error_type: str):
        """Record a failed model call, bucketed by error type."""
        self.metrics["model_calls_failed"] += 1
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def record_score_source(self, source: str):
        """Count which cascade tier produced a final score."""
        sources = self.metrics["score_sources"]
        sources[source] = sources.get(source, 0) + 1

    def record_flagged(self):
        self.metrics["records_flagged"] += 1

    def record_rejected(self):
        self.metrics["records_rejected"] += 1

    def get_metrics(self) -> dict:
        """Return current metrics with per-model success rates filled in."""
        metrics_copy = self.metrics.copy()
        for model, stats in metrics_copy["model_success_rate"].items():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(stats["successes"] / stats["attempts"], 3)
        return metrics_copy

    def log_metrics_summary(self):
        metrics = self.get_metrics()

        attempts = metrics["model_calls"]
        successes = metrics["model_calls_successful"]
        overall_rate = round(successes / attempts * 100, 1) if attempts else 0

        self.info("=== Scoring Run Metrics ===")
        self.info(f"Model calls: {successes}/{attempts} ({overall_rate}% success)")
        self.info(f"Flagged for review: {metrics['records_flagged']}")
        self.info(f"Rejected records: {metrics['records_rejected']}")

        if metrics["model_success_rate"]:
            self.info("Model success rates:")
            for model, stats in metrics["model_success_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {model}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["score_sources"]:
            self.info("Score sources:")
            for source, count in sorted(metrics["score_sources"].items()):
                self.info(f"  {source}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "curtaincall",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the process-wide logger.

    Args:
        name: Logger name
        level: Log level
        **kwargs: Passed through to StructuredLogger on first creation

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Drop the process-wide logger (used by tests)."""
    global _global_logger
    _global_logger = None
