"""
Tests for logger functionality.
"""

import pytest

from curtaincall.logger import StructuredLogger, get_logger, reset_logger


def _logger(tmp_path, **kwargs) -> StructuredLogger:
    return StructuredLogger(name="test", log_dir=tmp_path, enable_console=False, **kwargs)


class TestStructuredLogger:
    """Test structured logging and run metrics."""

    def test_logger_creation(self, tmp_path):
        logger = _logger(tmp_path)
        assert logger.logger.name == "test"
        assert logger.metrics["model_calls"] == 0
        assert logger.metrics["score_sources"] == {}

    def test_log_with_context_written_to_file(self, tmp_path):
        logger = _logger(tmp_path)
        logger.info("Flagged for review", key="hamilton:nytimes|jesse-green", delta=22)

        log_files = list(tmp_path.glob("*.log"))
        assert len(log_files) == 1
        content = log_files[0].read_text()
        assert "Flagged for review" in content
        assert '"delta": 22' in content

    def test_file_disabled(self, tmp_path):
        logger = _logger(tmp_path / "none", enable_file=False)
        logger.warning("not persisted")
        assert not (tmp_path / "none").exists()

    def test_model_metrics(self, tmp_path):
        logger = _logger(tmp_path)

        logger.record_model_attempt("claude")
        logger.record_model_success("claude")
        logger.record_model_attempt("gpt")
        logger.record_model_failure("gpt", "RetryError")
        logger.record_model_attempt("gpt")
        logger.record_model_success("gpt")

        metrics = logger.get_metrics()
        assert metrics["model_calls"] == 3
        assert metrics["model_calls_successful"] == 2
        assert metrics["model_calls_failed"] == 1
        assert metrics["errors_by_type"] == {"RetryError": 1}
        assert metrics["model_success_rate"]["claude"]["success_rate"] == 1.0
        assert metrics["model_success_rate"]["gpt"]["success_rate"] == pytest.approx(0.5)

    def test_scoring_metrics(self, tmp_path):
        logger = _logger(tmp_path)
        logger.record_score_source("ensemble")
        logger.record_score_source("ensemble")
        logger.record_score_source("explicit-rating")
        logger.record_flagged()
        logger.record_rejected()

        metrics = logger.get_metrics()
        assert metrics["score_sources"] == {"ensemble": 2, "explicit-rating": 1}
        assert metrics["records_flagged"] == 1
        assert metrics["records_rejected"] == 1

    def test_metrics_summary_does_not_raise(self, tmp_path):
        logger = _logger(tmp_path)
        logger.log_metrics_summary()
        logger.record_model_attempt("claude")
        logger.record_model_failure("claude", "ModelCallError")
        logger.record_score_source("aggregator-only")
        logger.log_metrics_summary()
        content = next(tmp_path.glob("*.log")).read_text()
        assert "Scoring Run Metrics" in content
        assert "aggregator-only: 1" in content


class TestGlobalLogger:
    """Test the process-wide logger."""

    def test_get_logger_singleton(self, tmp_path):
        reset_logger()
        first = get_logger(log_dir=tmp_path, enable_console=False)
        assert get_logger() is first

    def test_reset_logger_gives_fresh_metrics(self, tmp_path):
        reset_logger()
        first = get_logger(log_dir=tmp_path, enable_console=False)
        first.record_flagged()

        reset_logger()
        second = get_logger(log_dir=tmp_path, enable_console=False)
        assert second is not first
        assert second.metrics["records_flagged"] == 0
