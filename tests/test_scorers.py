"""
Tests for HTTP model scorers. No network: the requests session is mocked.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from curtaincall.buckets import Bucket
from curtaincall.config import Settings
from curtaincall.errors import ModelCallError
from curtaincall.retry import CircuitBreaker
from curtaincall.scorers import HttpModelScorer, parse_model_response, scorers_from_settings


def _response(status=200, payload=None, bad_json=False):
    r = MagicMock()
    r.status_code = status
    if bad_json:
        r.json.side_effect = ValueError("Expecting value")
    else:
        r.json.return_value = payload
    return r


def _scorer(session, **kwargs):
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("base_delay", 0)
    return HttpModelScorer("claude", "https://models.example/score", api_key="k", session=session, **kwargs)


class TestParseModelResponse:

    def test_full_payload(self):
        judgment = parse_model_response("a", {"bucket": "positive", "score": 78, "confidence": "HIGH"})
        assert judgment.bucket == Bucket.POSITIVE
        assert judgment.score == 78
        assert judgment.confidence == "high"

    def test_wrapped_result(self):
        judgment = parse_model_response("a", {"result": {"bucket": "Pan", "score": 12}})
        assert judgment.bucket == Bucket.PAN

    def test_score_only(self):
        assert parse_model_response("a", {"score": 91}).bucket == Bucket.RAVE

    @pytest.mark.parametrize("payload", [
        ["Rave"],
        {"bucket": "Great", "score": 90},
        {"bucket": "Rave", "score": "ninety"},
        {"bucket": "Rave", "score": 140},
        {"confidence": "high"},
    ])
    def test_malformed(self, payload):
        with pytest.raises(ModelCallError):
            parse_model_response("a", payload)


class TestHttpModelScorer:

    def test_success(self):
        session = MagicMock()
        session.post.return_value = _response(payload={"bucket": "Rave", "score": 92})
        scorer = _scorer(session)

        judgment = scorer.score("A triumph.", {"show_id": "s1"})
        assert judgment.is_valid
        assert judgment.score == 92

        _args, kwargs = session.post.call_args
        assert kwargs["json"]["text"] == "A triumph."
        assert kwargs["json"]["context"] == {"show_id": "s1"}
        assert kwargs["headers"]["Authorization"] == "Bearer k"
        metrics = scorer.logger.get_metrics()
        assert metrics["model_success_rate"]["claude"]["successes"] == 1

    def test_retries_transient_status_then_succeeds(self):
        session = MagicMock()
        session.post.side_effect = [
            _response(status=503),
            _response(status=429),
            _response(payload={"bucket": "Mixed", "score": 60}),
        ]
        judgment = _scorer(session).score("text")
        assert judgment.is_valid
        assert session.post.call_count == 3

    def test_retries_timeouts_until_exhausted(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("read timed out")
        scorer = _scorer(session)

        judgment = scorer.score("text")
        assert not judgment.is_valid
        assert "Failed after 3 attempts" in judgment.error
        assert session.post.call_count == 3
        assert scorer.logger.get_metrics()["errors_by_type"]["RetryError"] == 1

    def test_client_error_is_not_retried(self):
        session = MagicMock()
        session.post.return_value = _response(status=400)
        judgment = _scorer(session).score("text")
        assert judgment.error == "claude: HTTP 400"
        assert session.post.call_count == 1

    def test_non_json_body(self):
        session = MagicMock()
        session.post.return_value = _response(bad_json=True)
        judgment = _scorer(session).score("text")
        assert "not JSON" in judgment.error

    def test_malformed_payload_becomes_error_marker(self):
        session = MagicMock()
        session.post.return_value = _response(payload={"bucket": "Superb"})
        judgment = _scorer(session).score("text")
        assert not judgment.is_valid
        assert "unknown bucket" in judgment.error

    def test_open_circuit_short_circuits(self):
        session = MagicMock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.on_failure()
        judgment = _scorer(session, circuit_breaker=breaker).score("text")
        assert not judgment.is_valid
        assert "Circuit breaker is OPEN" in judgment.error
        session.post.assert_not_called()

    def test_failures_open_the_circuit(self):
        session = MagicMock()
        session.post.return_value = _response(status=401)
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        scorer = _scorer(session, circuit_breaker=breaker)
        scorer.score("a")
        scorer.score("b")
        assert breaker.state == CircuitBreaker.OPEN

    def test_long_text_is_truncated(self):
        session = MagicMock()
        session.post.return_value = _response(payload={"score": 50})
        _scorer(session).score("x" * 50000)
        assert len(session.post.call_args[1]["json"]["text"]) == 20000

    def test_ascore(self):
        session = MagicMock()
        session.post.return_value = _response(payload={"bucket": "Negative", "score": 40})
        judgment = asyncio.run(_scorer(session).ascore("text"))
        assert judgment.bucket == Bucket.NEGATIVE


class TestScorersFromSettings:

    def test_builds_at_most_three(self):
        settings = Settings(model_endpoints=(
            ("a", "https://a"), ("b", "https://b"), ("c", "https://c"), ("d", "https://d"),
        ))
        scorers = scorers_from_settings(settings)
        assert [s.model for s in scorers] == ["a", "b", "c"]
        assert scorers[0].timeout == settings.model_timeout

    def test_none_configured(self, settings):
        assert scorers_from_settings(settings) == []
