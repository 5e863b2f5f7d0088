"""
HTTP model scorers.

Each scorer posts review text to a JSON endpoint and expects back

    {"bucket": "Positive", "score": 78, "confidence": "high"}

Transient failures (timeouts, connection errors, 429/5xx) are retried with
exponential backoff. Anything else, including malformed output, becomes a
ModelScore carrying an error marker so the ensemble degrades for that review
only.
"""

import asyncio
import os
from typing import Any, Dict, Optional

import requests

from .buckets import Bucket
from .ensemble import ModelScore
from .errors import ModelCallError
from .logger import get_logger
from .retry import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    exponential_backoff,
    should_retry_http_status,
)

DEFAULT_TIMEOUT = 60.0
MAX_TEXT_CHARS = 20000


class TransientModelError(ModelCallError):
    """A model call failure worth retrying."""
    pass


def parse_model_response(model: str, data: Any) -> ModelScore:
    """
    Turn a decoded JSON response into a ModelScore.

    Raises:
        ModelCallError: If the payload does not carry a usable bucket or score
    """
    if isinstance(data, dict) and isinstance(data.get("result"), dict):
        data = data["result"]
    if not isinstance(data, dict):
        raise ModelCallError(model, f"expected a JSON object, got {type(data).__name__}")

    bucket_raw = data.get("bucket")
    bucket = Bucket.parse(bucket_raw)
    if bucket_raw is not None and bucket is None:
        raise ModelCallError(model, f"unknown bucket {bucket_raw!r}")

    score = data.get("score")
    if score is not None:
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ModelCallError(model, f"score must be a number, got {score!r}")
        if not 0 <= score <= 100:
            raise ModelCallError(model, f"score {score} outside 0-100")
    if bucket is None and score is None:
        raise ModelCallError(model, "response has neither bucket nor score")

    confidence = str(data.get("confidence") or "medium").strip().lower()
    return ModelScore(model=model, bucket=bucket, score=score, confidence=confidence)


class HttpModelScorer:
    """Scores review text by calling one model endpoint."""

    def __init__(
        self,
        model: str,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        base_delay: float = 1.0,
        session: Optional[requests.Session] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.model = model
        self.endpoint = endpoint
        self.api_key = api_key or os.getenv("CURTAINCALL_MODEL_API_KEY")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=120)
        self.logger = get_logger()

        self._post = exponential_backoff(
            max_retries=max_retries,
            base_delay=base_delay,
            max_delay=30.0,
            exceptions=(TransientModelError,),
            on_retry=self._log_retry,
        )(self._post_once)

    def _log_retry(self, attempt: int, error: Exception, delay: float):
        self.logger.warning(
            "Retrying model call",
            model=self.model,
            attempt=attempt,
            delay=delay,
            error=str(error),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post_once(self, payload: Dict[str, Any]) -> Any:
        try:
            r = self.session.post(
                self.endpoint, json=payload, headers=self._headers(), timeout=self.timeout
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientModelError(self.model, str(e)) from e

        if should_retry_http_status(r.status_code):
            raise TransientModelError(self.model, f"HTTP {r.status_code}")
        if r.status_code >= 400:
            raise ModelCallError(self.model, f"HTTP {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise ModelCallError(self.model, f"response is not JSON: {e}") from e

    def score(self, text: str, context: Optional[Dict[str, Any]] = None) -> ModelScore:
        """
        Score one review. Never raises; failures come back as an error marker.
        """
        payload = {"model": self.model, "text": (text or "")[:MAX_TEXT_CHARS]}
        if context:
            payload["context"] = context

        self.logger.record_model_attempt(self.model)
        try:
            self.breaker.before_call()
            data = self._post(payload)
            result = parse_model_response(self.model, data)
        except CircuitOpenError as e:
            return self._failed("CircuitOpenError", str(e), count_breaker=False)
        except RetryError as e:
            return self._failed("RetryError", str(e))
        except ModelCallError as e:
            return self._failed(type(e).__name__, str(e))
        except requests.RequestException as e:
            return self._failed(type(e).__name__, str(e))

        self.breaker.on_success()
        self.logger.record_model_success(self.model)
        return result

    def _failed(self, error_type: str, message: str, count_breaker: bool = True) -> ModelScore:
        if count_breaker:
            self.breaker.on_failure()
        self.logger.record_model_failure(self.model, error_type)
        self.logger.warning("Model call failed", model=self.model, error_type=error_type, error=message)
        return ModelScore.failed(self.model, message)

    async def ascore(self, text: str, context: Optional[Dict[str, Any]] = None) -> ModelScore:
        return await asyncio.to_thread(self.score, text, context)


def scorers_from_settings(settings) -> list:
    """One HttpModelScorer per configured endpoint, at most three."""
    return [
        HttpModelScorer(
            model=label,
            endpoint=url,
            timeout=settings.model_timeout,
            max_retries=settings.model_max_retries,
        )
        for label, url in settings.model_endpoints[:3]
    ]
