from __future__ import annotations

import time
from typing import Any, Callable, List, Optional

import httpx

from newsentiment.core.errors import (
    ClassificationFailed,
    ClassifierAuthError,
    ClassifierRateLimited,
    ClassifierUnavailable,
)
from newsentiment.core.logger import get_logger
from newsentiment.core.rate_limiter import spacing_bucket
from newsentiment.core.retry import build_retrying

log = get_logger("huggingface")


class HuggingFaceClassifier:
    """Financial sentiment classifier behind the Hugging Face Inference API.

    Calls are spaced ``request_delay`` seconds apart. A 429 waits out
    ``rate_limit_cooldown`` and is retried; auth failures are not.

    Configuration:
        HUGGINGFACE_API_KEY: API token
        HUGGINGFACE_BASE_URL: default https://api-inference.huggingface.co
        SENTIMENT_MODEL: default ProsusAI/finbert

    Usage:
        classifier = HuggingFaceClassifier(api_key="hf_...")
        classifier.classify("shares rally on record profit")
        # [{"label": "positive", "score": 0.93}, ...]
        classifier.close()
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api-inference.huggingface.co",
        model: str = "ProsusAI/finbert",
        timeout: float = 30.0,
        request_delay: float = 1.0,
        rate_limit_cooldown: float = 5.0,
        max_attempts: int = 3,
        min_wait: float = 1.0,
        max_wait: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY is required")

        self.base_url = base_url.rstrip("/")
        self.model = model
        self.rate_limit_cooldown = rate_limit_cooldown
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self._sleep = sleep
        self._spacing = spacing_bucket(request_delay)

        self.client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    @classmethod
    def from_settings(cls, settings, **kwargs: Any) -> "HuggingFaceClassifier":
        return cls(
            api_key=settings.huggingface_api_key,
            base_url=settings.huggingface_base_url,
            model=settings.sentiment_model,
            timeout=settings.classifier_timeout,
            request_delay=settings.classifier_request_delay,
            rate_limit_cooldown=settings.classifier_rate_limit_cooldown,
            max_attempts=settings.classifier_max_attempts,
            **kwargs,
        )

    def close(self) -> None:
        self.client.close()
        log.debug("Hugging Face client closed")

    def _parse_response(self, data: Any) -> List[dict]:
        if isinstance(data, dict):
            raise ClassificationFailed(f"Classifier error: {data.get('error', data)}")
        # Single input comes back as [[{label, score}, ...]]
        if isinstance(data, list) and data and isinstance(data[0], list):
            data = data[0]
        if not isinstance(data, list):
            raise ClassificationFailed(f"Unexpected classifier response: {str(data)[:100]}")

        results = []
        for item in data:
            try:
                results.append({"label": str(item["label"]).lower(), "score": float(item["score"])})
            except (KeyError, TypeError, ValueError):
                log.warning(f"Skipping malformed classifier entry: {item}")
        if not results:
            raise ClassificationFailed("Empty classifier response")
        return sorted(results, key=lambda r: r["score"], reverse=True)

    def _request(self, text: str, model: str) -> List[dict]:
        if self._spacing is not None:
            self._spacing.acquire()

        url = f"{self.base_url}/models/{model}"
        try:
            response = self.client.post(
                url, json={"inputs": text, "options": {"wait_for_model": True}}
            )
        except (httpx.TimeoutException, httpx.ConnectError):
            raise
        except httpx.RequestError as e:
            raise ClassifierUnavailable(f"Request error: {e}") from e

        if response.status_code == 429:
            log.warning(f"Classifier rate limited, cooling down {self.rate_limit_cooldown:.0f}s")
            self._sleep(self.rate_limit_cooldown)
            raise ClassifierRateLimited("Rate limit exceeded")
        if response.status_code in (401, 403):
            raise ClassifierAuthError(f"Classifier rejected credentials ({response.status_code})")
        if response.status_code >= 500:
            raise ClassifierUnavailable(f"Classifier unavailable ({response.status_code})")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ClassificationFailed(f"API error: {e.response.status_code}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise ClassificationFailed("Classifier returned invalid JSON") from e
        return self._parse_response(data)

    def classify(self, text: str, model: Optional[str] = None) -> List[dict]:
        """Label scores for ``text``, best first.

        Raises:
            ClassificationFailed: after retries, or immediately on auth errors
        """
        retrying = build_retrying(
            max_attempts=self.max_attempts,
            min_wait=self.min_wait,
            max_wait=self.max_wait,
            sleep=self._sleep,
        )
        try:
            return retrying(self._request, text, model or self.model)
        except httpx.RequestError as e:
            log.error(f"Classifier request error: {e}")
            raise ClassificationFailed(f"Request error: {e}") from e

    def test_connection(self) -> bool:
        try:
            self.classify("Markets opened flat today.")
            return True
        except ClassificationFailed as e:
            log.error(f"Classifier connection test failed: {e}")
            return False
