from __future__ import annotations

import hashlib
import logging
import math
import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from newsentiment.core.circuit_breaker import CircuitBreaker
from newsentiment.core.errors import ClassificationFailed, ValidationFailed
from newsentiment.core.logger import get_logger, log_error_with_context
from newsentiment.core.models import (
    LABELS,
    NEUTRAL_SENTIMENT,
    Article,
    SentimentBreakdown,
    SentimentScore,
)
from newsentiment.core.timeutils import days_old, utcnow
from newsentiment.sentiment.base import Cache, Classifier, SentimentClient
from newsentiment.sentiment.lexicon import KeywordSentiment

log = get_logger("scorer")

_NON_WORD = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")
_HTML_TAG = re.compile(r"<[^>]+>")
_URL = re.compile(r"https?://\S+|www\.\S+")

MIN_CONFIDENCE = 0.1
MAX_WORDS = 1000
MAX_CLEAN_CHARS = 5000


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class SentimentScorer(SentimentClient):
    """Per-article classification and the weighted aggregate over a ticker's articles.

    The model path goes through ``classifier`` (guarded by an optional circuit
    breaker). A classifier error degrades that article to neutral 0.5/0.5;
    with no classifier, or while the breaker is open, the keyword lexicon
    is used instead.
    """

    def __init__(
        self,
        classifier: Optional[Classifier] = None,
        fallback: Optional[SentimentClient] = None,
        model: str = "ProsusAI/finbert",
        max_model_chars: int = 500,
        min_content_length: int = 100,
        recency_decay_days: float = 7.0,
        default_reliability: float = 1.0,
        normalize_by_weight: bool = False,
        positive_threshold: float = 0.6,
        negative_threshold: float = 0.4,
        breaker: Optional[CircuitBreaker] = None,
        cache: Optional[Cache] = None,
        cache_ttl: int = 900,
    ):
        self.classifier = classifier
        self.fallback = fallback or KeywordSentiment()
        self.model = model
        self.max_model_chars = max_model_chars
        self.min_content_length = min_content_length
        self.recency_decay_days = recency_decay_days
        self.default_reliability = default_reliability
        self.normalize_by_weight = normalize_by_weight
        self.positive_threshold = positive_threshold
        self.negative_threshold = negative_threshold
        self.breaker = breaker
        self.cache = cache
        self.cache_ttl = cache_ttl

    @classmethod
    def from_settings(cls, settings, classifier=None, cache=None) -> "SentimentScorer":
        breaker = None
        if classifier is not None:
            breaker = CircuitBreaker(
                name="classifier",
                failure_threshold=settings.classifier_failure_threshold,
                recovery_timeout=settings.classifier_recovery_timeout,
            )
        return cls(
            classifier=classifier,
            model=settings.sentiment_model,
            max_model_chars=settings.classifier_max_chars,
            min_content_length=settings.sentiment_min_text_length,
            recency_decay_days=settings.recency_decay_days,
            default_reliability=settings.default_source_reliability,
            normalize_by_weight=settings.normalize_by_weight,
            positive_threshold=settings.positive_threshold,
            negative_threshold=settings.negative_threshold,
            breaker=breaker,
            cache=cache,
            cache_ttl=settings.cache_ttl_seconds,
        )

    @staticmethod
    def normalize(text: str) -> str:
        """Lowercase, drop punctuation, collapse spaces."""
        text = _NON_WORD.sub(" ", (text or "").lower())
        return _SPACES.sub(" ", text).strip()

    def preprocess(self, text: str) -> str:
        """Normalized text cut to model input size."""
        return self.normalize(text)[: self.max_model_chars]

    @staticmethod
    def clean_content(text: str) -> str:
        """Strip markup and links, cap word and character counts."""
        text = _URL.sub(" ", _HTML_TAG.sub(" ", text or ""))
        words = text.split()
        return " ".join(words[:MAX_WORDS])[:MAX_CLEAN_CHARS]

    def is_scorable(self, text: str) -> bool:
        return len(self.clean_content(text)) >= self.min_content_length

    def analyze(self, text: str) -> SentimentScore:
        return self.classify(text)

    def classify(self, text: str) -> SentimentScore:
        cache_key = None
        if self.cache is not None:
            digest = hashlib.sha1(self.normalize(text).encode("utf-8")).hexdigest()
            cache_key = f"sentiment:{digest}"
            cached = self.cache.get(cache_key)
            if cached:
                return SentimentScore.from_dict(cached)

        if self.classifier is None:
            result = self.fallback.analyze(text)
        else:
            try:
                if self.breaker is not None:
                    result = self.breaker.call(
                        lambda: self._model_score(text),
                        fallback=lambda: self.fallback.analyze(text),
                    )
                else:
                    result = self._model_score(text)
            except Exception as e:
                log_error_with_context(log, "Classification failed, using neutral", e, level=logging.WARNING)
                return NEUTRAL_SENTIMENT

        if cache_key is not None and result.method != "default":
            self.cache.set(cache_key, result.to_dict(), self.cache_ttl)
        return result

    def _model_score(self, text: str) -> SentimentScore:
        results = self.classifier.classify(self.preprocess(text), self.model)
        top = results[0]
        label = top["label"]
        if label not in LABELS:
            raise ClassificationFailed(f"Unknown label from classifier: {label}")
        probability = _clamp(float(top["score"]), 0.0, 1.0)

        if label == "neutral":
            confidence = 1 - 2 * abs(probability - 0.5)
            polarity = 0.5
        else:
            confidence = 2 * abs(probability - 0.5)
            polarity = probability if label == "positive" else 1 - probability

        return SentimentScore(
            label=label,
            score=polarity,
            confidence=_clamp(confidence, MIN_CONFIDENCE, 1.0),
            method="model",
        )

    def score_article(self, article: Article) -> Article:
        """Attach a sentiment to ``article``.

        Raises:
            ValidationFailed: body too short to classify
        """
        if not self.is_scorable(article.content):
            raise ValidationFailed(
                [f"Content too short for sentiment (minimum {self.min_content_length} characters)"],
                url=article.url,
            )
        text = self.clean_content(f"{article.title}. {article.content}")
        return article.with_updates(sentiment=self.classify(text))

    def score_articles(self, articles: Iterable[Article]) -> List[Article]:
        """Score every article, dropping those too short to classify."""
        scored = []
        for article in articles:
            try:
                scored.append(self.score_article(article))
            except ValidationFailed as e:
                log.debug(f"Discarded: {e}")
        return scored

    def reliability(self, article: Article) -> float:
        if article.source_weight is None:
            return self.default_reliability
        return article.source_weight

    def aggregate(self, articles: Sequence[Article], now: Optional[datetime] = None) -> SentimentScore:
        """Recency and source weighted sentiment over scored articles.

        weight = exp(-days_old / decay) * reliability. The weighted sum is
        divided by the article count unless ``normalize_by_weight`` is set.
        """
        scored = [a for a in articles if a.sentiment is not None]
        if not scored:
            return NEUTRAL_SENTIMENT

        now = now or utcnow()
        polarities = [a.sentiment.polarity for a in scored]
        weights = [
            math.exp(-days_old(a.published_at, now) / self.recency_decay_days) * self.reliability(a)
            for a in scored
        ]
        n = len(scored)
        weighted_sum = sum(p * w for p, w in zip(polarities, weights))
        total_weight = sum(weights)
        if self.normalize_by_weight and total_weight > 0:
            average = weighted_sum / total_weight
        else:
            average = weighted_sum / n

        if average > self.positive_threshold:
            label = "positive"
        elif average < self.negative_threshold:
            label = "negative"
        else:
            label = "neutral"

        variance = sum((p - average) ** 2 for p in polarities) / n
        consistency = max(0.1, 1 - math.sqrt(variance))
        confidence = _clamp((consistency + 2 * abs(average - 0.5)) / 2, MIN_CONFIDENCE, 1.0)

        return SentimentScore(label=label, score=average, confidence=confidence, method="aggregate")

    def breakdown(self, articles: Sequence[Article]) -> SentimentBreakdown:
        return SentimentBreakdown.from_labels(
            [a.sentiment.label for a in articles if a.sentiment is not None]
        )

    def health(self) -> dict:
        return {
            "classifierConfigured": self.classifier is not None,
            "model": self.model,
            "breaker": self.breaker.get_stats() if self.breaker else None,
            "cacheEnabled": self.cache is not None,
        }
