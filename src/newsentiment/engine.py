from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from newsentiment.config import Settings, get_settings
from newsentiment.core.logger import get_logger
from newsentiment.core.rate_limiter import SourceRateLimiter
from newsentiment.crawler.extraction import ContentExtractor, ValidationRules
from newsentiment.crawler.navigation import NavigationService
from newsentiment.crawler.session_pool import PlaywrightSessionFactory, SessionFactory, SessionPool
from newsentiment.data.cache import create_cache
from newsentiment.data.store import create_store
from newsentiment.ingestion.dedupe import Deduplicator
from newsentiment.ingestion.orchestrator import NewsOrchestrator
from newsentiment.parsers.registry import ParserRegistry, create_default_registry
from newsentiment.sentiment.huggingface import HuggingFaceClassifier
from newsentiment.sentiment.scorer import SentimentScorer

log = get_logger("engine")


@dataclass
class Engine:
    settings: Settings
    orchestrator: NewsOrchestrator
    pool: SessionPool
    registry: ParserRegistry
    scorer: SentimentScorer
    classifier: Optional[HuggingFaceClassifier] = None
    cache: Optional[Any] = None

    def close(self) -> None:
        self.pool.close()
        if self.classifier is not None:
            self.classifier.close()
        if self.cache is not None and hasattr(self.cache, "close"):
            self.cache.close()
        log.debug("Engine closed")


def make_classifier(settings: Settings) -> Optional[HuggingFaceClassifier]:
    """Model classifier when a token is configured; None selects the keyword lexicon."""
    if settings.huggingface_api_key:
        log.info(f"Using Hugging Face classifier ({settings.sentiment_model}).")
        return HuggingFaceClassifier.from_settings(settings)
    log.info("Using keyword sentiment (no HUGGINGFACE_API_KEY).")
    return None


def build_engine(
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
    classifier: Optional[Any] = None,
    cache: Optional[Any] = None,
    store: Optional[Any] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Engine:
    """Wire every component from settings. The pool is not started yet."""
    settings = settings or get_settings()
    sources = settings.enabled_source_configs()

    factory = session_factory or PlaywrightSessionFactory(
        headless=settings.browser_headless,
        viewport_width=settings.viewport_width,
        viewport_height=settings.viewport_height,
        timeout_ms=settings.page_timeout_ms,
    )
    pool = SessionPool(factory, size=settings.browser_pool_size)
    limiter = SourceRateLimiter.from_sources(sources, window_seconds=settings.rate_limit_window_seconds)
    registry = create_default_registry(sources)

    if classifier is None:
        classifier = make_classifier(settings)
    if cache is None:
        cache = create_cache(settings)
    if store is None:
        store = create_store(settings)

    scorer = SentimentScorer.from_settings(settings, classifier=classifier, cache=cache)
    orchestrator = NewsOrchestrator(
        sources=sources,
        rate_limiter=limiter,
        pool=pool,
        navigator=NavigationService.from_settings(settings, sleep=sleep),
        extractor=ContentExtractor(ValidationRules.from_settings(settings)),
        registry=registry,
        scorer=scorer,
        cache=cache,
        store=store,
        dedupe=Deduplicator.from_settings(settings),
        max_articles_per_source=settings.max_articles_per_source,
        cache_ttl=settings.cache_ttl_seconds,
    )
    return Engine(
        settings=settings,
        orchestrator=orchestrator,
        pool=pool,
        registry=registry,
        scorer=scorer,
        classifier=classifier if isinstance(classifier, HuggingFaceClassifier) else None,
        cache=cache,
    )


@contextmanager
def open_engine(settings: Optional[Settings] = None, **kwargs: Any) -> Iterator[Engine]:
    """Build, and close everything on exit.

    Browsers start on the first request that misses the cache.
    """
    engine = build_engine(settings, **kwargs)
    try:
        yield engine
    finally:
        engine.close()
