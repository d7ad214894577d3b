from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from newsentiment.core.errors import (
    NavigationFailed,
    RateLimitExceeded,
    ValidationFailed,
)
from newsentiment.core.logger import (
    LogContext,
    get_logger,
    log_crawl_event,
    log_error_with_context,
    set_correlation_id,
)
from newsentiment.core.models import (
    NEUTRAL_SENTIMENT,
    AggregateResult,
    Article,
    DateRange,
    SearchResult,
    SentimentBreakdown,
    SourceConfig,
    SourceStatus,
)
from newsentiment.core.rate_limiter import SourceRateLimiter
from newsentiment.core.timeutils import utcnow
from newsentiment.crawler.extraction import ContentExtractor
from newsentiment.crawler.navigation import NavigationService
from newsentiment.crawler.session_pool import CrawlSession, SessionPool
from newsentiment.data.cache import cache_key
from newsentiment.ingestion.dedupe import Deduplicator
from newsentiment.parsers.base import FINANCE_KEYWORDS, SourceParser
from newsentiment.parsers.registry import ParserRegistry
from newsentiment.sentiment.scorer import SentimentScorer

log = get_logger("orchestrator")

TICKER_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9&.\-]{0,19}$")

EMPTY_MESSAGE = "No news articles found from any source"

STATE_INIT = "INIT"
STATE_EXTRACTING = "EXTRACTING"
STATE_SCORING = "SCORING"
STATE_MERGED = "MERGED"
STATE_DONE = "DONE"
STATE_EMPTY = "EMPTY"


def normalize_ticker(ticker: Optional[str]) -> str:
    """Strip and upper-case; raises ValueError for empty or malformed symbols."""
    cleaned = (ticker or "").strip().upper()
    if not cleaned:
        raise ValueError("ticker must not be empty")
    if not TICKER_PATTERN.match(cleaned):
        raise ValueError(f"invalid ticker: {ticker!r}")
    return cleaned


def relevance_score(article: Article, ticker: str, keywords: Sequence[str] = FINANCE_KEYWORDS) -> float:
    """0..1: ticker in the title counts most, then ticker in the body, then finance vocabulary."""
    title = (article.title or "").upper()
    body = (article.content or "").upper()
    score = 0.0
    if ticker in title:
        score += 0.5
    if ticker in body or ticker in article.stock_symbols:
        score += 0.3
    lowered = body.lower()
    matches = sum(1 for kw in keywords if kw in lowered)
    score += 0.2 * min(matches / 5, 1.0)
    return round(score, 3)


def _sort_key(article: Article):
    published = article.published_at.timestamp() if article.published_at else float("-inf")
    priority = article.source_priority if article.source_priority is not None else 99
    relevance = article.relevance_score if article.relevance_score is not None else 0.0
    return (priority, -relevance, -published)


@dataclass
class FetchResult:
    ticker: str
    articles: List[Article] = field(default_factory=list)
    per_source_status: Dict[str, SourceStatus] = field(default_factory=dict)
    message: str = ""
    states: List[str] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.articles)

    @property
    def contributing_sources(self) -> List[str]:
        return sorted({a.source for a in self.articles})


class NewsOrchestrator:
    """Crawls every enabled source for a ticker and merges what they return.

    Sources are tried one after another in priority order. A source that is
    out of budget is skipped, one that fails is recorded and the next one is
    tried; only a missing parser or a pool that cannot start aborts the
    request.

    Usage:
        orchestrator = NewsOrchestrator(sources, limiter, pool, navigator,
                                        extractor, registry, scorer)
        result = orchestrator.get_sentiment("RELIANCE")
        print(result.overall_sentiment.label, result.message)
    """

    def __init__(
        self,
        sources: Sequence[SourceConfig],
        rate_limiter: SourceRateLimiter,
        pool: SessionPool,
        navigator: NavigationService,
        extractor: ContentExtractor,
        registry: ParserRegistry,
        scorer: SentimentScorer,
        cache: Optional[Any] = None,
        store: Optional[Any] = None,
        dedupe: Optional[Deduplicator] = None,
        max_articles_per_source: int = 10,
        cache_ttl: int = 900,
    ):
        self.sources = sorted(sources, key=lambda s: s.priority)
        self.rate_limiter = rate_limiter
        self.pool = pool
        self.navigator = navigator
        self.extractor = extractor
        self.registry = registry
        self.scorer = scorer
        self.cache = cache
        self.store = store
        self.dedupe = dedupe or Deduplicator(enabled=False)
        self.max_articles_per_source = max_articles_per_source
        self.cache_ttl = cache_ttl

    def _prepare(self) -> None:
        """Setup checks that abort the whole request: parsers, then the pool."""
        for source in self.sources:
            self.registry.get(source.name)
        if not self.pool.initialized:
            self.pool.initialize()

    def fetch_news(
        self,
        ticker: str,
        date_range: Optional[DateRange] = None,
        limit: int = 20,
    ) -> FetchResult:
        """Crawl, validate and merge articles for ``ticker``, without scoring.

        Raises:
            ValueError: empty or malformed ticker
            ParserNotFound: an enabled source has no parser
            PoolInitError: the browser pool could not be started
        """
        ticker = normalize_ticker(ticker)
        self._prepare()
        return self._collect(ticker, date_range, limit, score=False)

    def _collect(
        self,
        ticker: str,
        date_range: Optional[DateRange],
        limit: int,
        score: bool,
    ) -> FetchResult:
        date_range = date_range or DateRange()
        result = FetchResult(ticker=ticker, states=[STATE_INIT])
        collected: List[Article] = []
        log.info(f"Fetching news for {ticker} from {len(self.sources)} source(s)")

        for source in self.sources:
            status = SourceStatus(source=source.name)
            result.per_source_status[source.name] = status

            if not self.rate_limiter.can_make_request(source.name):
                error = RateLimitExceeded(source.name, self.rate_limiter.time_until_reset(source.name))
                status.status = "skipped"
                status.error = str(error)
                log_crawl_event(log, "source_skipped", source.name, ticker=ticker, reason="rate_limited")
                continue

            result.states.append(f"SEARCHING({source.name})")
            with LogContext(ticker=ticker, source=source.name):
                try:
                    articles = self._crawl_source(source, ticker, date_range, status, result.states, score)
                except Exception as e:
                    status.status = "failed"
                    status.error = str(e)
                    log_error_with_context(
                        log, f"Source {source.name} failed", e, level=logging.WARNING, ticker=ticker
                    )
                    continue

            status.count = len(articles)
            status.status = "success" if articles else "empty"
            collected.extend(articles)
            log_crawl_event(
                log, "source_done", source.name, ticker=ticker, count=len(articles), discarded=status.discarded
            )

        merged = self.dedupe.dedupe(sorted(collected, key=_sort_key))
        result.articles = merged[:limit]
        result.states.append(STATE_MERGED)

        if result.articles:
            result.message = (
                f"Found {result.total_count} articles from {len(result.contributing_sources)} sources"
            )
        else:
            result.message = EMPTY_MESSAGE
        log.info(f"{ticker}: {result.message}")
        return result

    def _request_recorder(self, source: str) -> Callable[[], None]:
        """Charges one request to ``source`` per page load attempt."""
        return lambda: self.rate_limiter.record_request(source)

    def _crawl_source(
        self,
        source: SourceConfig,
        ticker: str,
        date_range: DateRange,
        status: SourceStatus,
        states: List[str],
        score: bool,
    ) -> List[Article]:
        parser = self.registry.get(source.name)
        search_url = parser.build_search_url(ticker)
        found: List[Article] = []

        record = self._request_recorder(source.name)
        with self.pool.session() as session:
            self.navigator.navigate(session, search_url, on_attempt=record)
            self.navigator.wait_for_elements(session, [parser.selectors.search_results])
            results = self.registry.parse_search_results(source.name, session.page.content(), search_url)
            log_crawl_event(log, "search_loaded", source.name, ticker=ticker, count=len(results))
            if not results:
                return found

            states.append(STATE_EXTRACTING)
            if score:
                states.append(STATE_SCORING)

            for search_result in results[: self.max_articles_per_source]:
                self.navigator.delay(self.rate_limiter.recommended_delay(source.name))
                if not self.rate_limiter.can_make_request(source.name):
                    log_crawl_event(log, "budget_exhausted", source.name, ticker=ticker)
                    break
                try:
                    article = self._fetch_article(
                        session, source, parser, search_result, ticker, date_range, status, record
                    )
                    if article is not None and score:
                        article = self.scorer.score_article(article)
                except ValidationFailed as e:
                    status.discarded += 1
                    log.debug(f"Not scored: {e}")
                    continue
                except Exception as e:
                    status.discarded += 1
                    log_error_with_context(
                        log, "Article failed", e, level=logging.WARNING, url=search_result.url
                    )
                    continue
                if article is not None:
                    found.append(article)
        return found

    def _fetch_article(
        self,
        session: CrawlSession,
        source: SourceConfig,
        parser: SourceParser,
        search_result: SearchResult,
        ticker: str,
        date_range: DateRange,
        status: SourceStatus,
        record: Callable[[], None],
    ) -> Optional[Article]:
        url = search_result.url
        try:
            self.navigator.navigate(session, url, on_attempt=record)
        except NavigationFailed as e:
            status.discarded += 1
            log_error_with_context(log, "Article skipped", e, level=logging.WARNING, url=url)
            return None

        html = session.page.content()
        extracted = self.extractor.extract(html, url)
        parsed = self.registry.parse_document(source.name, html, url)
        article = self._merge_fields(parsed, extracted, search_result)

        try:
            self._validate(parser, article, extracted)
        except ValidationFailed as e:
            status.discarded += 1
            log.debug(f"Discarded {url}: {'; '.join(e.errors)}")
            return None

        if not date_range.contains(article.published_at):
            status.discarded += 1
            log.debug(f"Out of date range: {url}")
            return None

        symbols = article.stock_symbols or tuple(
            self.registry.extract_stock_symbols(source.name, article.text)
        )
        article = article.with_updates(stock_symbols=symbols)
        article = article.with_updates(
            relevance_score=relevance_score(article, ticker),
            source_priority=source.priority,
            source_weight=source.reliability,
        )
        log_crawl_event(log, "article_parsed", source.name, url=url)
        return article

    @staticmethod
    def _merge_fields(parsed: Optional[Article], extracted, search_result: SearchResult) -> Article:
        """Parser fields win; the generic extractor and the search listing fill gaps."""
        base = parsed or Article(
            title="", content="", url=search_result.url, source=search_result.source
        )
        return base.with_updates(
            title=base.title or extracted.title or search_result.title,
            content=base.content or extracted.content,
            url=base.url or extracted.url,
            published_at=base.published_at or extracted.published_at or search_result.published_at,
            author=base.author or extracted.author,
            summary=base.summary or extracted.description or search_result.summary,
            tags=base.tags or extracted.keywords,
        )

    def _validate(self, parser: SourceParser, article: Article, extracted) -> None:
        """Parser rules plus the generic extractor rules, both over the merged fields.

        Length minimums come from the parser, since exchange filings run shorter
        than editorial articles.
        """
        rules = replace(
            self.extractor.rules,
            min_title_length=parser.min_title_length,
            min_content_length=parser.min_content_length,
        )
        generic = self.extractor.validate(
            replace(
                extracted,
                title=article.title,
                content=article.content,
                url=article.url,
                published_at=article.published_at,
                author=article.author,
            ),
            rules,
        )
        validation = self.registry.validate_data(parser.name, article).merge(generic)
        if not validation.is_valid:
            raise ValidationFailed(validation.errors, url=article.url)

    def get_sentiment(
        self,
        ticker: str,
        date_range: Optional[DateRange] = None,
        limit: int = 20,
    ) -> AggregateResult:
        """Fetch, score and aggregate news sentiment for ``ticker``.

        Cached results are returned as-is. Failures after setup come back as
        a neutral result carrying ``error``.

        Raises:
            ValueError: empty or malformed ticker
            ParserNotFound: an enabled source has no parser
            PoolInitError: the browser pool could not be started
        """
        ticker = normalize_ticker(ticker)
        set_correlation_id()
        key = cache_key(ticker, date_range, limit)

        cached = self.cache.get(key) if self.cache is not None else None
        if cached:
            log.info(f"Cache hit for {key}")
            return AggregateResult.from_dict(cached)

        self._prepare()
        try:
            fetched = self._collect(ticker, date_range, limit, score=True)
            result = self._build_result(ticker, fetched)
        except Exception as e:
            log_error_with_context(log, f"Sentiment request for {ticker} failed", e, ticker=ticker)
            return AggregateResult(
                ticker=ticker,
                overall_sentiment=NEUTRAL_SENTIMENT,
                articles=(),
                total_articles=0,
                breakdown=SentimentBreakdown(),
                last_updated=utcnow(),
                message=f"Sentiment analysis failed for {ticker}",
                error=str(e),
                states=(STATE_INIT, STATE_EMPTY),
            )

        log.info(f"{ticker}: {' -> '.join(result.states)}")
        self._persist(result)
        if self.cache is not None and result.total_articles:
            self.cache.set(key, result.to_dict(), self.cache_ttl)
        return result

    def _build_result(self, ticker: str, fetched: FetchResult, now: Optional[datetime] = None) -> AggregateResult:
        articles = tuple(fetched.articles)
        if not articles:
            return AggregateResult(
                ticker=ticker,
                overall_sentiment=NEUTRAL_SENTIMENT,
                articles=(),
                total_articles=0,
                breakdown=SentimentBreakdown(),
                last_updated=utcnow(),
                message=fetched.message or EMPTY_MESSAGE,
                per_source_status=fetched.per_source_status,
                states=tuple(fetched.states + [STATE_EMPTY]),
            )
        return AggregateResult(
            ticker=ticker,
            overall_sentiment=self.scorer.aggregate(articles, now),
            articles=articles,
            total_articles=len(articles),
            breakdown=self.scorer.breakdown(articles),
            last_updated=utcnow(),
            message=fetched.message,
            per_source_status=fetched.per_source_status,
            states=tuple(fetched.states + [STATE_DONE]),
        )

    def _persist(self, result: AggregateResult) -> None:
        if self.store is None:
            return
        try:
            self.store.save(result)
        except Exception as e:
            log_error_with_context(log, "Failed to persist result", e, level=logging.WARNING, ticker=result.ticker)

    def status(self) -> Dict[str, Any]:
        """Limiter, pool and parser health rolled up into operational / degraded / down."""
        limiter = self.rate_limiter.statuses()
        pool = self.pool.status()
        parsers = self.registry.health()
        available = [name for name, s in limiter.items() if s["canMakeRequest"]]

        no_sessions = pool["initialized"] and pool["idle"] + pool["inUse"] == 0
        if pool["closed"] or no_sessions or not available:
            overall = "down"
        elif (
            len(available) < len(limiter)
            or pool["dropped"]
            or not all(p["healthy"] for p in parsers.values())
        ):
            overall = "degraded"
        else:
            overall = "operational"

        cache_stats = None
        if self.cache is not None and hasattr(self.cache, "get_stats"):
            cache_stats = self.cache.get_stats()

        return {
            "status": overall,
            "sources": limiter,
            "pool": pool,
            "parsers": parsers,
            "sentiment": self.scorer.health(),
            "cache": cache_stats,
            "timestamp": utcnow().isoformat(),
        }
