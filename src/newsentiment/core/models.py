from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Sequence, Tuple

from newsentiment.core.timeutils import ensure_aware, iso, utcnow

SentimentLabel = Literal["positive", "negative", "neutral"]
LABELS: Tuple[str, ...] = ("positive", "negative", "neutral")


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_aware(datetime.fromisoformat(value))


@dataclass(frozen=True)
class SentimentScore:
    """Label plus score for one article or for an aggregate.

    ``signed`` scores (keyword lexicon) run -1..+1; all others are
    polarity on 0..1 where 1 is fully positive.
    """

    label: str
    score: float
    confidence: float
    method: str = "model"  # model / keyword / default / aggregate
    signed: bool = False

    @property
    def polarity(self) -> float:
        if self.signed:
            return (self.score + 1.0) / 2.0
        return self.score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "score": round(self.score, 4),
            "confidence": round(self.confidence, 4),
            "method": self.method,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SentimentScore":
        method = data.get("method", "model")
        return cls(
            label=data["label"],
            score=float(data["score"]),
            confidence=float(data["confidence"]),
            method=method,
            signed=method == "keyword",
        )


# Returned whenever nothing could be scored
NEUTRAL_SENTIMENT = SentimentScore(label="neutral", score=0.5, confidence=0.5, method="default")


@dataclass(frozen=True)
class SentimentBreakdown:
    positive: int = 0
    negative: int = 0
    neutral: int = 0
    positive_percentage: float = 0.0
    negative_percentage: float = 0.0
    neutral_percentage: float = 0.0

    @property
    def total(self) -> int:
        return self.positive + self.negative + self.neutral

    @classmethod
    def from_labels(cls, labels: Sequence[str]) -> "SentimentBreakdown":
        counts = {label: 0 for label in LABELS}
        for label in labels:
            counts[label if label in counts else "neutral"] += 1
        total = sum(counts.values())

        def pct(count: int) -> float:
            return round(count / total * 100, 1) if total else 0.0

        return cls(
            positive=counts["positive"],
            negative=counts["negative"],
            neutral=counts["neutral"],
            positive_percentage=pct(counts["positive"]),
            negative_percentage=pct(counts["negative"]),
            neutral_percentage=pct(counts["neutral"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positive": self.positive,
            "negative": self.negative,
            "neutral": self.neutral,
            "positivePercentage": self.positive_percentage,
            "negativePercentage": self.negative_percentage,
            "neutralPercentage": self.neutral_percentage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SentimentBreakdown":
        return cls(
            positive=int(data.get("positive", 0)),
            negative=int(data.get("negative", 0)),
            neutral=int(data.get("neutral", 0)),
            positive_percentage=float(data.get("positivePercentage", 0.0)),
            negative_percentage=float(data.get("negativePercentage", 0.0)),
            neutral_percentage=float(data.get("neutralPercentage", 0.0)),
        )


@dataclass(frozen=True)
class DateRange:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, dt: Optional[datetime]) -> bool:
        """Undated articles are always in range."""
        if dt is None:
            return True
        dt = ensure_aware(dt)
        if self.start is not None and dt < ensure_aware(self.start):
            return False
        if self.end is not None and dt > ensure_aware(self.end):
            return False
        return True

    def cache_fragment(self) -> str:
        start = self.start.isoformat() if self.start else "*"
        end = self.end.isoformat() if self.end else "*"
        return f"{start}:{end}"


@dataclass(frozen=True)
class SourceConfig:
    name: str
    display_name: str
    base_url: str
    search_url: str
    priority: int
    max_requests_per_hour: int
    enabled: bool = True
    reliability: float = 1.0
    news_url: Optional[str] = None
    search_param: str = "q"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "baseUrl": self.base_url,
            "searchUrl": self.search_url,
            "newsUrl": self.news_url,
            "priority": self.priority,
            "maxRequestsPerHour": self.max_requests_per_hour,
            "enabled": self.enabled,
            "reliability": self.reliability,
        }


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool = True
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @classmethod
    def from_lists(cls, errors: Sequence[str], warnings: Sequence[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult.from_lists(
            list(self.errors) + [e for e in other.errors if e not in self.errors],
            list(self.warnings) + [w for w in other.warnings if w not in self.warnings],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class SearchResult:
    url: str
    title: str
    source: str
    summary: Optional[str] = None
    published_at: Optional[datetime] = None
    extracted_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ExtractedContent:
    url: str
    title: str
    content: str
    description: str = ""
    keywords: Tuple[str, ...] = ()
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    validation: ValidationResult = field(default_factory=ValidationResult)


@dataclass(frozen=True)
class Article:
    title: str
    content: str
    url: str
    source: str
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    summary: Optional[str] = None
    tags: Tuple[str, ...] = ()
    stock_symbols: Tuple[str, ...] = ()
    relevance_score: Optional[float] = None
    source_priority: Optional[int] = None
    source_weight: Optional[float] = None
    sentiment: Optional[SentimentScore] = None

    @property
    def text(self) -> str:
        """Title and body joined for classification."""
        if self.title and self.content:
            return f"{self.title}. {self.content}"
        return self.title or self.content

    def with_updates(self, **changes: Any) -> "Article":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "source": self.source,
            "publishedAt": iso(self.published_at),
            "author": self.author,
            "summary": self.summary,
            "tags": list(self.tags),
            "stockSymbols": list(self.stock_symbols),
            "relevanceScore": self.relevance_score,
            "sourcePriority": self.source_priority,
            "sourceWeight": self.source_weight,
            "sentiment": self.sentiment.to_dict() if self.sentiment else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        sentiment = data.get("sentiment")
        return cls(
            title=data["title"],
            content=data["content"],
            url=data["url"],
            source=data["source"],
            published_at=_parse_dt(data.get("publishedAt")),
            author=data.get("author"),
            summary=data.get("summary"),
            tags=tuple(data.get("tags") or ()),
            stock_symbols=tuple(data.get("stockSymbols") or ()),
            relevance_score=data.get("relevanceScore"),
            source_priority=data.get("sourcePriority"),
            source_weight=data.get("sourceWeight"),
            sentiment=SentimentScore.from_dict(sentiment) if sentiment else None,
        )


@dataclass
class SourceStatus:
    """Outcome of crawling one source during one request."""

    source: str
    status: str = "pending"  # success / empty / skipped / failed
    count: int = 0
    discarded: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "count": self.count,
            "discarded": self.discarded,
            "error": self.error,
        }


@dataclass(frozen=True)
class AggregateResult:
    ticker: str
    overall_sentiment: SentimentScore
    articles: Tuple[Article, ...]
    total_articles: int
    breakdown: SentimentBreakdown
    last_updated: datetime
    message: str
    per_source_status: Dict[str, SourceStatus] = field(default_factory=dict)
    error: Optional[str] = None
    states: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "ticker": self.ticker,
            "overallSentiment": self.overall_sentiment.to_dict(),
            "articles": [a.to_dict() for a in self.articles],
            "totalArticles": self.total_articles,
            "sentimentBreakdown": self.breakdown.to_dict(),
            "lastUpdated": iso(self.last_updated),
            "message": self.message,
            "perSourceStatus": {k: v.to_dict() for k, v in self.per_source_status.items()},
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregateResult":
        statuses = {
            name: SourceStatus(source=name, **status)
            for name, status in (data.get("perSourceStatus") or {}).items()
        }
        return cls(
            ticker=data["ticker"],
            overall_sentiment=SentimentScore.from_dict(data["overallSentiment"]),
            articles=tuple(Article.from_dict(a) for a in data.get("articles", [])),
            total_articles=int(data.get("totalArticles", 0)),
            breakdown=SentimentBreakdown.from_dict(data.get("sentimentBreakdown") or {}),
            last_updated=_parse_dt(data.get("lastUpdated")) or utcnow(),
            message=data.get("message", ""),
            per_source_status=statuses,
            error=data.get("error"),
        )
