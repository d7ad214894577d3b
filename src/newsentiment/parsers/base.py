from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote_plus, urljoin

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from newsentiment.core.logger import get_logger
from newsentiment.core.models import Article, SearchResult, SourceConfig, ValidationResult
from newsentiment.core.timeutils import IST, ensure_aware, utcnow
from newsentiment.crawler.extraction import make_soup, node_value, normalize_text

log = get_logger("parsers")

MAX_SEARCH_RESULTS = 10
MAX_SYMBOLS = 5

SYMBOL_PATTERN = re.compile(r"\b[A-Z]{3,10}\b")

# Uppercase tokens that are English words, not tickers
STOP_WORDS = frozenset({
    "THE", "AND", "FOR", "ARE", "BUT", "NOT", "YOU", "ALL", "CAN", "HER",
    "WAS", "ONE", "OUR", "OUT", "DAY", "GET", "HAS", "HIM", "HIS", "HOW",
    "ITS", "MAY", "NEW", "NOW", "OLD", "SEE", "TWO", "WAY", "WHO", "BOY",
    "DID", "PUT", "SAY", "SHE", "TOO", "USE",
})

FINANCE_KEYWORDS: Tuple[str, ...] = (
    "stock", "share", "market", "trading", "investor", "investment", "price",
    "profit", "loss", "revenue", "earnings", "quarterly", "dividend", "bonus",
    "split", "merger", "acquisition", "ipo", "sebi", "nse", "bse", "sensex",
    "nifty", "bull", "bear",
)

MIN_RELEVANT_KEYWORDS = 2

_RELATIVE = re.compile(r"(\d+)\s*(minute|min|hour|hr|day|week)s?\s+ago", re.IGNORECASE)
_UNIT_DELTA = {
    "minute": "minutes",
    "min": "minutes",
    "hour": "hours",
    "hr": "hours",
    "day": "days",
    "week": "weeks",
}
_NUMERIC_DATE = re.compile(r"(\d{1,2})[/-](\d{1,2})[/-](\d{4})")


def generic_stock_symbols(text: Optional[str], limit: int = MAX_SYMBOLS) -> List[str]:
    """Uppercase 3-10 letter tokens that are not common English words."""
    if not text:
        return []
    symbols: List[str] = []
    for token in SYMBOL_PATTERN.findall(text):
        if token in STOP_WORDS or token in symbols:
            continue
        symbols.append(token)
        if len(symbols) >= limit:
            break
    return symbols


def generic_is_stock_relevant(
    text: Optional[str],
    keywords: Sequence[str] = FINANCE_KEYWORDS,
    min_matches: int = MIN_RELEVANT_KEYWORDS,
) -> bool:
    """True when at least ``min_matches`` distinct finance keywords appear."""
    if not text:
        return False
    lowered = text.lower()
    matched = {kw.lower() for kw in keywords if kw.lower() in lowered}
    return len(matched) >= min_matches


def parse_relative_date(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """'3 hours ago', '2 days ago', 'yesterday', 'today' -> absolute time."""
    now = now or utcnow()
    lowered = text.lower()
    match = _RELATIVE.search(lowered)
    if match:
        amount = int(match.group(1))
        unit = _UNIT_DELTA[match.group(2)]
        return now - timedelta(**{unit: amount})
    if "yesterday" in lowered:
        return now - timedelta(days=1)
    if "just now" in lowered or lowered.strip() == "today":
        return now
    return None


@dataclass(frozen=True)
class SelectorSet:
    """CSS selectors for one site. Comma lists match the first hit in document order."""

    search_results: str
    search_title: str
    search_link: str
    search_summary: str
    title: str
    content: str
    meta: str
    date: str
    author: str
    tags: str
    stock_symbol: str
    stock_price: str
    stock_change: str
    search_date: str = ""
    document_type: str = ""
    document_number: str = ""
    stock_volume: str = ""

    def as_dict(self) -> Dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v}


class SourceParser(ABC):
    """One news site: where things live on its pages and how its dates read.

    Subclasses may also define ``extract_stock_symbols(text)`` and
    ``is_stock_relevant(text)``; the registry supplies generic versions for
    those that do not.
    """

    name: str = ""
    document_kind: str = "article"
    selectors: SelectorSet
    min_title_length: int = 10
    min_content_length: int = 100
    # Patterns stripped from the front of date strings ("Updated:", ...)
    date_prefixes: Tuple[str, ...] = ()
    # strptime formats tried after prefix stripping
    date_formats: Tuple[str, ...] = ()
    day_first: bool = False

    def __init__(self, config: SourceConfig):
        self.config = config

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def search_url(self) -> str:
        return self.config.search_url

    def build_search_url(self, query: str) -> str:
        return f"{self.search_url}?{self.config.search_param}={quote_plus(query)}"

    def parse_search_results(self, html: str, page_url: str) -> List[SearchResult]:
        """Up to ten linked results from a search page."""
        soup = make_soup(html)
        results: List[SearchResult] = []
        for item in soup.select(self.selectors.search_results):
            link = item if item.name == "a" and item.get("href") else item.select_one(self.selectors.search_link)
            if link is None or not link.get("href"):
                continue
            title = node_value(item.select_one(self.selectors.search_title)) or node_value(link)
            if not title:
                continue
            summary = node_value(item.select_one(self.selectors.search_summary))
            published = None
            if self.selectors.search_date:
                published = self.normalize_date(node_value(item.select_one(self.selectors.search_date)))
            results.append(
                SearchResult(
                    url=urljoin(page_url or self.base_url, link["href"].strip()),
                    title=title,
                    source=self.name,
                    summary=summary if summary and summary != title else None,
                    published_at=published,
                )
            )
            if len(results) >= MAX_SEARCH_RESULTS:
                break
        log.debug(f"{self.name}: {len(results)} search result(s) on {page_url}")
        return results

    @abstractmethod
    def parse_document(self, html: str, url: str) -> Optional[Article]:
        """Parse an article or announcement page; None when nothing usable is there."""

    def normalize_date(self, text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
        if not text:
            return None
        cleaned = normalize_text(text)

        relative = parse_relative_date(cleaned, now)
        if relative is not None:
            return relative

        for prefix in self.date_prefixes:
            cleaned = re.sub(prefix, "", cleaned, flags=re.IGNORECASE).strip()
        candidate = re.sub(r"\s+IST\b", "", cleaned).strip()

        for fmt in self.date_formats:
            try:
                return datetime.strptime(candidate, fmt).replace(tzinfo=IST)
            except ValueError:
                continue

        numeric = _NUMERIC_DATE.search(candidate)
        if numeric:
            first, second, year = (int(g) for g in numeric.groups())
            day, month = (first, second) if self.day_first else (second, first)
            if month > 12 and day <= 12:
                day, month = month, day
            try:
                return datetime(year, month, day, tzinfo=IST)
            except ValueError:
                pass

        try:
            parsed = date_parser.parse(candidate, fuzzy=True, dayfirst=self.day_first)
        except (ValueError, OverflowError):
            log.debug(f"{self.name}: could not parse date {text!r}")
            return None
        return ensure_aware(parsed, IST)

    def _relevant(self, text: str) -> bool:
        own = getattr(self, "is_stock_relevant", None)
        return own(text) if own else generic_is_stock_relevant(text)

    def validate_data(self, article: Article) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        if not article.title or len(article.title) < self.min_title_length:
            errors.append("Title is too short or missing")
        if not article.content or len(article.content) < self.min_content_length:
            errors.append("Content is too short or missing")
        if not article.url:
            errors.append("URL is missing")
        if article.published_at is None:
            warnings.append("Published date not found")
        if not self._relevant(article.content):
            warnings.append("Content may not be stock-related")
        return ValidationResult.from_lists(errors, warnings)

    def get_config(self) -> dict:
        return {
            "sourceName": self.name,
            "displayName": self.config.display_name,
            "baseUrl": self.base_url,
            "searchUrl": self.search_url,
            "documentKind": self.document_kind,
            "selectors": self.selectors.as_dict(),
            "minTitleLength": self.min_title_length,
            "minContentLength": self.min_content_length,
        }

    @staticmethod
    def _text(soup: BeautifulSoup, selector: str) -> str:
        if not selector:
            return ""
        return node_value(soup.select_one(selector))

    @staticmethod
    def _texts(soup: BeautifulSoup, selector: str) -> Tuple[str, ...]:
        if not selector:
            return ()
        values = []
        for node in soup.select(selector):
            for part in node_value(node).split(","):
                part = part.strip()
                if part and part not in values:
                    values.append(part)
        return tuple(values)


class NewsArticleParser(SourceParser):
    """Sites that publish editorial articles."""

    document_kind = "article"

    def parse_article(self, html: str, url: str) -> Optional[Article]:
        soup = make_soup(html)
        title = self._text(soup, self.selectors.title)
        content = self._text(soup, self.selectors.content)
        if not title and not content:
            log.debug(f"{self.name}: no article fields on {url}")
            return None
        summary = node_value(soup.select_one('meta[name="description"]')) or None
        return Article(
            title=title,
            content=content,
            url=url,
            source=self.name,
            published_at=self.normalize_date(self._text(soup, self.selectors.date)),
            author=self._text(soup, self.selectors.author) or None,
            summary=summary,
            tags=self._texts(soup, self.selectors.tags),
        )

    def parse_document(self, html: str, url: str) -> Optional[Article]:
        return self.parse_article(html, url)


class AnnouncementParser(SourceParser):
    """Exchange sites that publish filings and circulars."""

    document_kind = "announcement"
    min_content_length = 50
    day_first = True

    def parse_announcement(self, html: str, url: str) -> Optional[Article]:
        soup = make_soup(html)
        title = self._text(soup, self.selectors.title)
        content = self._text(soup, self.selectors.content)
        if not title and not content:
            log.debug(f"{self.name}: no announcement fields on {url}")
            return None
        kind = self._text(soup, self.selectors.document_type)
        number = self._text(soup, self.selectors.document_number)
        symbol = self._text(soup, self.selectors.stock_symbol)
        tags = tuple(t for t in (kind, number and f"Ref: {number}") if t)
        return Article(
            title=title,
            content=content,
            url=url,
            source=self.name,
            published_at=self.normalize_date(self._text(soup, self.selectors.date)),
            summary=self._text(soup, self.selectors.meta) or None,
            tags=tags,
            stock_symbols=(symbol,) if symbol else (),
        )

    def parse_document(self, html: str, url: str) -> Optional[Article]:
        return self.parse_announcement(html, url)
