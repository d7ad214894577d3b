from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from newsentiment.core.logger import get_logger
from newsentiment.core.models import ExtractedContent, ValidationResult
from newsentiment.core.timeutils import IST, ensure_aware
from newsentiment.crawler.session_pool import CrawlSession

log = get_logger("extraction")

STRIP_TAGS = ("script", "style", "noscript")

CONTENT_SELECTORS = (
    "main",
    "article",
    ".content",
    ".article-content",
    ".story-content",
)

DATE_SELECTORS = (
    'meta[property="article:published_time"]',
    'meta[name="publish_date"]',
    'meta[name="date"]',
    ".published-date",
    ".article-date",
    ".story-date",
    "time[datetime]",
)

AUTHOR_SELECTORS = (
    'meta[name="author"]',
    'meta[property="article:author"]',
    ".author",
    ".article-author",
    ".story-author",
)

# Page text -> validation error
FAILURE_MARKERS = {
    "Access Denied": "Access denied to content",
    "Page Not Found": "Page not found",
}

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace, newlines and tabs; trim."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def make_soup(html: str) -> BeautifulSoup:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(list(STRIP_TAGS)):
        tag.decompose()
    return soup


def node_value(node) -> str:
    """Text of an element, or the content/datetime attribute for meta and time tags."""
    if node is None:
        return ""
    if node.name == "meta":
        return normalize_text(node.get("content"))
    if node.name == "time" and node.get("datetime"):
        return normalize_text(node.get("datetime"))
    return normalize_text(node.get_text(" "))


def parse_date(text: Optional[str]) -> Optional[datetime]:
    """Best-effort date parse; naive results are taken as IST."""
    if not text:
        return None
    try:
        parsed = date_parser.parse(text, fuzzy=True, tzinfos={"IST": IST})
    except (ValueError, OverflowError):
        return None
    return ensure_aware(parsed, IST)


@dataclass
class ValidationRules:
    require_title: bool = True
    min_title_length: int = 10
    max_title_length: int = 200
    require_content: bool = True
    min_content_length: int = 100
    max_content_length: int = 10000
    require_url: bool = True
    require_date: bool = True
    require_author: bool = False
    failure_markers: Dict[str, str] = field(default_factory=lambda: dict(FAILURE_MARKERS))

    @classmethod
    def from_settings(cls, settings) -> "ValidationRules":
        return cls(
            require_title=settings.require_title,
            min_title_length=settings.min_title_length,
            max_title_length=settings.max_title_length,
            require_content=settings.require_content,
            min_content_length=settings.min_content_length,
            max_content_length=settings.max_content_length,
            require_url=settings.require_url,
            require_date=settings.require_date,
            require_author=settings.require_author,
        )


class ContentExtractor:
    """Turns a rendered page into structured fields plus a validation verdict."""

    def __init__(self, rules: Optional[ValidationRules] = None):
        self.rules = rules or ValidationRules()

    def extract_page(self, session: CrawlSession) -> ExtractedContent:
        return self.extract(session.page.content(), session.page.url)

    def extract(self, html: str, url: str) -> ExtractedContent:
        soup = make_soup(html)

        content = self._main_content(soup)
        published = None
        raw_date = self._first_value(soup, DATE_SELECTORS)
        if raw_date:
            published = parse_date(raw_date)
            if published is None:
                log.debug(f"Unparseable date {raw_date!r} on {url}")

        keywords_raw = self._meta(soup, "keywords")
        keywords = tuple(k.strip() for k in keywords_raw.split(",") if k.strip())

        extracted = ExtractedContent(
            url=url or "",
            title=self._title(soup),
            content=content,
            description=self._meta(soup, "description"),
            keywords=keywords,
            published_at=published,
            author=self._first_value(soup, AUTHOR_SELECTORS) or None,
        )
        validation = self.validate(extracted)
        if not validation.is_valid:
            log.debug(f"Extracted content from {url} invalid: {', '.join(validation.errors)}")
        return replace(extracted, validation=validation)

    def _title(self, soup: BeautifulSoup) -> str:
        if soup.title and soup.title.string:
            title = normalize_text(soup.title.string)
            if title:
                return title
        og = soup.select_one('meta[property="og:title"]')
        if og is not None and og.get("content"):
            return normalize_text(og["content"])
        h1 = soup.find("h1")
        return node_value(h1)

    def _main_content(self, soup: BeautifulSoup) -> str:
        for selector in CONTENT_SELECTORS:
            node = soup.select_one(selector)
            text = node_value(node)
            if text:
                return text
        body = soup.body or soup
        return normalize_text(body.get_text(" "))

    def _meta(self, soup: BeautifulSoup, name: str) -> str:
        node = soup.select_one(f'meta[name="{name}"]')
        return node_value(node)

    def _first_value(self, soup: BeautifulSoup, selectors: Iterable[str]) -> str:
        for selector in selectors:
            value = node_value(soup.select_one(selector))
            if value:
                return value
        return ""

    def validate(
        self, content: ExtractedContent, rules: Optional[ValidationRules] = None
    ) -> ValidationResult:
        """Errors reject the page; warnings are informational."""
        rules = rules or self.rules
        errors: List[str] = []
        warnings: List[str] = []

        if rules.require_title:
            if not content.title:
                errors.append("Title is required")
            elif len(content.title) < rules.min_title_length:
                errors.append(f"Title too short (minimum {rules.min_title_length} characters)")
        if content.title and len(content.title) > rules.max_title_length:
            warnings.append(f"Title exceeds {rules.max_title_length} characters")

        if rules.require_content and len(content.content) < rules.min_content_length:
            errors.append(f"Content too short (minimum {rules.min_content_length} characters)")
        if len(content.content) > rules.max_content_length:
            warnings.append(f"Content exceeds {rules.max_content_length} characters")

        if rules.require_url and not content.url:
            errors.append("Source URL is required")
        if rules.require_date and content.published_at is None:
            warnings.append("Published date not found")
        if rules.require_author and not content.author:
            warnings.append("Author not found")

        for marker, message in rules.failure_markers.items():
            if marker in content.content or marker in content.title:
                errors.append(message)

        return ValidationResult.from_lists(errors, warnings)

    def extract_with_selectors(self, html: str, selectors: Dict[str, str]) -> Dict[str, str]:
        """Pull one text value per field; missing fields map to ''."""
        soup = make_soup(html)
        return {name: node_value(soup.select_one(selector)) for name, selector in selectors.items()}

    def extract_links(self, html: str, base_url: str) -> List[Tuple[str, str]]:
        """Absolute ``(url, text)`` pairs, skipping script and fragment links."""
        soup = make_soup(html)
        links = []
        seen = set()
        for anchor in soup.select("a[href]"):
            href = anchor["href"].strip()
            if not href or href.startswith("#") or href.lower().startswith("javascript:"):
                continue
            absolute = urljoin(base_url, href)
            if absolute in seen:
                continue
            seen.add(absolute)
            links.append((absolute, node_value(anchor)))
        return links
