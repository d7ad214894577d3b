from __future__ import annotations

import hashlib
from difflib import SequenceMatcher
from typing import Iterable, List, Optional, Set

from newsentiment.core.logger import get_logger
from newsentiment.core.models import Article
from newsentiment.crawler.extraction import normalize_text

log = get_logger("dedupe")


def url_hash(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return hashlib.sha256(url.strip().rstrip("/").lower().encode()).hexdigest()[:32]


def content_hash(article: Article) -> Optional[str]:
    text = normalize_text(article.content).lower()
    if not text:
        return None
    return hashlib.sha256(text[:1000].encode()).hexdigest()[:32]


def title_similarity(a: str, b: str) -> float:
    return SequenceMatcher(None, normalize_text(a).lower(), normalize_text(b).lower()).ratio()


class Deduplicator:
    """Drops articles already seen in the same merge.

    Two articles are the same story when they share a URL, share body
    text, or have titles at least ``title_similarity`` alike. The first
    occurrence wins, so feed articles in priority order.
    """

    def __init__(self, enabled: bool = False, title_similarity: float = 0.9):
        self.enabled = enabled
        self.title_similarity = title_similarity

    @classmethod
    def from_settings(cls, settings) -> "Deduplicator":
        return cls(
            enabled=settings.dedupe_enabled,
            title_similarity=settings.dedupe_title_similarity,
        )

    def is_duplicate_title(self, title: str, seen_titles: Iterable[str]) -> bool:
        if not title:
            return False
        return any(title_similarity(title, seen) >= self.title_similarity for seen in seen_titles)

    def dedupe(self, articles: Iterable[Article]) -> List[Article]:
        articles = list(articles)
        if not self.enabled:
            return articles

        seen_urls: Set[str] = set()
        seen_content: Set[str] = set()
        seen_titles: List[str] = []
        unique: List[Article] = []
        for article in articles:
            u = url_hash(article.url)
            c = content_hash(article)
            if (u and u in seen_urls) or (c and c in seen_content):
                log.debug(f"Duplicate dropped: {article.url}")
                continue
            if self.is_duplicate_title(article.title, seen_titles):
                log.debug(f"Near-duplicate title dropped: {article.title[:60]}")
                continue
            if u:
                seen_urls.add(u)
            if c:
                seen_content.add(c)
            if article.title:
                seen_titles.append(article.title)
            unique.append(article)

        dropped = len(articles) - len(unique)
        if dropped:
            log.info(f"Removed {dropped} duplicate article(s)")
        return unique
