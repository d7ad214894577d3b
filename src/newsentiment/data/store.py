from __future__ import annotations

import hashlib
import json
import sqlite3
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional, Union

from newsentiment.core.logger import get_logger
from newsentiment.core.models import AggregateResult, Article
from newsentiment.core.timeutils import iso, utcnow

log = get_logger("store")


@dataclass
class SQLiteStore:
    """SQLite storage for crawled articles and aggregate sentiment results.

    Features:
    - Article deduplication via URL hash, content hash when the URL is missing
    - One row per aggregate result, with its articles linked to it
    - Age-based cleanup

    Usage:
        store = SQLiteStore(Path("newsentiment.sqlite3"))
        store.init()
        store.save(result)
    """

    path: Path = Path("newsentiment.sqlite3")

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    def init(self) -> None:
        """Initialize database schema."""
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS articles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source TEXT NOT NULL,
                    url TEXT,
                    url_hash TEXT UNIQUE,
                    content_hash TEXT,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    author TEXT,
                    published_at TEXT,
                    stock_symbols TEXT,
                    sentiment_label TEXT,
                    sentiment_score REAL,
                    sentiment_confidence REAL,
                    ingested_at TEXT NOT NULL
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_articles_url_hash ON articles(url_hash);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_articles_content_hash ON articles(content_hash);")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sentiment_results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ticker TEXT NOT NULL,
                    label TEXT NOT NULL,
                    score REAL NOT NULL,
                    confidence REAL NOT NULL,
                    total_articles INTEGER NOT NULL,
                    breakdown TEXT,
                    per_source_status TEXT,
                    message TEXT,
                    error TEXT,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_sentiment_results_ticker_time
                ON sentiment_results(ticker, created_at);
                """
            )
            log.debug("Database schema initialized")

    def _compute_url_hash(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        return hashlib.sha256(url.encode()).hexdigest()[:32]

    def _compute_content_hash(self, *, source: str, title: str, content: str) -> Optional[str]:
        if not content and not title:
            return None
        payload = f"{source}|{title}|{content[:1000]}"
        return hashlib.sha256(payload.encode()).hexdigest()[:32]

    def article_exists(
        self,
        url: Optional[str] = None,
        url_hash: Optional[str] = None,
        content_hash: Optional[str] = None,
    ) -> bool:
        if url_hash is None:
            url_hash = self._compute_url_hash(url)
        if url_hash is None and content_hash is None:
            return False

        with self.connect() as conn:
            if url_hash is not None:
                cur = conn.execute("SELECT 1 FROM articles WHERE url_hash = ? LIMIT 1", (url_hash,))
                if cur.fetchone() is not None:
                    return True
            if content_hash is not None:
                cur = conn.execute(
                    "SELECT 1 FROM articles WHERE content_hash = ? LIMIT 1", (content_hash,)
                )
                return cur.fetchone() is not None
            return False

    def add_article(self, article: Article) -> Optional[int]:
        """Insert one article.

        Returns:
            Row id if added, None if duplicate
        """
        url_hash = self._compute_url_hash(article.url)
        content_hash = self._compute_content_hash(
            source=article.source, title=article.title, content=article.content
        )
        if self.article_exists(url_hash=url_hash, content_hash=content_hash):
            log.debug(f"Duplicate article skipped: {article.url}")
            return None

        sentiment = article.sentiment
        with self.connect() as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO articles(
                        source, url, url_hash, content_hash, title, content, author,
                        published_at, stock_symbols, sentiment_label, sentiment_score,
                        sentiment_confidence, ingested_at
                    )
                    VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        article.source,
                        article.url,
                        url_hash,
                        content_hash,
                        article.title,
                        article.content,
                        article.author,
                        iso(article.published_at),
                        json.dumps(list(article.stock_symbols)),
                        sentiment.label if sentiment else None,
                        sentiment.polarity if sentiment else None,
                        sentiment.confidence if sentiment else None,
                        iso(utcnow()),
                    ),
                )
                return int(cur.lastrowid)
            except sqlite3.IntegrityError:
                log.debug(f"Duplicate article (integrity): {article.url}")
                return None

    def add_result(self, result: AggregateResult) -> int:
        overall = result.overall_sentiment
        with self.connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO sentiment_results(
                    ticker, label, score, confidence, total_articles, breakdown,
                    per_source_status, message, error, created_at
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.ticker,
                    overall.label,
                    overall.score,
                    overall.confidence,
                    result.total_articles,
                    json.dumps(result.breakdown.to_dict()),
                    json.dumps({k: v.to_dict() for k, v in result.per_source_status.items()}),
                    result.message,
                    result.error,
                    iso(result.last_updated),
                ),
            )
            return int(cur.lastrowid)

    def save(self, record: Union[AggregateResult, Article]) -> Optional[int]:
        """Persist an aggregate result (and its articles) or a single article."""
        if isinstance(record, Article):
            return self.add_article(record)
        if isinstance(record, AggregateResult):
            added = sum(1 for a in record.articles if self.add_article(a) is not None)
            result_id = self.add_result(record)
            log.debug(f"Saved result for {record.ticker}: {added} new article(s)")
            return result_id
        raise TypeError(f"Cannot store {type(record).__name__}")

    def latest_result(self, ticker: str) -> Optional[dict[str, Any]]:
        with self.connect() as conn:
            cur = conn.execute(
                """
                SELECT label, score, confidence, total_articles, breakdown, message, created_at
                FROM sentiment_results
                WHERE ticker = ?
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (ticker.upper(),),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return {
            "label": row[0],
            "score": row[1],
            "confidence": row[2],
            "totalArticles": row[3],
            "sentimentBreakdown": json.loads(row[4]) if row[4] else None,
            "message": row[5],
            "createdAt": row[6],
        }

    def cleanup_old(self, days: int = 30) -> int:
        """Delete articles and results older than ``days``.

        Returns:
            Number of deleted rows
        """
        cutoff = iso(utcnow() - timedelta(days=days))
        with self.connect() as conn:
            articles = conn.execute("DELETE FROM articles WHERE ingested_at < ?", (cutoff,)).rowcount
            results = conn.execute(
                "DELETE FROM sentiment_results WHERE created_at < ?", (cutoff,)
            ).rowcount
        deleted = articles + results
        if deleted > 0:
            log.info(f"Cleaned up {deleted} rows older than {days}d")
        return deleted

    def get_article_count(self) -> int:
        with self.connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0]


class NullStore:
    """Persistence collaborator that keeps nothing."""

    def save(self, record: Any) -> None:
        return None


def create_store(settings):
    if not settings.store_path:
        return NullStore()
    store = SQLiteStore(Path(settings.store_path))
    store.init()
    return store
