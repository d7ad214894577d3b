"""Pytest configuration and fixtures for newsentiment tests."""
from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest

# Set test environment variables before importing modules
os.environ.setdefault("HUGGINGFACE_API_KEY", "")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("STORE_PATH", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from newsentiment.config import Settings, reload_settings
from newsentiment.core.models import Article, SentimentScore
from newsentiment.core.timeutils import IST
from newsentiment.crawler.session_pool import CrawlSession, SessionPool
from newsentiment.data.store import SQLiteStore

MC_SEARCH_URL = "https://www.moneycontrol.com/search?query=RELIANCE"
MC_ARTICLE_URL = "https://www.moneycontrol.com/news/business/reliance-record-profit.html"
NSE_SEARCH_URL = "https://www.nseindia.com/search?q=RELIANCE"
NSE_ANNOUNCEMENT_URL = "https://www.nseindia.com/announcements/reliance-board-outcome"

MC_SEARCH_HTML = """
<html><body>
<ul class="news-list">
  <li class="clearfix">
    <h2><a href="/news/business/reliance-record-profit.html">Reliance shares surge on record profit</a></h2>
    <p>Retail and telecom lift the quarter.</p>
    <span class="list_dt">2 hours ago</span>
  </li>
</ul>
</body></html>
"""

MC_ARTICLE_HTML = """
<html><head>
<title>Reliance shares surge on record profit | Moneycontrol</title>
<meta name="description" content="Retail and telecom lift the quarter.">
<script>var tracking = "Access Denied";</script>
</head><body>
<h1 class="article_title">Reliance shares surge on record profit</h1>
<div class="article_schedule">2 hours ago</div>
<div class="article_author">Staff Reporter</div>
<div class="content_wrapper">
  RELIANCE Industries shares surge after the company posted record profit and strong
  growth in its retail and telecom businesses, with analysts expecting further gain
  in the stock price this year.
</div>
</body></html>
"""

EMPTY_SEARCH_HTML = "<html><body><p>No results found.</p></body></html>"


def nse_search_html() -> str:
    return """
<html><body>
<div class="announcement-item">
  <h3>Reliance Industries Ltd - Outcome of Board Meeting</h3>
  <a href="/announcements/reliance-board-outcome">View</a>
  <p class="summary">Board approves results</p>
</div>
</body></html>
"""


def nse_announcement_html(day: Optional[datetime] = None) -> str:
    day = day or datetime.now(IST)
    return f"""
<html><body>
<h1 class="announcement_title">Reliance Industries Ltd - Outcome of Board Meeting</h1>
<div class="announcement_date">Date: {day:%d/%m/%Y}</div>
<div class="announcement_type">Board Meeting</div>
<div class="announcement_number">NSE/CML/2024/0042</div>
<div class="stock-symbol">RELIANCE</div>
<div class="announcement_content">
  Reliance Industries Limited has informed the Exchange that the Board approved the
  quarterly results and declared an interim dividend of Rs 10 per share.
</div>
</body></html>
"""


class FakeResponse:
    """Stand-in for a playwright Response."""

    def __init__(self, status: int = 200, status_text: str = "OK"):
        self.status = status
        self.status_text = status_text

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


class FakePage:
    """Serves canned HTML by URL.

    ``failures`` maps a URL to how many loads fail first; ``content_errors``
    maps a URL to the exception reading its HTML raises.
    """

    def __init__(
        self,
        pages: Dict[str, str],
        failures: Optional[Dict[str, int]] = None,
        content_errors: Optional[Dict[str, Exception]] = None,
    ):
        self.pages = pages
        self.failures = failures if failures is not None else {}
        self.content_errors = content_errors if content_errors is not None else {}
        self.url = "about:blank"
        self.goto_calls: List[str] = []
        self.closed = False

    def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[int] = None):
        self.goto_calls.append(url)
        remaining = self.failures.get(url, 0)
        if remaining:
            self.failures[url] = remaining - 1
            return FakeResponse(503, "Service Unavailable")
        if url not in self.pages:
            return FakeResponse(404, "Not Found")
        self.url = url
        return FakeResponse(200)

    def content(self) -> str:
        if self.url in self.content_errors:
            raise self.content_errors[self.url]
        return self.pages.get(self.url, "")

    def wait_for_timeout(self, ms: float) -> None:
        pass

    def wait_for_selector(self, selector: str, timeout: Optional[int] = None) -> bool:
        return True

    def evaluate(self, script: str) -> None:
        pass

    def title(self) -> str:
        return ""

    def is_closed(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True


class FakeSessionFactory:
    """Session factory whose pages all share one URL -> HTML map."""

    def __init__(
        self,
        pages: Optional[Dict[str, str]] = None,
        failures: Optional[Dict[str, int]] = None,
        fail_on_create: bool = False,
        content_errors: Optional[Dict[str, Exception]] = None,
    ):
        self.pages = pages if pages is not None else {}
        self.failures = failures if failures is not None else {}
        self.content_errors = content_errors if content_errors is not None else {}
        self.fail_on_create = fail_on_create
        self.created: List[CrawlSession] = []
        self.closed = False

    def create(self, session_id: int) -> CrawlSession:
        if self.fail_on_create:
            raise RuntimeError("browser failed to launch")
        session = CrawlSession(id=session_id, page=FakePage(self.pages, self.failures, self.content_errors))
        self.created.append(session)
        return session

    def close(self) -> None:
        self.closed = True

    @property
    def goto_calls(self) -> List[str]:
        return [url for s in self.created for url in s.page.goto_calls]


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".sqlite3", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    for suffix in ("", "-wal", "-shm"):
        path = Path(f"{db_path}{suffix}")
        if path.exists():
            path.unlink()


@pytest.fixture
def store(temp_db: Path) -> SQLiteStore:
    """Create a SQLiteStore with a temporary database."""
    s = SQLiteStore(path=temp_db)
    s.init()
    return s


@pytest.fixture
def test_settings() -> Settings:
    """Settings from the test environment."""
    return reload_settings()


@pytest.fixture
def crawl_settings() -> Settings:
    """Two sources, one browser, no waits."""
    return Settings(
        enabled_sources="moneycontrol,nse",
        browser_pool_size=1,
        nav_retry_delay=0.0,
        nav_settle_ms=0,
        huggingface_api_key="",
        redis_url="",
        store_path="",
    )


@pytest.fixture
def site_pages() -> Dict[str, str]:
    """A crawlable MoneyControl and NSE site for RELIANCE."""
    return {
        MC_SEARCH_URL: MC_SEARCH_HTML,
        MC_ARTICLE_URL: MC_ARTICLE_HTML,
        NSE_SEARCH_URL: nse_search_html(),
        NSE_ANNOUNCEMENT_URL: nse_announcement_html(),
    }


@pytest.fixture
def session_factory(site_pages: Dict[str, str]) -> FakeSessionFactory:
    return FakeSessionFactory(site_pages)


@pytest.fixture
def pool(session_factory: FakeSessionFactory) -> Generator[SessionPool, None, None]:
    p = SessionPool(session_factory, size=2)
    p.initialize()
    yield p
    p.close()


@pytest.fixture
def make_article():
    """Factory for scored or unscored articles."""

    def _make(
        title: str = "Reliance shares rally on strong results",
        content: str = "Reliance Industries shares rallied after strong quarterly numbers. " * 3,
        url: str = "https://example.com/news/1",
        source: str = "moneycontrol",
        published_at: Optional[datetime] = None,
        sentiment: Optional[SentimentScore] = None,
        **kwargs,
    ) -> Article:
        return Article(
            title=title,
            content=content,
            url=url,
            source=source,
            published_at=published_at,
            sentiment=sentiment,
            **kwargs,
        )

    return _make


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def days_ago(now: datetime):
    def _days_ago(days: float) -> datetime:
        return now - timedelta(days=days)

    return _days_ago


@pytest.fixture
def make_factory():
    """The fake session factory class, for tests that script their own site."""
    return FakeSessionFactory


@pytest.fixture
def urls() -> Dict[str, str]:
    return {
        "mc_search": MC_SEARCH_URL,
        "mc_article": MC_ARTICLE_URL,
        "nse_search": NSE_SEARCH_URL,
        "nse_announcement": NSE_ANNOUNCEMENT_URL,
    }


@pytest.fixture
def announcement_html():
    """NSE announcement page builder, dated ``day`` (default today IST)."""
    return nse_announcement_html
