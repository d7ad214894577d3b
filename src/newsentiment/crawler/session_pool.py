from __future__ import annotations

import random
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, Iterator, List, Optional, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from newsentiment.core.errors import PoolExhausted, PoolInitError
from newsentiment.core.logger import get_logger
from newsentiment.core.timeutils import utcnow

log = get_logger("session_pool")

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
]

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


@dataclass
class CrawlSession:
    """One browser plus the page used for a sequence of loads."""

    id: int
    page: Any
    context: Any = None
    browser: Any = None
    user_agent: str = ""
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_connected(self) -> bool:
        try:
            if self.browser is not None and not self.browser.is_connected():
                return False
            return not self.page.is_closed()
        except PlaywrightError:
            return False

    def close(self) -> None:
        for resource in (self.context, self.browser):
            if resource is None:
                continue
            try:
                resource.close()
            except PlaywrightError as e:
                log.debug(f"Session {self.id}: close failed: {e}")


class SessionFactory(Protocol):
    def create(self, session_id: int) -> CrawlSession: ...

    def close(self) -> None: ...


class PlaywrightSessionFactory:
    """Launches one headless Chromium per session."""

    def __init__(
        self,
        headless: bool = True,
        viewport_width: int = 1920,
        viewport_height: int = 1080,
        timeout_ms: int = 30000,
        user_agents: Optional[List[str]] = None,
    ):
        self.headless = headless
        self.viewport = {"width": viewport_width, "height": viewport_height}
        self.timeout_ms = timeout_ms
        self.user_agents = user_agents or USER_AGENTS
        self._playwright = None

    def create(self, session_id: int) -> CrawlSession:
        if self._playwright is None:
            self._playwright = sync_playwright().start()

        browser = self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
        user_agent = random.choice(self.user_agents)
        context = browser.new_context(
            user_agent=user_agent,
            viewport=self.viewport,
            extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
        )
        page = context.new_page()
        page.set_default_timeout(self.timeout_ms)
        page.set_default_navigation_timeout(self.timeout_ms)
        log.debug(f"Session {session_id} launched ({user_agent[:40]}...)")
        return CrawlSession(
            id=session_id,
            page=page,
            context=context,
            browser=browser,
            user_agent=user_agent,
        )

    def close(self) -> None:
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


class SessionPool:
    """Fixed set of browser sessions handed out one caller at a time.

    ``acquire`` fails fast with :class:`PoolExhausted` when nothing is idle,
    unless a ``timeout`` is given. Prefer the ``session()`` context manager,
    which always gives the session back.

    Usage:
        pool = SessionPool(PlaywrightSessionFactory(), size=3)
        pool.initialize()
        with pool.session() as session:
            session.page.goto(url)
        pool.close()
    """

    def __init__(self, factory: SessionFactory, size: int = 3):
        if size < 1:
            raise ValueError(f"pool size must be >= 1, got {size}")
        self.factory = factory
        self.size = size
        self._idle: Deque[CrawlSession] = deque()
        self._in_use: Dict[int, CrawlSession] = {}
        self._dropped = 0
        self._initialized = False
        self._closed = False
        self._cond = threading.Condition()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Launch every session; any failure tears down what was started."""
        with self._cond:
            if self._initialized:
                return
            if self._closed:
                raise PoolInitError("Session pool is closed")

        created: List[CrawlSession] = []
        try:
            for i in range(self.size):
                created.append(self.factory.create(i + 1))
        except Exception as e:
            for session in created:
                session.close()
            self.factory.close()
            raise PoolInitError(f"Failed to start browser pool: {e}") from e

        with self._cond:
            self._idle.extend(created)
            self._initialized = True
            self._cond.notify_all()
        log.info(f"Session pool ready with {len(created)} browser(s)")

    def acquire(self, timeout: Optional[float] = None) -> CrawlSession:
        """Take an idle session.

        Args:
            timeout: Seconds to wait for a release. None fails immediately.

        Raises:
            PoolExhausted: nothing idle (after waiting, if a timeout was given)
        """
        with self._cond:
            if self._closed:
                raise PoolExhausted("Session pool is closed")
            if not self._idle and timeout:
                self._cond.wait_for(lambda: self._idle or self._closed, timeout=timeout)
            if self._closed or not self._idle:
                raise PoolExhausted("No browsers available in pool")
            session = self._idle.popleft()
            self._in_use[session.id] = session
        log.debug(f"Session {session.id} acquired")
        return session

    def release(self, session: CrawlSession) -> None:
        """Give a session back; a disconnected one is closed and dropped."""
        connected = session.is_connected
        with self._cond:
            self._in_use.pop(session.id, None)
            if connected and not self._closed:
                self._idle.append(session)
                self._cond.notify()
                log.debug(f"Session {session.id} released")
                return
            self._dropped += 1
        if not connected:
            log.warning(f"Session {session.id} disconnected, dropped from pool")
        session.close()

    @contextmanager
    def session(self, timeout: Optional[float] = None) -> Iterator[CrawlSession]:
        session = self.acquire(timeout)
        try:
            yield session
        finally:
            self.release(session)

    def status(self) -> dict:
        with self._cond:
            return {
                "size": self.size,
                "idle": len(self._idle),
                "inUse": len(self._in_use),
                "dropped": self._dropped,
                "initialized": self._initialized,
                "closed": self._closed,
            }

    def close(self) -> None:
        """Close idle sessions now; sessions still out are closed on release."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._cond.notify_all()
        for session in idle:
            session.close()
        self.factory.close()
        log.info("Session pool closed")

    def __enter__(self) -> "SessionPool":
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
