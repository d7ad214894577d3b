from __future__ import annotations

import time
from typing import Any, Callable, Optional, Sequence

from playwright.sync_api import Error as PlaywrightError

from newsentiment.core.errors import NavigationFailed
from newsentiment.core.logger import get_logger
from newsentiment.core.retry import backoff_retrying
from newsentiment.crawler.session_pool import CrawlSession

log = get_logger("navigation")


class PageLoadError(Exception):
    """One navigation attempt failed (bad status or no response)."""


class NavigationService:
    """Loads pages through a pooled session, retrying with backoff.

    The wait before retry ``n`` (0-based) is ``base_delay * backoff_multiplier**n``.
    Helper methods are best effort: they report success as a bool and log
    failures instead of raising.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
        timeout_ms: int = 30000,
        settle_ms: int = 2000,
        selector_timeout_ms: int = 10000,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.backoff_multiplier = backoff_multiplier
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms
        self.selector_timeout_ms = selector_timeout_ms
        self._sleep = sleep
        self.last_attempts = 0

    @classmethod
    def from_settings(cls, settings, sleep: Callable[[float], None] = time.sleep) -> "NavigationService":
        return cls(
            max_attempts=settings.nav_max_attempts,
            base_delay=settings.nav_retry_delay,
            backoff_multiplier=settings.nav_backoff_multiplier,
            timeout_ms=settings.page_timeout_ms,
            settle_ms=settings.nav_settle_ms,
            selector_timeout_ms=settings.selector_timeout_ms,
            sleep=sleep,
        )

    def _load_once(
        self, session: CrawlSession, url: str, on_attempt: Optional[Callable[[], None]] = None
    ) -> Any:
        self.last_attempts += 1
        if on_attempt is not None:
            on_attempt()
        log.debug(f"Navigating to {url} (attempt {self.last_attempts}/{self.max_attempts})")
        response = session.page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
        if response is None:
            raise PageLoadError("No response received")
        if not response.ok:
            raise PageLoadError(f"HTTP {response.status}: {response.status_text}")
        return response

    def navigate(
        self, session: CrawlSession, url: str, on_attempt: Optional[Callable[[], None]] = None
    ) -> Any:
        """Load ``url`` and wait for the network to go idle.

        ``on_attempt`` is called before every page load, retries included.

        Returns:
            The successful response object.

        Raises:
            NavigationFailed: every attempt failed; carries the URL and last error
        """
        self.last_attempts = 0
        retrying = backoff_retrying(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            multiplier=self.backoff_multiplier,
            exceptions=(PageLoadError, PlaywrightError, TimeoutError),
            sleep=self._sleep,
        )
        try:
            response = retrying(self._load_once, session, url, on_attempt)
        except (PageLoadError, PlaywrightError, TimeoutError) as e:
            log.warning(f"Navigation to {url} failed after {self.last_attempts} attempt(s): {e}")
            raise NavigationFailed(url, e, self.last_attempts) from e

        if self.settle_ms:
            session.page.wait_for_timeout(self.settle_ms)
        log.debug(f"Loaded {url} in {self.last_attempts} attempt(s)")
        return response

    def wait_for_element(
        self, session: CrawlSession, selector: str, timeout_ms: Optional[int] = None
    ) -> bool:
        try:
            session.page.wait_for_selector(selector, timeout=timeout_ms or self.selector_timeout_ms)
            return True
        except Exception as e:
            log.debug(f"Element {selector!r} not found: {e}")
            return False

    def wait_for_elements(
        self, session: CrawlSession, selectors: Sequence[str], timeout_ms: Optional[int] = None
    ) -> bool:
        """True as soon as any selector matches."""
        if not selectors:
            return False
        return self.wait_for_element(session, ", ".join(selectors), timeout_ms)

    def scroll(self, session: CrawlSession, steps: int = 3, pause_ms: int = 1000) -> bool:
        """Scroll one viewport at a time to trigger lazy loading."""
        try:
            for _ in range(steps):
                session.page.evaluate("window.scrollBy(0, window.innerHeight)")
                session.page.wait_for_timeout(pause_ms)
            return True
        except Exception as e:
            log.warning(f"Scroll failed: {e}")
            return False

    def click(self, session: CrawlSession, selector: str) -> bool:
        if not self.wait_for_element(session, selector, 5000):
            return False
        try:
            session.page.click(selector)
            return True
        except Exception as e:
            log.warning(f"Click on {selector!r} failed: {e}")
            return False

    def fill_input(self, session: CrawlSession, selector: str, value: str) -> bool:
        if not self.wait_for_element(session, selector, 5000):
            return False
        try:
            session.page.fill(selector, value)
            return True
        except Exception as e:
            log.warning(f"Fill of {selector!r} failed: {e}")
            return False

    def has_text(self, session: CrawlSession, text: str) -> bool:
        try:
            return text in session.page.content()
        except Exception as e:
            log.debug(f"Text check failed: {e}")
            return False

    def page_title(self, session: CrawlSession) -> str:
        try:
            return session.page.title()
        except Exception as e:
            log.debug(f"Title lookup failed: {e}")
            return ""

    def current_url(self, session: CrawlSession) -> str:
        try:
            return session.page.url
        except Exception:
            return ""

    def screenshot(self, session: CrawlSession, path: str) -> bool:
        try:
            session.page.screenshot(path=path, full_page=True)
            log.info(f"Screenshot saved to {path}")
            return True
        except Exception as e:
            log.warning(f"Screenshot failed: {e}")
            return False

    def delay(self, seconds: float) -> None:
        if seconds > 0:
            self._sleep(seconds)
