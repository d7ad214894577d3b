from __future__ import annotations

from typing import Optional, Sequence

from newsentiment.core.retry import NonRetryableError, RetryableError


class NewsSentimentError(Exception):
    """Base class for every error raised by the engine."""


class NavigationFailed(NewsSentimentError):
    """A page could not be loaded after all navigation attempts."""

    def __init__(self, url: str, last_error: Optional[BaseException], attempts: int):
        self.url = url
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"Failed to navigate to {url} after {attempts} attempt(s): {last_error}"
        )


class RateLimitExceeded(NewsSentimentError):
    """A source has used up its request budget for the current window."""

    def __init__(self, source: str, retry_after: float = 0.0):
        self.source = source
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for {source}, resets in {retry_after:.0f}s"
        )


class ParserNotFound(NewsSentimentError):
    """No parser is registered under the requested source name."""

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"Parser not found for source: {source}")


class ValidationFailed(NewsSentimentError):
    """Extracted content did not pass validation and was discarded."""

    def __init__(self, errors: Sequence[str], url: Optional[str] = None):
        self.errors = list(errors)
        self.url = url
        detail = "; ".join(self.errors) or "invalid content"
        super().__init__(f"Validation failed{f' for {url}' if url else ''}: {detail}")


class ClassificationFailed(NewsSentimentError):
    """The sentiment classifier could not produce a label."""


class ClassifierAuthError(ClassificationFailed, NonRetryableError):
    """The classifier refused our credentials (401/403)."""


class ClassifierRateLimited(ClassificationFailed, RetryableError):
    """The classifier answered HTTP 429; worth retrying after the cool-down."""


class ClassifierUnavailable(ClassificationFailed, RetryableError):
    """Transient classifier failure (5xx, model still loading)."""


class PoolExhausted(NewsSentimentError):
    """No idle browser session is available."""


class PoolInitError(NewsSentimentError):
    """The browser session pool could not be started."""
