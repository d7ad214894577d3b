from __future__ import annotations

import logging
import time
from typing import Callable

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_exponential_jitter,
)

from newsentiment.core.logger import get_logger

log = get_logger("retry")


class RetryableError(Exception):
    """Marker exception for errors that should trigger a retry."""
    pass


class NonRetryableError(Exception):
    """Marker exception for errors that should NOT trigger a retry."""
    pass


# Transient network failures worth another attempt
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
    RetryableError,
)


def build_retrying(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
    sleep: Callable[[float], None] = time.sleep,
) -> Retrying:
    """Exponential backoff with jitter for HTTP collaborators.

    The last exception is re-raised once attempts run out.
    """
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=min_wait, max=max_wait, jitter=min_wait / 2),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(log, log_level=logging.INFO),
        sleep=sleep,
        reraise=True,
    )


def backoff_retrying(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    multiplier: float = 2.0,
    exceptions: tuple = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Retrying:
    """Deterministic backoff: the wait after attempt ``n`` (0-based) is ``base * multiplier**n``.

    Used for page navigation, where jitter buys nothing and the schedule
    should be predictable. Iterate it::

        for attempt in backoff_retrying(3, 1.0, 2.0):
            with attempt:
                load()
    """
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, exp_base=multiplier),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(log, log_level=logging.DEBUG),
        sleep=sleep,
        reraise=True,
    )

