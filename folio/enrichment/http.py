"""JSON over HTTP with bounded retries."""

import logging
import random
import time
from collections.abc import Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import requests

from folio.enrichment.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 4.0
BACKOFF_STEP_SECONDS = 0.5
MAX_JITTER_SECONDS = 0.05
MAX_RETRIES_LIMIT = 5
# Longer Retry-After waits are treated as "no result".
MAX_RETRY_AFTER_SECONDS = 30.0

RETRY_AFTER_STATUSES = {429, 503}


def clamp_retries(value: int) -> int:
    return min(MAX_RETRIES_LIMIT, max(0, value))


def backoff_seconds(attempt: int) -> float:
    return min(MAX_BACKOFF_SECONDS, BACKOFF_STEP_SECONDS * (attempt + 1))


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Seconds to wait from a Retry-After header, given as seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class JsonFetcher:
    """GETs JSON through a rate limiter, retrying throttling and server errors.

    Throttled responses (429/503) honour Retry-After up to max_retry_after;
    other 5xx responses and connection errors back off linearly. Anything else
    that is not a 2xx, an undecodable body, or exhausted retries yields None.
    """

    def __init__(
        self,
        session: requests.Session,
        limiter: RateLimiter,
        max_retries: int = 3,
        timeout: float = 15.0,
        user_agent: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[], float] | None = None,
        max_retry_after: float = MAX_RETRY_AFTER_SECONDS,
    ):
        self.session = session
        self.limiter = limiter
        self.max_retries = clamp_retries(max_retries)
        self.timeout = timeout
        self.user_agent = user_agent
        self._sleep = sleep
        self._jitter = jitter or (lambda: random.uniform(0, MAX_JITTER_SECONDS))
        self.max_retry_after = max_retry_after

    def get(self, url: str, params: dict[str, Any] | None = None) -> Any | None:
        headers = {"Accept": "application/json"}
        if self.user_agent:
            headers["User-Agent"] = self.user_agent

        for attempt in range(self.max_retries + 1):
            can_retry = attempt < self.max_retries
            self.limiter.wait()
            try:
                response = self.session.get(
                    url, params=params, headers=headers, timeout=self.timeout
                )
            except requests.RequestException as e:
                logger.debug("Request to %s failed (attempt %d): %s", url, attempt + 1, e)
                if not can_retry:
                    return None
                self._sleep(backoff_seconds(attempt) + self._jitter())
                continue

            status = response.status_code
            if status in RETRY_AFTER_STATUSES and can_retry:
                delay = parse_retry_after(response.headers.get("Retry-After"))
                if delay is None:
                    delay = backoff_seconds(attempt)
                elif delay > self.max_retry_after:
                    logger.info("%s asked to retry after %.0fs, giving up", url, delay)
                    return None
                delay += self._jitter()
                logger.debug("%s returned %d, retrying in %.2fs", url, status, delay)
                self._sleep(delay)
                continue

            if status >= 500 and can_retry:
                self._sleep(backoff_seconds(attempt) + self._jitter())
                continue

            if not 200 <= status < 300:
                logger.debug("%s returned %d", url, status)
                return None

            try:
                return response.json()
            except ValueError:
                logger.warning("Invalid JSON from %s", url)
                return None

        return None
