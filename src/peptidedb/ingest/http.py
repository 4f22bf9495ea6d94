"""
Shared HTTP executor for every source adapter.

One bounded-timeout GET with linear backoff. Transient failures (timeouts,
connection errors, 429, 5xx) are retried; anything else fails at once.
The executor never raises: callers get a FetchResult and pick their own
safe default when ``ok`` is False.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 18.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_BACKOFF_BASE = 0.45
DEFAULT_USER_AGENT = "peptidedb-enrichment/0.1 (+https://peptidedb.example)"

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})

JSON_ACCEPT = "application/json"
HTML_ACCEPT = "text/html,application/xhtml+xml"


@dataclass
class FetchResult:
    url: str
    ok: bool
    payload: Any = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 0

    @classmethod
    def failure(cls, url: str, error: str, status_code: Optional[int] = None, attempts: int = 0) -> "FetchResult":
        return cls(url=url, ok=False, error=error, status_code=status_code, attempts=attempts)


def _is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUS or status >= 500


class HttpFetcher:
    """GET with timeout and retry. Thread-safe for concurrent adapters."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self.backoff_base = backoff_base
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent})
        self._sleep = sleep

    @classmethod
    def from_config(cls, cfg) -> "HttpFetcher":
        return cls(
            timeout=cfg.timeout_seconds,
            max_retries=cfg.max_retries,
            backoff_base=cfg.backoff_base_seconds,
            user_agent=cfg.user_agent,
        )

    def fetch_json(self, url: str, max_retries: Optional[int] = None,
                   headers: Optional[Dict[str, str]] = None) -> FetchResult:
        return self._fetch(url, as_json=True, max_retries=max_retries, headers=headers)

    def fetch_text(self, url: str, max_retries: Optional[int] = None,
                   headers: Optional[Dict[str, str]] = None) -> FetchResult:
        return self._fetch(url, as_json=False, max_retries=max_retries, headers=headers)

    def _fetch(self, url: str, as_json: bool, max_retries: Optional[int],
               headers: Optional[Dict[str, str]]) -> FetchResult:
        retries = self.max_retries if max_retries is None else max(0, int(max_retries))
        req_headers = {"Accept": JSON_ACCEPT if as_json else HTML_ACCEPT}
        req_headers.update(headers or {})

        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self.session.get(url, headers=req_headers, timeout=self.timeout)
            except (requests.Timeout, requests.ConnectionError) as e:
                if attempt <= retries:
                    self._backoff(url, attempt, retries, f"{type(e).__name__}")
                    continue
                logger.info(f"Giving up on {url} after {attempt} attempts: {e}")
                return FetchResult.failure(url, f"network: {e}", attempts=attempt)
            except requests.RequestException as e:
                logger.info(f"Request to {url} failed: {e}")
                return FetchResult.failure(url, f"request: {e}", attempts=attempt)

            status = resp.status_code
            if 200 <= status < 300:
                break
            if _is_retryable_status(status) and attempt <= retries:
                self._backoff(url, attempt, retries, f"HTTP {status}")
                continue
            logger.debug(f"HTTP {status} from {url}")
            return FetchResult.failure(url, f"HTTP {status}", status_code=status, attempts=attempt)

        if not as_json:
            return FetchResult(url=url, ok=True, payload=resp.text, status_code=status, attempts=attempt)
        try:
            payload = resp.json()
        except ValueError as e:
            logger.debug(f"Malformed JSON from {url}: {e}")
            return FetchResult.failure(url, "malformed body", status_code=status, attempts=attempt)
        return FetchResult(url=url, ok=True, payload=payload, status_code=status, attempts=attempt)

    def _backoff(self, url: str, attempt: int, retries: int, reason: str) -> None:
        wait = self.backoff_base * attempt
        logger.warning(f"{reason} from {url}, retrying in {wait:.2f}s (attempt {attempt}/{retries})")
        self._sleep(wait)
