"""
brave.py
~~~~~~~~

Evidence retrieval through the Brave Search web API.

Documentation: https://brave.com/search/api/
Endpoint:      GET https://api.search.brave.com/res/v1/web/search?q=<query>

Transient HTTP failures are retried with exponential backoff; whatever still
fails after the last attempt is logged and returned as an empty result list so
a forecast run can carry on with less evidence.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from foresight.config import settings
from foresight.retrieval import RetrievalError, SearchResult

logger = logging.getLogger(__name__)

_HTTP_OK = 200


def freshness_for(lookback_days: int | None) -> str | None:
    """Brave ``freshness`` code for a lookback window (past week/month/year)."""
    if lookback_days is None:
        return None
    if lookback_days <= 7:  # noqa: PLR2004
        return "pw"
    if lookback_days <= 30:  # noqa: PLR2004
        return "pm"
    return "py"


def parse_results(data: dict[str, Any]) -> list[SearchResult]:
    """Pull ``web.results`` out of a Brave response body."""
    results: list[SearchResult] = []
    for item in (data.get("web") or {}).get("results", []):
        snippets = item.get("extra_snippets") or []
        results.append(
            SearchResult(
                title=item.get("title") or "",
                url=item.get("url") or "",
                description=(snippets[0] if snippets else None) or item.get("description") or "",
                published=item.get("page_age") or "",
            )
        )
    return results


class BraveNewsRetriever:
    """``EvidenceRetriever`` backed by Brave Search.

    Parameters
    ----------
    api_key :
        Subscription token. Falls back to ``settings.BRAVE_SEARCH_API_KEY``.
    count :
        Results requested per query.
    timeout :
        Per-request timeout in seconds.
    max_attempts :
        Attempts per query before giving up.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        url: str = settings.BRAVE_SEARCH_URL,
        count: int = settings.SEARCH_RESULT_COUNT,
        timeout: float = settings.SEARCH_TIMEOUT,
        max_attempts: int = settings.SEARCH_MAX_ATTEMPTS,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key or settings.BRAVE_SEARCH_API_KEY
        if not self.api_key:
            raise ValueError("Brave API key not provided and BRAVE_SEARCH_API_KEY env var not set")
        self.url = url
        self.count = count
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.session = session or requests.Session()

    def _request(self, params: dict[str, str]) -> dict[str, Any]:
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self.api_key or "",
            "User-Agent": "foresight/0.1",
        }
        resp = self.session.get(self.url, params=params, headers=headers, timeout=self.timeout)
        if resp.status_code != _HTTP_OK:
            raise RetrievalError(f"Brave API error {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    def search(self, query: str, lookback_days: int | None) -> list[SearchResult]:
        params = {"q": query, "count": str(self.count), "search_lang": "en"}
        freshness = freshness_for(lookback_days)
        if freshness:
            params["freshness"] = freshness

        fetch = retry(
            reraise=True,
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type((requests.RequestException, RetrievalError)),
        )(self._request)

        try:
            data = fetch(params)
        except (requests.RequestException, RetrievalError, ValueError) as exc:
            logger.warning("Brave search gave up on %r: %s", query, exc)
            return []

        results = parse_results(data)
        logger.debug("Brave returned %s results for %r", len(results), query)
        return results
