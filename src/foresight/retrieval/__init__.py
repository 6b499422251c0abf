import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


class RetrievalError(RuntimeError):
    """Raised when a search provider ultimately fails."""


@dataclass(frozen=True)
class SearchResult:
    """One document returned by a search provider."""

    title: str
    url: str
    description: str = ""
    published: str = ""


class EvidenceRetriever(Protocol):
    """Anything that can turn a query into documents.

    ``lookback_days`` of ``None`` means no date restriction.
    """

    def search(self, query: str, lookback_days: int | None) -> list[SearchResult]:
        ...


def safe_search(retriever: EvidenceRetriever, query: str, lookback_days: int | None) -> list[SearchResult]:
    """Run *query* and treat any failure as "no evidence"."""
    try:
        return list(retriever.search(query, lookback_days))
    except Exception as exc:
        logger.warning("Search failed for %r, treating as no evidence: %s", query, exc)
        return []


__all__ = ["EvidenceRetriever", "RetrievalError", "SearchResult", "safe_search"]
