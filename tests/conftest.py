from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from foresight.db.models import create_db_and_tables
from foresight.retrieval import SearchResult


class FakeRetriever:
    """Records every query and answers from a callable."""

    def __init__(self, answer: Callable[[str, int | None], list[SearchResult]] | None = None) -> None:
        self.answer = answer or (lambda query, lookback: [])
        self.calls: list[tuple[str, int | None]] = []

    def search(self, query: str, lookback_days: int | None) -> list[SearchResult]:
        self.calls.append((query, lookback_days))
        return self.answer(query, lookback_days)


NEUTRAL_DOC = SearchResult(
    title="Officials meet in the capital",
    url="https://www.reuters.com/world/neutral",
    description="Talks continued on Tuesday.",
)


@pytest.fixture
def make_retriever() -> type[FakeRetriever]:
    return FakeRetriever


@pytest.fixture
def neutral_retriever() -> FakeRetriever:
    return FakeRetriever(lambda query, lookback: [NEUTRAL_DOC])


@pytest.fixture
def empty_retriever() -> FakeRetriever:
    return FakeRetriever()


@pytest.fixture
def db() -> Iterator[Session]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
