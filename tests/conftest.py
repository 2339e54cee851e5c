"""
Pytest configuration and fixtures for the ShelfGuide lookup test suite.
"""
import asyncio
import re
from datetime import datetime, timezone
from typing import AsyncGenerator, Generator

import pytest
from aiohttp import ClientSession
from aioresponses import aioresponses

from shelfguide.internal.covers.cache import CoverCache
from shelfguide.internal.covers.store import MemoryStore
from shelfguide.internal.models import ScannedBookMeta

GOOGLE_BOOKS_URL = re.compile(r"^https://www\.googleapis\.com/books/v1/volumes(\?.*)?$")

FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeLookupClient:
    """
    In-process stand-in for the Google Books client.

    `responses` maps a query to a record, `None`, an exception to raise, or a
    list of those consumed one per call. Every call is recorded.
    """

    def __init__(self, responses=None, delay: float = 0.0):
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls: list[str] = []
        self.call_times: list[float] = []

    async def lookup(self, query: str, timeout: float | None = None):
        self.calls.append(query)
        self.call_times.append(asyncio.get_running_loop().time())
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.responses.get(query)
        if isinstance(result, list):
            result = result.pop(0) if result else None
        if isinstance(result, BaseException):
            raise result
        return result

    async def lookup_cover(self, query: str, timeout: float | None = None):
        book = await self.lookup(query, timeout)
        if book is None or not book.thumbnail:
            return None
        return book.thumbnail


async def no_sleep(_: float) -> None:
    return None


@pytest.fixture
def fake_client() -> FakeLookupClient:
    return FakeLookupClient()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def memory_cache(fixed_clock) -> CoverCache:
    return CoverCache(MemoryStore(), clock=fixed_clock)


# Async HTTP mocking fixtures
@pytest.fixture(scope="function")
async def mock_client_session() -> AsyncGenerator[ClientSession, None]:
    """Provide a real ClientSession with aioresponses mocking for HTTP calls."""
    with aioresponses() as mocked:
        async with ClientSession() as session:
            # Attach mocked responses to session for easy access in tests
            session._mocked = mocked
            yield session


@pytest.fixture(scope="function")
def aioresponses_mocker() -> Generator[aioresponses, None, None]:
    """Provide aioresponses context manager for manual HTTP mocking."""
    with aioresponses() as mocked:
        yield mocked


@pytest.fixture
def dune() -> ScannedBookMeta:
    return ScannedBookMeta(
        title="Dune",
        author="Frank Herbert",
        genre="Fiction",
        isbn="0441013597",
        isbn13="9780441013593",
        description="Set on the desert planet Arrakis.",
        thumbnail="https://books.google.com/books/content?id=dune&zoom=1",
        page_count=617,
        published_year=2005,
    )


@pytest.fixture
def mock_google_books_response():
    """Mock Google Books API response."""
    return {
        "kind": "books#volumes",
        "totalItems": 1,
        "items": [
            {
                "volumeInfo": {
                    "title": "Dune",
                    "authors": ["Frank Herbert", "Brian Herbert"],
                    "description": "Set on the desert planet Arrakis.",
                    "categories": ["Fiction", "Science Fiction"],
                    "imageLinks": {
                        "smallThumbnail": "http://books.google.com/books/content?id=dune&zoom=5",
                        "thumbnail": "http://books.google.com/books/content?id=dune&zoom=1",
                    },
                    "publishedDate": "2005-08-02",
                    "pageCount": 617,
                    "industryIdentifiers": [
                        {"type": "ISBN_10", "identifier": "0441013597"},
                        {"type": "ISBN_13", "identifier": "9780441013593"},
                    ],
                }
            }
        ],
    }


@pytest.fixture
def mock_google_books_empty_response():
    """Mock Google Books API empty response."""
    return {"kind": "books#volumes", "totalItems": 0}
