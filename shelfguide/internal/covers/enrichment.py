"""
Bounded-concurrency cover enrichment for batches of library records.
"""
import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Sequence

from shelfguide.internal.covers.cache import CoverCache, build_cover_cache_key
from shelfguide.internal.covers.rate_limit import MinGapRateLimiter
from shelfguide.internal.env_settings import CoverSettings
from shelfguide.internal.isbn import normalize_isbn
from shelfguide.internal.metadata.google_books import BookLookupClient, normalize_cover_url
from shelfguide.internal.models import (
    BookIdentity,
    EnrichableBook,
    EnrichmentOutcome,
    EnrichmentStatus,
    EnrichmentTask,
)
from shelfguide.util.exceptions import LookupNetworkError, handle_external_api_error
from shelfguide.util.log import logger

OnResolved = Callable[[int, str], Any]
HasCover = Callable[[EnrichableBook], bool]


def cover_queries(book: BookIdentity) -> list[str]:
    """Identifier queries first, then title/author, then title alone."""
    queries: list[str] = []
    isbn13 = normalize_isbn(book.isbn13)
    isbn = normalize_isbn(book.isbn)
    if isbn13:
        queries.append(f"isbn:{isbn13}")
    if isbn:
        queries.append(f"isbn:{isbn}")
    title = (book.title or "").strip()
    author = (book.author or "").strip()
    if title and author:
        queries.append(f"intitle:{title} inauthor:{author}")
    elif title:
        queries.append(f"intitle:{title}")
    return queries


class CoverEnrichmentService:
    """
    Resolves missing covers for a batch of books.

    Cached answers are served without touching the network. The remaining
    books are spread over a small worker pool sharing one rate limiter and
    the cache's in-flight map, so a key is never looked up twice at once.
    """

    client: BookLookupClient
    cache: CoverCache
    max_concurrency: int
    rate_limiter: MinGapRateLimiter

    def __init__(
        self,
        client: BookLookupClient,
        cache: CoverCache,
        max_concurrency: int = 3,
        rate_limiter: MinGapRateLimiter | None = None,
    ):
        self.client = client
        self.cache = cache
        self.max_concurrency = max(1, max_concurrency)
        self.rate_limiter = rate_limiter or MinGapRateLimiter(0.14)

    @classmethod
    def from_settings(
        cls, client: BookLookupClient, cache: CoverCache, settings: CoverSettings
    ) -> "CoverEnrichmentService":
        return cls(
            client,
            cache,
            max_concurrency=settings.max_concurrency,
            rate_limiter=MinGapRateLimiter(settings.request_gap_ms / 1000),
        )

    async def _fetch_cover(self, query: str) -> str | None:
        await self.rate_limiter.wait()
        try:
            return await self.client.lookup_cover(query)
        except LookupNetworkError as e:
            handle_external_api_error(e, "Google Books", "cover lookup", query=query)
            return None

    async def _lookup_cover(self, book: BookIdentity) -> str | None:
        for query in cover_queries(book):
            url = await self._fetch_cover(query)
            if url:
                return url
        return None

    async def lookup_cover_for_book(self, book: BookIdentity) -> str | None:
        """Single-item lookup sharing the in-flight map; does not touch the cache."""
        key = build_cover_cache_key(book)
        url = await self.cache.dedupe(key, lambda: self._lookup_cover(book))
        return normalize_cover_url(url)

    async def clear_cover_cache_for_book(self, book: BookIdentity):
        await self.cache.clear(build_cover_cache_key(book))

    async def _notify(self, on_resolved: OnResolved | None, index: int, url: str):
        if on_resolved is None:
            return
        try:
            result = on_resolved(index, url)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.exception("Cover callback failed", index=index, error=str(e))

    def _plan(
        self,
        books: Sequence[EnrichableBook],
        has_cover: HasCover,
    ) -> tuple[list[EnrichmentOutcome | None], list[EnrichmentTask]]:
        outcomes: list[EnrichmentOutcome | None] = [None] * len(books)
        tasks: list[EnrichmentTask] = []
        for index, book in enumerate(books):
            key = build_cover_cache_key(book)
            if has_cover(book):
                outcomes[index] = EnrichmentOutcome(
                    index=index, key=key, status=EnrichmentStatus.already_has_cover
                )
                continue
            entry = self.cache.get(key)
            if entry is not None and entry.is_positive:
                outcomes[index] = EnrichmentOutcome(
                    index=index, key=key, status=EnrichmentStatus.cached, cover_url=entry.url
                )
                continue
            if self.cache.is_fresh_failure(entry):
                outcomes[index] = EnrichmentOutcome(
                    index=index, key=key, status=EnrichmentStatus.cached_failure
                )
                continue
            tasks.append(EnrichmentTask(index=index, key=key, book=book))
        return outcomes, tasks

    async def _run_task(self, task: EnrichmentTask, on_resolved: OnResolved | None) -> EnrichmentOutcome:
        # another worker may have settled this key since the batch was planned
        entry = self.cache.get(task.key)
        if entry is not None and entry.url:
            await self._notify(on_resolved, task.index, entry.url)
            return EnrichmentOutcome(
                index=task.index, key=task.key, status=EnrichmentStatus.cached, cover_url=entry.url
            )
        if self.cache.is_fresh_failure(entry):
            return EnrichmentOutcome(
                index=task.index, key=task.key, status=EnrichmentStatus.cached_failure
            )

        url = normalize_cover_url(
            await self.cache.dedupe(task.key, lambda: self._lookup_cover(task.book))
        )
        await self.cache.record_result(task.key, url)

        if url:
            await self._notify(on_resolved, task.index, url)
            return EnrichmentOutcome(
                index=task.index, key=task.key, status=EnrichmentStatus.resolved, cover_url=url
            )
        return EnrichmentOutcome(index=task.index, key=task.key, status=EnrichmentStatus.not_found)

    async def enrich_covers(
        self,
        books: Sequence[EnrichableBook],
        on_resolved: OnResolved | None = None,
        has_cover: HasCover | None = None,
    ) -> list[EnrichmentOutcome]:
        """
        Find covers for every book lacking one.

        Returns one outcome per input index. When `on_resolved` is given it is
        called with `(index, url)` for each cover served from cache or found,
        after the cache has been written.
        """
        has_cover = has_cover or (lambda book: book.has_cover())
        outcomes, tasks = self._plan(books, has_cover)

        for outcome in outcomes:
            if outcome is not None and outcome.status == EnrichmentStatus.cached and outcome.cover_url:
                await self._notify(on_resolved, outcome.index, outcome.cover_url)

        if not tasks:
            logger.debug("Cover enrichment: nothing to fetch", books=len(books))
            return [o for o in outcomes if o is not None]

        logger.info("Cover enrichment started", books=len(books), to_fetch=len(tasks))
        started = time.perf_counter()
        cursor = 0

        async def worker():
            nonlocal cursor
            while cursor < len(tasks):
                task = tasks[cursor]
                cursor += 1
                try:
                    outcomes[task.index] = await self._run_task(task, on_resolved)
                except Exception as e:
                    logger.exception(
                        "Cover enrichment task failed", index=task.index, cache_key=task.key, error=str(e)
                    )
                    outcomes[task.index] = EnrichmentOutcome(
                        index=task.index, key=task.key, status=EnrichmentStatus.not_found
                    )

        workers = min(self.max_concurrency, len(tasks))
        await asyncio.gather(*(worker() for _ in range(workers)))

        results = [o for o in outcomes if o is not None]
        found = sum(1 for o in results if o.status == EnrichmentStatus.resolved)
        logger.info(
            "Cover enrichment complete",
            found=found,
            failed=sum(1 for o in results if o.status == EnrichmentStatus.not_found),
            skipped=len(results) - len(tasks),
            duration=round(time.perf_counter() - started, 3),
            memory_tier=self.cache.get_metrics().snapshot(),
        )
        return results

    async def enrich_covers_with_callback(
        self,
        books: Sequence[EnrichableBook],
        on_resolved: Callable[[int, str], Awaitable[None] | None],
    ) -> list[EnrichmentOutcome]:
        return await self.enrich_covers(books, on_resolved=on_resolved)
