"""
Two-tier cover cache with in-flight lookup de-duplication.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from shelfguide.internal.covers.store import KeyValueStore
from shelfguide.internal.env_settings import CoverSettings
from shelfguide.internal.isbn import normalize_isbn
from shelfguide.internal.models import BookIdentity, CoverCacheEntry
from shelfguide.util.cache import CacheMetrics, SimpleCache
from shelfguide.util.log import logger

FAILED_TTL = timedelta(hours=24)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_cover_cache_key(book: BookIdentity) -> str:
    """
    Canonical identity of a book for caching and de-duplication.

    isbn13 wins over isbn10, which wins over the lower-cased, trimmed
    title/author pair. Every book maps to exactly one key.
    """
    isbn13 = normalize_isbn(book.isbn13)
    if isbn13:
        return f"isbn13:{isbn13}"
    isbn = normalize_isbn(book.isbn)
    if isbn:
        return f"isbn10:{isbn}"
    title = (book.title or "").strip().lower()
    author = (book.author or "").strip().lower()
    return f"title_author:{title}|{author}"


class CoverCache:
    """
    Memoized cover lookups for one process.

    The durable store is loaded on first use and mirrored by an in-memory
    tier that is consulted first. Writes go to both tiers under one lock, so
    an entry is visible before anyone is told about it.
    """

    store: KeyValueStore
    failed_ttl: timedelta
    _memory: SimpleCache[CoverCacheEntry, str]
    _persisted: dict[str, CoverCacheEntry] | None
    _inflight: dict[str, asyncio.Task[str | None]]

    def __init__(
        self,
        store: KeyValueStore,
        failed_ttl: timedelta = FAILED_TTL,
        clock: Clock = utcnow,
        memory_maxsize: int | None = None,
    ):
        self.store = store
        self.failed_ttl = failed_ttl
        self._clock = clock
        self._memory = SimpleCache(maxsize=memory_maxsize)
        self._persisted = None
        self._inflight = {}
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, store: KeyValueStore, settings: CoverSettings) -> "CoverCache":
        return cls(
            store,
            failed_ttl=timedelta(hours=settings.failed_ttl_hours),
            memory_maxsize=settings.memory_maxsize,
        )

    def now(self) -> datetime:
        return self._clock()

    def _durable(self) -> dict[str, CoverCacheEntry]:
        if self._persisted is None:
            self._persisted = self.store.load_all()
            logger.debug("Loaded durable cover cache", entries=len(self._persisted))
        return self._persisted

    def get(self, key: str) -> CoverCacheEntry | None:
        entry = self._memory.get(key)
        if entry is not None:
            return entry
        entry = self._durable().get(key)
        if entry is not None:
            self._memory.set(entry, key)
        return entry

    def is_fresh_failure(self, entry: CoverCacheEntry | None) -> bool:
        if entry is None or entry.failed_at is None:
            return False
        return self.now() - entry.failed_at < self.failed_ttl

    async def put(self, key: str, entry: CoverCacheEntry):
        async with self._write_lock:
            self._durable()[key] = entry
            self._memory.set(entry, key)
            self.store.set(key, entry)

    async def record_result(self, key: str, url: str | None) -> CoverCacheEntry:
        if url:
            entry = CoverCacheEntry(url=url, failed_at=None)
        else:
            entry = CoverCacheEntry(url=None, failed_at=self.now())
        await self.put(key, entry)
        return entry

    async def clear(self, key: str):
        async with self._write_lock:
            self._memory.delete(key)
            self._durable().pop(key, None)
            self.store.delete(key)
        logger.info("Cleared cover cache entry", cache_key=key)

    async def dedupe(
        self, key: str, factory: Callable[[], Awaitable[str | None]]
    ) -> str | None:
        """
        Run `factory` unless a lookup for `key` is already running, in which
        case wait for that one instead. The in-flight slot is released as soon
        as the lookup settles, whatever the outcome.
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task

            def release(done: asyncio.Task[str | None]):
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(release)
        else:
            logger.debug("Joining in-flight cover lookup", cache_key=key)
        return await asyncio.shield(task)

    def get_metrics(self) -> CacheMetrics:
        return self._memory.get_metrics()
