"""
Multi-step metadata resolution for scanned barcodes.

Step A queries every checksum-valid candidate with an exact `isbn:` query,
step B repeats the loop with the bare identifier. Step B hits are always
reported as `partial`: a bare numeric query can match unrelated volumes.
"""
import asyncio
from typing import Awaitable, Callable

from shelfguide.internal.env_settings import LookupSettings
from shelfguide.internal.isbn import (
    get_lookup_candidates_from_barcode,
    is_valid_isbn,
    normalize_scanned_code,
)
from shelfguide.internal.metadata.google_books import BookLookupClient
from shelfguide.internal.models import LookupStatus, ResolvedBookResult, ScannedBookMeta
from shelfguide.util.exceptions import LookupNetworkError, LookupTimeoutError
from shelfguide.util.log import logger

TIMEOUT_MESSAGE = "Request timed out. Check your connection."
NETWORK_MESSAGE = "Network error. Please try again."

Fetch = Callable[[], Awaitable[ScannedBookMeta | None]]


class BarcodeResolver:
    def __init__(
        self,
        client: BookLookupClient,
        retries: int = 1,
        retry_delay: float = 0.6,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.retries = retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, client: BookLookupClient, settings: LookupSettings
    ) -> "BarcodeResolver":
        return cls(
            client,
            retries=settings.retries,
            retry_delay=settings.retry_delay_ms / 1000,
        )

    async def retry_fetch(self, fetch: Fetch) -> ScannedBookMeta | None:
        """
        Run `fetch`, repeating it after `retry_delay` on an empty result or a
        non-timeout failure. Timeouts propagate at once, and so does a failure
        on the last attempt.
        """
        for attempt in range(self.retries + 1):
            try:
                result = await fetch()
                if result is not None:
                    return result
            except LookupTimeoutError:
                raise
            except LookupNetworkError as e:
                if attempt == self.retries:
                    raise
                logger.debug("Retrying lookup after network error", attempt=attempt, error=str(e))
            if attempt < self.retries:
                await self._sleep(self.retry_delay)
        return None

    def _candidates(self, code: str) -> list[str]:
        candidates = get_lookup_candidates_from_barcode(code)
        valid = [c for c in candidates if is_valid_isbn(c)]
        if len(valid) != len(candidates):
            logger.debug(
                "Dropped candidates failing checksum",
                scanned_code=code,
                dropped=[c for c in candidates if c not in valid],
            )
        return valid

    async def _first_titled(self, candidates: list[str], exact: bool) -> ScannedBookMeta | None:
        for candidate in candidates:
            query = f"isbn:{candidate}" if exact else candidate
            result = await self.retry_fetch(lambda: self.client.lookup(query))
            if result is not None and result.title:
                return result
        return None

    async def resolve_book_metadata_from_barcode(self, scanned_code: str) -> ResolvedBookResult:
        code = normalize_scanned_code(scanned_code)
        if len(code) < 10:
            return ResolvedBookResult(status=LookupStatus.not_found, scanned_code=code)

        candidates = self._candidates(code)
        if not candidates:
            return ResolvedBookResult(status=LookupStatus.not_found, scanned_code=code)

        try:
            book = await self._first_titled(candidates, exact=True)
            if book is not None:
                status = LookupStatus.success if book.is_complete else LookupStatus.partial
                logger.info("Resolved barcode", scanned_code=code, status=status.value, step="exact")
                return ResolvedBookResult(status=status, scanned_code=code, book=book)

            book = await self._first_titled(candidates, exact=False)
            if book is not None:
                logger.info("Resolved barcode", scanned_code=code, status="partial", step="bare")
                return ResolvedBookResult(
                    status=LookupStatus.partial, scanned_code=code, book=book
                )
        except LookupTimeoutError:
            logger.warning("Barcode resolution timed out", scanned_code=code)
            return ResolvedBookResult(
                status=LookupStatus.network_error, scanned_code=code, message=TIMEOUT_MESSAGE
            )
        except LookupNetworkError as e:
            logger.warning("Barcode resolution failed", scanned_code=code, error=str(e))
            return ResolvedBookResult(
                status=LookupStatus.network_error, scanned_code=code, message=NETWORK_MESSAGE
            )

        logger.info("Barcode not found", scanned_code=code, candidates=candidates)
        return ResolvedBookResult(status=LookupStatus.not_found, scanned_code=code)

    async def search_book_by_title_author(self, title: str, author: str) -> ScannedBookMeta | None:
        """Manual fallback for callers without a usable barcode."""
        parts: list[str] = []
        if title.strip():
            parts.append(f"intitle:{title.strip()}")
        if author.strip():
            parts.append(f"inauthor:{author.strip()}")
        if not parts:
            return None
        query = " ".join(parts)
        return await self.retry_fetch(lambda: self.client.lookup(query))


def fill_scanned_identifiers(book: ScannedBookMeta, scanned_code: str) -> ScannedBookMeta:
    """Carry the scanned code over to a manually found record lacking identifiers."""
    code = normalize_scanned_code(scanned_code)
    if not code or book.isbn13 or book.isbn:
        return book
    if len(code) == 13:
        return book.model_copy(update={"isbn13": code})
    if len(code) == 10:
        return book.model_copy(update={"isbn": code})
    return book
