"""
Tests for barcode resolution, the retry wrapper and the manual title/author search.
"""
import pytest

from shelfguide.internal.env_settings import LookupSettings
from shelfguide.internal.models import LookupStatus, ScannedBookMeta
from shelfguide.internal.resolver import (
    NETWORK_MESSAGE,
    TIMEOUT_MESSAGE,
    BarcodeResolver,
    fill_scanned_identifiers,
)
from shelfguide.util.exceptions import LookupNetworkError, LookupTimeoutError
from tests.conftest import FakeLookupClient, no_sleep


def make_resolver(client: FakeLookupClient, retries: int = 1, sleep=no_sleep) -> BarcodeResolver:
    return BarcodeResolver(client, retries=retries, retry_delay=0.6, sleep=sleep)


class TestFromSettings:
    def test_reads_retry_settings(self, fake_client):
        resolver = BarcodeResolver.from_settings(
            fake_client, LookupSettings(retries=2, retry_delay_ms=250)
        )
        assert resolver.retries == 2
        assert resolver.retry_delay == 0.25


@pytest.mark.asyncio
class TestResolveBarcode:
    """Multi-step resolution from a scanned code."""

    async def test_exact_match_with_cover_and_description(self, dune):
        client = FakeLookupClient({"isbn:9780441013593": dune})

        result = await make_resolver(client).resolve_book_metadata_from_barcode("978-0-441-01359-3")

        assert result.status == LookupStatus.success
        assert result.scanned_code == "9780441013593"
        assert result.book == dune
        assert client.calls == ["isbn:9780441013593"]

    async def test_exact_match_missing_description_is_partial(self, dune):
        book = dune.model_copy(update={"description": ""})
        client = FakeLookupClient({"isbn:9780441013593": book})

        result = await make_resolver(client).resolve_book_metadata_from_barcode("9780441013593")

        assert result.status == LookupStatus.partial
        assert result.book == book

    async def test_exact_match_missing_cover_is_partial(self, dune):
        book = dune.model_copy(update={"thumbnail": ""})
        client = FakeLookupClient({"isbn:9780441013593": book})

        result = await make_resolver(client).resolve_book_metadata_from_barcode("9780441013593")

        assert result.status == LookupStatus.partial

    async def test_isbn10_scan_tries_isbn13_form_first(self, dune):
        client = FakeLookupClient({"isbn:0441013597": dune})

        result = await make_resolver(client, retries=0).resolve_book_metadata_from_barcode("0441013597")

        assert result.status == LookupStatus.success
        assert client.calls == ["isbn:9780441013593", "isbn:0441013597"]

    async def test_untitled_record_does_not_count(self, dune):
        client = FakeLookupClient({
            "isbn:9780441013593": ScannedBookMeta(thumbnail="https://x/y.jpg"),
            "isbn:0441013597": dune,
        })

        result = await make_resolver(client).resolve_book_metadata_from_barcode("9780441013593")

        assert result.status == LookupStatus.success
        assert result.book == dune

    async def test_bare_query_hit_is_partial(self, dune):
        client = FakeLookupClient({"9780441013593": dune})

        result = await make_resolver(client, retries=0).resolve_book_metadata_from_barcode("9780441013593")

        assert result.status == LookupStatus.partial
        assert result.book == dune
        assert client.calls == ["isbn:9780441013593", "isbn:0441013597", "9780441013593"]

    async def test_not_found_after_both_steps(self):
        client = FakeLookupClient()
        sleeps: list[float] = []

        async def record_sleep(delay: float):
            sleeps.append(delay)

        result = await make_resolver(client, sleep=record_sleep).resolve_book_metadata_from_barcode(
            "9780441013593"
        )

        assert result.status == LookupStatus.not_found
        assert result.book is None
        assert client.calls == [
            "isbn:9780441013593",
            "isbn:9780441013593",
            "isbn:0441013597",
            "isbn:0441013597",
            "9780441013593",
            "9780441013593",
            "0441013597",
            "0441013597",
        ]
        assert sleeps == [0.6, 0.6, 0.6, 0.6]

    @pytest.mark.parametrize("code", ["", "12345", "ISBN 978-0-44"])
    async def test_short_code_is_not_found_without_lookup(self, fake_client, code):
        result = await make_resolver(fake_client).resolve_book_metadata_from_barcode(code)

        assert result.status == LookupStatus.not_found
        assert fake_client.calls == []

    async def test_code_without_valid_candidate_skips_lookup(self, fake_client):
        result = await make_resolver(fake_client).resolve_book_metadata_from_barcode("012345678905")

        assert result.status == LookupStatus.not_found
        assert result.scanned_code == "012345678905"
        assert fake_client.calls == []

    async def test_timeout_is_network_error_without_retry(self, dune):
        client = FakeLookupClient({
            "isbn:9780441013593": [LookupTimeoutError("deadline"), dune],
        })

        result = await make_resolver(client).resolve_book_metadata_from_barcode("9780441013593")

        assert result.status == LookupStatus.network_error
        assert result.message == TIMEOUT_MESSAGE
        assert result.book is None
        assert client.calls == ["isbn:9780441013593"]

    async def test_transient_failure_is_retried(self, dune):
        client = FakeLookupClient({
            "isbn:9780441013593": [LookupNetworkError("reset"), dune],
        })

        result = await make_resolver(client).resolve_book_metadata_from_barcode("9780441013593")

        assert result.status == LookupStatus.success
        assert client.calls == ["isbn:9780441013593", "isbn:9780441013593"]

    async def test_persistent_failure_is_network_error(self):
        client = FakeLookupClient({
            "isbn:9780441013593": [LookupNetworkError("reset"), LookupNetworkError("reset")],
        })

        result = await make_resolver(client).resolve_book_metadata_from_barcode("9780441013593")

        assert result.status == LookupStatus.network_error
        assert result.message == NETWORK_MESSAGE
        assert len(client.calls) == 2


@pytest.mark.asyncio
class TestRetryFetch:
    async def test_empty_result_is_retried_once(self, dune):
        results = [None, dune]
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return results.pop(0)

        assert await make_resolver(FakeLookupClient()).retry_fetch(fetch) == dune
        assert calls == 2

    async def test_gives_up_after_retries(self):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return None

        assert await make_resolver(FakeLookupClient(), retries=2).retry_fetch(fetch) is None
        assert calls == 3

    async def test_timeout_propagates_immediately(self):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            raise LookupTimeoutError("deadline")

        with pytest.raises(LookupTimeoutError):
            await make_resolver(FakeLookupClient(), retries=3).retry_fetch(fetch)
        assert calls == 1


@pytest.mark.asyncio
class TestTitleAuthorSearch:
    async def test_builds_combined_query(self, dune):
        client = FakeLookupClient({"intitle:Dune inauthor:Frank Herbert": dune})

        book = await make_resolver(client).search_book_by_title_author("  Dune ", "Frank Herbert")

        assert book == dune
        assert client.calls == ["intitle:Dune inauthor:Frank Herbert"]

    async def test_title_only(self, dune):
        client = FakeLookupClient({"intitle:Dune": dune})

        assert await make_resolver(client).search_book_by_title_author("Dune", " ") == dune

    async def test_author_only(self, dune):
        client = FakeLookupClient({"inauthor:Frank Herbert": dune})

        assert await make_resolver(client).search_book_by_title_author("", "Frank Herbert") == dune

    async def test_blank_input_makes_no_call(self, fake_client):
        assert await make_resolver(fake_client).search_book_by_title_author(" ", "") is None
        assert fake_client.calls == []

    async def test_network_failure_propagates(self):
        client = FakeLookupClient({"intitle:Dune": LookupNetworkError("down")})

        with pytest.raises(LookupNetworkError):
            await make_resolver(client, retries=0).search_book_by_title_author("Dune", "")


class TestFillScannedIdentifiers:
    def test_fills_isbn13(self, dune):
        book = dune.model_copy(update={"isbn": "", "isbn13": ""})

        filled = fill_scanned_identifiers(book, "978-0-441-01359-3")

        assert filled.isbn13 == "9780441013593"
        assert filled.isbn == ""

    def test_fills_isbn10(self, dune):
        book = dune.model_copy(update={"isbn": "", "isbn13": ""})

        assert fill_scanned_identifiers(book, "0-441-01359-7").isbn == "0441013597"

    def test_keeps_existing_identifiers(self, dune):
        assert fill_scanned_identifiers(dune, "9780306406157") == dune

    def test_ignores_odd_lengths(self, dune):
        book = dune.model_copy(update={"isbn": "", "isbn13": ""})

        assert fill_scanned_identifiers(book, "12345") == book
