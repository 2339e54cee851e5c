"""
Google Books volumes client used for barcode resolution and cover lookups.
"""
import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Protocol

from aiohttp import ClientError, ClientSession
from pydantic import BaseModel, ConfigDict, ValidationError

from shelfguide.internal.env_settings import LookupSettings
from shelfguide.internal.models import ScannedBookMeta
from shelfguide.util.exceptions import (
    LookupNetworkError,
    LookupTimeoutError,
    handle_external_api_error,
    handle_validation_error,
)
from shelfguide.util.log import logger

_YEAR_PREFIX = re.compile(r"^(\d{4})")


class GoogleBooksVolumeInfo(BaseModel):
    """Google Books API volume info response model."""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    authors: Optional[List[str]] = None
    description: Optional[str] = None
    categories: Optional[List[str]] = None
    imageLinks: Optional[Dict[str, Any]] = None
    publishedDate: Optional[str] = None
    pageCount: Any = None
    industryIdentifiers: Optional[List[Dict[str, Any]]] = None


class GoogleBooksItem(BaseModel):
    """Google Books API item response model."""
    model_config = ConfigDict(extra="ignore")

    volumeInfo: Optional[GoogleBooksVolumeInfo] = None


class GoogleBooksResponse(BaseModel):
    """Google Books API search response model."""
    model_config = ConfigDict(extra="ignore")

    items: Optional[List[GoogleBooksItem]] = None
    totalItems: int = 0

    def first_volume(self) -> Optional[GoogleBooksVolumeInfo]:
        if not self.items:
            return None
        return self.items[0].volumeInfo


class BookLookupClient(Protocol):
    async def lookup(
        self, query: str, timeout: float | None = None
    ) -> ScannedBookMeta | None: ...

    async def lookup_cover(
        self, query: str, timeout: float | None = None
    ) -> str | None: ...


def normalize_cover_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    if url[:7].lower() == "http://":
        return "https://" + url[7:]
    return url


def _extract_identifier(volume_info: GoogleBooksVolumeInfo, id_type: str) -> str:
    for identifier in volume_info.industryIdentifiers or []:
        if identifier.get("type") == id_type and identifier.get("identifier"):
            return str(identifier["identifier"])
    return ""


def _get_cover(image_links: Optional[Dict[str, Any]]) -> str:
    """Prefer the regular thumbnail over the small one."""
    if not image_links:
        return ""
    for size in ("thumbnail", "smallThumbnail"):
        url = image_links.get(size)
        if isinstance(url, str) and url:
            return normalize_cover_url(url) or ""
    return ""


def _parse_page_count(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        count = int(value)
    except (TypeError, ValueError):
        return None
    return count if count > 0 else None


def _parse_published_year(published_date: Optional[str]) -> Optional[int]:
    if not published_date:
        return None
    match = _YEAR_PREFIX.match(published_date.strip())
    if not match:
        return None
    return int(match.group(1)) or None


def volume_info_to_meta(volume_info: GoogleBooksVolumeInfo) -> ScannedBookMeta:
    """Map a raw volume onto the canonical record."""
    return ScannedBookMeta(
        title=volume_info.title or "",
        author=", ".join(a for a in (volume_info.authors or []) if a),
        genre=(volume_info.categories or [""])[0] or "",
        isbn=_extract_identifier(volume_info, "ISBN_10"),
        isbn13=_extract_identifier(volume_info, "ISBN_13"),
        description=volume_info.description or "",
        thumbnail=_get_cover(volume_info.imageLinks),
        page_count=_parse_page_count(volume_info.pageCount),
        published_year=_parse_published_year(volume_info.publishedDate),
    )


class GoogleBooksClient:
    """
    Single-shot Google Books volume queries.

    Every call runs under a hard deadline. Expiry raises `LookupTimeoutError`
    and transport failures raise `LookupNetworkError`; a reachable service
    with nothing to offer yields `None`.
    """

    base_url: str
    api_key: str
    timeout: float
    max_results: int
    print_type: str

    def __init__(
        self,
        client_session: ClientSession,
        settings: LookupSettings | None = None,
    ):
        settings = settings or LookupSettings()
        self.client_session = client_session
        self.base_url = settings.base_url
        self.api_key = settings.api_key
        self.timeout = settings.timeout_seconds
        self.max_results = settings.max_results
        self.print_type = settings.print_type

    def _build_params(self, query: str) -> dict[str, str]:
        params = {
            "q": query,
            "maxResults": str(self.max_results),
            "printType": self.print_type,
        }
        if self.api_key:
            params["key"] = self.api_key
        return params

    async def fetch_volumes(
        self, query: str, timeout: float | None = None
    ) -> Optional[GoogleBooksResponse]:
        deadline = self.timeout if timeout is None else timeout
        try:
            async with asyncio.timeout(deadline):
                async with self.client_session.get(
                    self.base_url, params=self._build_params(query)
                ) as response:
                    if response.status != 200:
                        logger.warning(
                            f"Google Books API returned {response.status}",
                            query=query,
                        )
                        return None
                    data = await response.json(content_type=None)
        except TimeoutError as e:
            logger.warning("Google Books lookup timed out", query=query, timeout=deadline)
            raise LookupTimeoutError(
                f"Lookup timed out after {deadline}s", query=query
            ) from e
        except ClientError as e:
            handle_external_api_error(e, "Google Books", "HTTP request", query=query)
            raise LookupNetworkError(str(e) or type(e).__name__, query=query) from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            handle_external_api_error(e, "Google Books", "parse response", query=query)
            return None

        if not isinstance(data, dict):
            logger.warning("Google Books response was not an object", query=query)
            return None
        try:
            return GoogleBooksResponse.model_validate(data)
        except ValidationError as e:
            handle_validation_error(e, "Google Books response", query=query)
            return None

    async def lookup(
        self, query: str, timeout: float | None = None
    ) -> Optional[ScannedBookMeta]:
        """Resolve the first matching volume for a query expression."""
        response = await self.fetch_volumes(query, timeout)
        if response is None:
            return None
        volume_info = response.first_volume()
        if volume_info is None:
            logger.debug("No Google Books match", query=query)
            return None
        return volume_info_to_meta(volume_info)

    async def lookup_cover(
        self, query: str, timeout: float | None = None
    ) -> Optional[str]:
        book = await self.lookup(query, timeout)
        if book is None or not book.thumbnail:
            return None
        return book.thumbnail
