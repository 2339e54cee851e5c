from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import Field as SQLField
from sqlmodel import SQLModel


class LookupStatus(str, Enum):
    success = "success"
    partial = "partial"
    not_found = "not_found"
    network_error = "network_error"


class ScannedBookMeta(BaseModel):
    """Canonical metadata for one book as resolved from the lookup service."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    author: str = ""
    genre: str = ""
    isbn: str = ""
    isbn13: str = ""
    description: str = ""
    thumbnail: str = ""
    page_count: int | None = None
    published_year: int | None = None

    @property
    def has_cover(self) -> bool:
        return bool(self.thumbnail)

    @property
    def is_complete(self) -> bool:
        """Both a cover and a description are present."""
        return bool(self.thumbnail) and bool(self.description)


class ResolvedBookResult(BaseModel):
    status: LookupStatus
    scanned_code: str = ""
    book: ScannedBookMeta | None = None
    message: str | None = None


class BookIdentity(Protocol):
    title: str
    author: str
    isbn: str | None
    isbn13: str | None


class EnrichableBook(BaseModel):
    """A library record handed in by the batch caller."""

    title: str
    author: str
    isbn: str | None = None
    isbn13: str | None = None
    thumbnail: str | None = None
    cover_url: str | None = None

    def has_cover(self) -> bool:
        return bool(self.cover_url or self.thumbnail)


class CoverCacheEntry(BaseModel):
    """
    Memoized cover lookup outcome.

    Serialized as `{"url": ..., "failedAt": ...}`. An entry with `failed_at`
    set is a remembered miss.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = None
    failed_at: datetime | None = Field(default=None, alias="failedAt")

    @field_validator("failed_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # sqlite hands back naive datetimes
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_positive(self) -> bool:
        return bool(self.url)


class EnrichmentStatus(str, Enum):
    already_has_cover = "already_has_cover"
    cached = "cached"
    cached_failure = "cached_failure"
    resolved = "resolved"
    not_found = "not_found"


class EnrichmentTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    key: str
    book: EnrichableBook


class EnrichmentOutcome(BaseModel):
    index: int
    key: str
    status: EnrichmentStatus
    cover_url: str | None = None


class CoverCacheRecord(SQLModel, table=True):
    """Durable row backing the sqlite cover store."""

    key: str = SQLField(primary_key=True)
    url: str | None = None
    failed_at: datetime | None = None
    updated_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
