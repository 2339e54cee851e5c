from typing import Annotated

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from shelfguide.internal.covers import CoverEnrichmentService
from shelfguide.internal.models import EnrichableBook, EnrichmentOutcome
from shelfguide.internal.services import get_cover_service

router = APIRouter(prefix="/covers", tags=["Covers"])


class CoverLookupResult(BaseModel):
    cover_url: str | None


@router.post("/enrich", response_model=list[EnrichmentOutcome])
async def enrich_covers(
    service: Annotated[CoverEnrichmentService, Depends(get_cover_service)],
    books: list[EnrichableBook],
):
    return await service.enrich_covers(books)


@router.post("/lookup", response_model=CoverLookupResult)
async def lookup_cover(
    service: Annotated[CoverEnrichmentService, Depends(get_cover_service)],
    book: EnrichableBook,
):
    return CoverLookupResult(cover_url=await service.lookup_cover_for_book(book))


@router.delete("/cache", status_code=204)
async def clear_cover_cache(
    service: Annotated[CoverEnrichmentService, Depends(get_cover_service)],
    book: EnrichableBook,
):
    await service.clear_cover_cache_for_book(book)
    return Response(status_code=204)
