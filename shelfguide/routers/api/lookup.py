from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from shelfguide.internal.models import ResolvedBookResult, ScannedBookMeta
from shelfguide.internal.resolver import BarcodeResolver, fill_scanned_identifiers
from shelfguide.internal.services import get_resolver
from shelfguide.util.exceptions import LookupNetworkError
from shelfguide.util.log import logger

router = APIRouter(prefix="/lookup", tags=["Lookup"])


@router.get("/barcode/{code}", response_model=ResolvedBookResult)
async def resolve_barcode(
    resolver: Annotated[BarcodeResolver, Depends(get_resolver)],
    code: str,
):
    return await resolver.resolve_book_metadata_from_barcode(code)


@router.get("/search", response_model=ScannedBookMeta)
async def search_by_title_author(
    resolver: Annotated[BarcodeResolver, Depends(get_resolver)],
    title: str = "",
    author: str = "",
    scanned_code: Annotated[str | None, Query()] = None,
):
    if not title.strip() and not author.strip():
        raise HTTPException(status_code=400, detail="Provide a title or an author")

    try:
        book = await resolver.search_book_by_title_author(title, author)
    except LookupNetworkError as e:
        logger.warning("Title/author search failed", title=title, author=author, error=str(e))
        raise HTTPException(status_code=503, detail="Lookup service unavailable")

    if book is None or not book.title:
        raise HTTPException(status_code=404, detail="Book not found")
    if scanned_code:
        book = fill_scanned_identifiers(book, scanned_code)
    return book
