from dataclasses import dataclass

from aiohttp import ClientSession
from fastapi import Request

from shelfguide.internal.covers import CoverCache, CoverEnrichmentService, build_store
from shelfguide.internal.env_settings import Settings
from shelfguide.internal.metadata import GoogleBooksClient
from shelfguide.internal.resolver import BarcodeResolver


@dataclass
class LookupServices:
    """Process-wide lookup services, created once per application."""

    client: GoogleBooksClient
    resolver: BarcodeResolver
    cover_cache: CoverCache
    covers: CoverEnrichmentService


def build_services(settings: Settings, client_session: ClientSession) -> LookupServices:
    client = GoogleBooksClient(client_session, settings.lookup)
    cover_cache = CoverCache.from_settings(build_store(settings), settings.covers)
    return LookupServices(
        client=client,
        resolver=BarcodeResolver.from_settings(client, settings.lookup),
        cover_cache=cover_cache,
        covers=CoverEnrichmentService.from_settings(client, cover_cache, settings.covers),
    )


def get_resolver(request: Request) -> BarcodeResolver:
    return request.app.state.services.resolver


def get_cover_service(request: Request) -> CoverEnrichmentService:
    return request.app.state.services.covers
