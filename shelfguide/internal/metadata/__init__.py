"""
Bibliographic lookup providers.

Provides the Google Books client used to resolve scanned barcodes and to
find cover images for library records.
"""

from .google_books import BookLookupClient, GoogleBooksClient, normalize_cover_url

__all__ = ["BookLookupClient", "GoogleBooksClient", "normalize_cover_url"]
