"""
Error types and standard error logging for the lookup engine.

Expected lookup conditions (checksum rejection, no match, partial record) are
returned as values. Only transport-level failures are raised, as
`LookupNetworkError`, so callers can tell "the service could not be reached"
apart from "the service had nothing for this query".
"""
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from shelfguide.util.log import logger


class LookupNetworkError(Exception):
    """Transport failure while talking to the bibliographic service."""

    query: str | None

    def __init__(self, message: str, query: str | None = None):
        super().__init__(message)
        self.query = query


class LookupTimeoutError(LookupNetworkError):
    """The per-call deadline expired before the service answered."""


def _failure_fields(error: BaseException) -> dict[str, str]:
    return {"error": str(error), "error_type": type(error).__name__}


def handle_external_api_error(error: Exception, service: str, operation: str, **context: Any) -> None:
    """
    Log a failed call to a remote service.

    Example:
        except LookupNetworkError as e:
            handle_external_api_error(e, "Google Books", "cover lookup", query=query)
    """
    logger.error(
        f"{service} {operation} failed",
        service=service,
        operation=operation,
        **_failure_fields(error),
        **context,
    )


def handle_database_error(
    error: SQLAlchemyError,
    operation: str,
    rollback_session: Any = None,
    **context: Any,
) -> None:
    """Log a failed cover store statement, rolling back `rollback_session` if given."""
    logger.error(f"Database {operation} failed", operation=operation, **_failure_fields(error), **context)
    if rollback_session is None:
        return
    try:
        rollback_session.rollback()
    except SQLAlchemyError as e:
        logger.warning("Rollback after database error failed", **_failure_fields(e))


def handle_validation_error(error: ValidationError, data_source: str, **context: Any) -> None:
    logger.error(
        f"{data_source} validation failed",
        data_source=data_source,
        errors=error.error_count(),
        **_failure_fields(error),
        **context,
    )


def handle_cache_error(error: Exception, operation: str, cache_key: str, **context: Any) -> None:
    """
    Log a cover cache read or write that could not be completed.

    Never fatal: unreadable content is treated as an empty cache and a failed
    write leaves the in-memory tier authoritative. `cache_key` is "*" for
    whole-store operations.
    """
    logger.warning(
        f"Cover cache {operation} failed",
        operation=operation,
        cache_key=cache_key,
        **_failure_fields(error),
        **context,
    )
