from aiohttp import ClientSession, ClientTimeout, TCPConnector

from shelfguide.internal.env_settings import LookupSettings


def create_client_session(settings: LookupSettings) -> ClientSession:
    """
    Shared HTTP session for all outbound lookups.

    The session-level timeout is only a backstop; each lookup applies its
    own, shorter deadline.
    """
    return ClientSession(
        timeout=ClientTimeout(total=settings.timeout_seconds * 2),
        connector=TCPConnector(limit=20),
        headers={"Accept": "application/json"},
    )
