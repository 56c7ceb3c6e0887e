# fieldmap/infra/http_client.py
"""
Shared HTTP client sessions for the application.

Provides named, lazy-initialized aiohttp.ClientSession singletons
to avoid per-request session creation overhead and TCP connection churn.

Session profiles
~~~~~~~~~~~~~~~~
- **api** – backend map/dispatch API (timeouts from settings, pool limit=10)

Shutdown
~~~~~~~~
Call ``close_all_sessions()`` once when the dispatch session is torn down.
"""
from __future__ import annotations

import aiohttp

from fieldmap.infra.logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Internal state
# ---------------------------------------------------------------------------

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            connector=aiohttp.TCPConnector(
                keepalive_timeout=30,
                limit=limit,
                enable_cleanup_closed=True,
            ),
        )
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_api_session() -> aiohttp.ClientSession:
    """Session for the backend dispatch API."""
    from fieldmap.config import settings

    return _get_or_create(
        "api",
        aiohttp.ClientTimeout(
            total=settings.api_timeout_seconds,
            connect=settings.api_connect_timeout_seconds,
        ),
        limit=10,
    )


async def close_all_sessions() -> None:
    """Gracefully close every managed session."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
