"""Outbound HTTP client shared by the GitHub and Duolingo fetchers.

One pooled ``httpx.AsyncClient`` per process. Its timeout and pool size come
from Settings, so every upstream call is bounded and the number of open
sockets per upstream host is capped. ``main.lifespan`` opens it at startup
and closes it on shutdown; tests build their own with ``build_http_client``.
"""

from __future__ import annotations

import asyncio

import httpx

from core.config import Settings, get_settings

_http_client: httpx.AsyncClient | None = None
_http_client_lock = asyncio.Lock()


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.http_timeout,
        follow_redirects=True,
        limits=httpx.Limits(
            max_connections=settings.http_max_connections,
            max_keepalive_connections=settings.http_max_keepalive_connections,
        ),
    )


def _usable(client: httpx.AsyncClient | None) -> bool:
    return client is not None and not client.is_closed


async def get_http_client() -> httpx.AsyncClient:
    """Return the process-wide client, creating it on first use.

    Creation happens under a lock, so concurrent first callers share one
    pool. A client closed by ``close_http_client`` is replaced.
    """
    global _http_client

    if _usable(_http_client):
        return _http_client

    async with _http_client_lock:
        if not _usable(_http_client):
            _http_client = build_http_client(get_settings())
        return _http_client


async def close_http_client() -> None:
    global _http_client
    client, _http_client = _http_client, None
    if _usable(client):
        await client.aclose()
