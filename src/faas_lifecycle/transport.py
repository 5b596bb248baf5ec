"""Shared HTTP client plumbing for the remote configuration and identity calls."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator

import httpx

DEFAULT_TIMEOUT = httpx.Timeout(timeout=30.0, connect=10.0)


@contextlib.asynccontextmanager
async def http_session(
    client: httpx.AsyncClient | None,
    timeout: httpx.Timeout = DEFAULT_TIMEOUT,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield *client* unchanged, or a short-lived client closed on exit.

    Callers that own a persistent client keep its lifetime; everyone else gets
    a client bounded by *timeout*.  The core never retries, so the timeout is
    the only limit on a hung remote call.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned
