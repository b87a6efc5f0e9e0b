"""Shared httpx.AsyncClient instances keyed by service name.

Service names look like ``confluence:acme.atlassian.net``; the part before
the colon selects the timeout from SERVICE_TIMEOUTS.
"""

import asyncio
from typing import Optional

import httpx

from wikiref.core.logging import get_logger
from wikiref.core.utils.timeouts import SERVICE_TIMEOUTS, TIMEOUTS

_log = get_logger("core.http_pool")

POOL_LIMITS = httpx.Limits(max_connections=20, max_keepalive_connections=10)


def service_timeout(service: str) -> float:
    family = service.split(":", 1)[0]
    return SERVICE_TIMEOUTS.get(family, SERVICE_TIMEOUTS["default"])


class ClientPool:
    """One lazily created client per service, reused until closed."""

    def __init__(self, limits: httpx.Limits = POOL_LIMITS):
        self.limits = limits
        self._clients: dict[str, httpx.AsyncClient] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, service: str) -> bool:
        return service in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    async def get(
        self,
        service: str = "default",
        base_url: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
        auth: Optional[httpx.Auth] = None,
    ) -> httpx.AsyncClient:
        """Return the client for ``service``; the first caller's options win."""
        async with self._lock:
            client = self._clients.get(service)
            if client is not None and not client.is_closed:
                return client

            read_timeout = timeout or service_timeout(service)
            client = httpx.AsyncClient(
                base_url=base_url or "",
                headers=headers,
                auth=auth,
                limits=self.limits,
                timeout=httpx.Timeout(read_timeout, connect=TIMEOUTS.HTTP_CONNECT),
                follow_redirects=True,
            )
            self._clients[service] = client
            _log.debug("Client created", service=service, timeout=read_timeout)
            return client

    async def close(self, service: str) -> bool:
        async with self._lock:
            client = self._clients.pop(service, None)
        if client is None:
            return False
        await client.aclose()
        _log.debug("Client closed", service=service)
        return True

    async def close_all(self) -> int:
        """Close every client; a failing close is logged and the rest still close."""
        async with self._lock:
            clients, self._clients = self._clients, {}
        for service, client in clients.items():
            try:
                await client.aclose()
            except Exception as e:
                _log.warning("Client close error", service=service, error=str(e))
        if clients:
            _log.debug("Pool closed", clients=len(clients))
        return len(clients)


_pool = ClientPool()


async def get_client(
    service: str = "default",
    base_url: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
    timeout: Optional[float] = None,
    auth: Optional[httpx.Auth] = None,
) -> httpx.AsyncClient:
    return await _pool.get(service, base_url, headers, timeout, auth)


async def close_client(service: str) -> bool:
    return await _pool.close(service)


async def close_all() -> int:
    return await _pool.close_all()
