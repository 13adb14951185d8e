"""Shared outbound HTTP client.

One pooled ``httpx.AsyncClient`` per process, opened in the FastAPI
lifespan and handed to the identity-provider integration.
"""

from __future__ import annotations

import httpx
import structlog

logger = structlog.get_logger()


class HTTPClientManager:
    """Owns the lifecycle of a pooled ``httpx.AsyncClient``.

    Usage:
        manager = HTTPClientManager(timeout=10.0)
        await manager.startup()
        response = await manager.client.get("https://...")
        await manager.shutdown()
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        max_connections: int = 20,
        max_keepalive_connections: int = 10,
    ) -> None:
        self._timeout = timeout
        self._max_connections = max_connections
        self._max_keepalive_connections = max_keepalive_connections

        self._client: httpx.AsyncClient | None = None
        self._log = logger.bind(component="http_client")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the shared client.

        Raises:
            RuntimeError: If startup() has not been called
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialized. Call startup() first.")
        return self._client

    @property
    def is_started(self) -> bool:
        return self._client is not None

    async def startup(self) -> None:
        if self._client is not None:
            self._log.warning("http_client.already_started")
            return

        self._client = httpx.AsyncClient(
            limits=httpx.Limits(
                max_connections=self._max_connections,
                max_keepalive_connections=self._max_keepalive_connections,
            ),
            timeout=httpx.Timeout(self._timeout),
        )
        self._log.info("http_client.started", timeout=self._timeout)

    async def shutdown(self) -> None:
        if self._client is None:
            return

        await self._client.aclose()
        self._client = None
        self._log.info("http_client.shutdown")
