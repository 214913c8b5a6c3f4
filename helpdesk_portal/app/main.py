"""
Portal assembly for the helpdesk portal core.

One :class:`Portal` is built at startup and handed to every consumer; it owns
the cache, the request gateway and the services that use them.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from helpdesk_shared.config import PortalConfig, get_config
from helpdesk_shared.logging import clear_context, configure_logging, get_logger, set_user_context
from helpdesk_shared.metrics import get_metrics_collector
from .adapters.request_gateway import RequestGateway
from .adapters.ticketing_client import TicketingClient
from .caching.cache_store import CacheStore
from .caching.coalescer import RequestCoalescer
from .caching.namespaces import NamespaceRegistry
from .caching.storage_backend import MemoryStorageBackend, RedisStorageBackend, StorageBackend
from .caching.ttl_policy import TTLPolicy
from .domain.knowledge_base import KnowledgeBaseService
from .domain.session import PortalSession
from .domain.ticket_service import TicketService


def build_storage(config: PortalConfig) -> StorageBackend:
    """Redis when a URL is configured, otherwise a process-local store."""
    if config.redis_url:
        return RedisStorageBackend(config.redis_url, prefix=config.cache_storage_prefix)
    return MemoryStorageBackend(prefix=config.cache_storage_prefix)


class Portal:
    """Helpdesk portal core wiring."""

    def __init__(
        self,
        config: PortalConfig,
        *,
        storage: Optional[StorageBackend] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[Any] = None,
        clock: Callable[[], float] = time.time,
        configure_logs: bool = True,
    ):
        self.config = config
        if configure_logs:
            configure_logging("portal", config.log_level, json_logs=config.env != "local")
        self.logger = get_logger("portal.main")
        self.metrics = metrics if metrics is not None else get_metrics_collector("portal")

        self.storage = storage if storage is not None else build_storage(config)
        self.cache = CacheStore(
            self.storage,
            registry=NamespaceRegistry(),
            sweep_interval_ms=config.cache_sweep_interval_ms,
            clock=clock,
            metrics=self.metrics,
        )
        self.gateway = RequestGateway.from_config(config, client=http_client, metrics=self.metrics)
        self.coalescer = RequestCoalescer()
        self.policy = TTLPolicy(config.cache)
        self.session = PortalSession()
        self.client = TicketingClient(self.gateway, config)

        def now() -> datetime:
            return datetime.fromtimestamp(clock(), tz=timezone.utc)

        self.tickets = TicketService(
            self.client, self.cache, self.policy, self.coalescer, self.session, config, now=now
        )
        self.knowledge_base = KnowledgeBaseService(self.client, self.cache, self.policy, config, now=now)

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        """Authenticate and bind the session to the returned user."""
        user = await self.client.authenticate(username, password)
        self.session.user_id = user.get("id")
        self.session.auth_token = self.client.auth_token
        set_user_context(self.session.user_id)
        self.logger.info("Session started", user_id=self.session.user_id)
        return user

    async def logout(self, clear_cache: bool = True) -> None:
        self.session.clear()
        self.client.set_auth_token(None)
        if clear_cache:
            await self.cache.clear()
        self.logger.info("Session ended")
        clear_context()

    def stats(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "in_flight": len(self.coalescer),
            "authenticated": self.session.authenticated,
        }

    async def aclose(self) -> None:
        await self.gateway.aclose()
        await self.storage.close()

    async def __aenter__(self) -> "Portal":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def create_portal(config: Optional[PortalConfig] = None, **kwargs: Any) -> Portal:
    """Build the portal from ``config`` (environment defaults when omitted)."""
    return Portal(config if config is not None else get_config(), **kwargs)
