"""
Ticket operations with caching and invalidation.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from helpdesk_shared.config import PortalConfig
from helpdesk_shared.logging import get_logger
from ..adapters.ticketing_client import TicketId, TicketingClient, validate_ticket_id
from ..caching.cache_store import CacheStore
from ..caching.coalescer import RequestCoalescer
from ..caching.namespaces import CacheKey
from ..caching.ttl_policy import EntityKind, TTLCategory, TTLPolicy
from .invalidation import Mutation, invalidate_after
from .session import PortalSession

SUPPORT_SENDER_ID = 1
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_created(ticket: Dict[str, Any]) -> datetime:
    value = ticket.get("created_at")
    if not isinstance(value, str):
        return _EPOCH
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_tickets(tickets: List[Dict[str, Any]], sort_order: str = "date_desc") -> List[Dict[str, Any]]:
    """Return a sorted copy; unknown orders keep the API order."""
    if sort_order == "date_asc":
        return sorted(tickets, key=_parse_created)
    if sort_order == "date_desc":
        return sorted(tickets, key=_parse_created, reverse=True)
    if sort_order == "status":
        return sorted(tickets, key=lambda t: t.get("state_id") or 0)
    if sort_order == "subject":
        return sorted(tickets, key=lambda t: (t.get("title") or t.get("subject") or "").lower())
    return list(tickets)


class TicketService:
    """Ticket reads served from the cache, ticket writes followed by invalidation."""

    def __init__(
        self,
        client: TicketingClient,
        cache: CacheStore,
        policy: TTLPolicy,
        coalescer: RequestCoalescer,
        session: PortalSession,
        config: PortalConfig,
        now: Callable[[], datetime] = _utc_now,
    ):
        self.client = client
        self.cache = cache
        self.policy = policy
        self.coalescer = coalescer
        self.session = session
        self.config = config
        self._now = now
        self.logger = get_logger("portal.tickets")

    def _closed_state_ids(self) -> List[int]:
        return self.config.status_categories.get("closed", [])

    async def get_ticket(self, ticket_id: TicketId) -> Dict[str, Any]:
        """Ticket with its articles and a derived ``messages`` list."""
        ticket_id = validate_ticket_id(ticket_id)
        cache_key = CacheKey.ticket_detail(ticket_id)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            self.logger.debug("Loaded ticket from cache", ticket_id=ticket_id, cache_key=str(cache_key))
            return cached

        ticket = await self.client.get_ticket(ticket_id)
        ticket["messages"] = [
            {
                "from": article.get("from") or ("Support" if article.get("sender_id") == SUPPORT_SENDER_ID else "User"),
                "date": article.get("created_at"),
                "body": article.get("body") or "",
            }
            for article in ticket.get("articles") or []
        ]

        now = self._now()
        is_closed = ticket.get("state_id") in self._closed_state_ids()
        category = self.policy.classify(ticket.get("created_at"), is_closed, now)
        ttl_ms = self.policy.ttl_for(category, ticket.get("created_at"), now, EntityKind.DETAIL)

        ticket["cached_at"] = int(now.timestamp() * 1000)
        await self.cache.set(cache_key, ticket, ttl_ms)
        self.logger.debug(
            "Cached ticket detail",
            ticket_id=ticket_id,
            cache_type=self.policy.describe(category),
            ttl_ms=ttl_ms,
        )
        return ticket

    def _build_query(self, user_id: Union[int, str], status_category: str, year: int, current_year: int) -> str:
        query = f"customer_id:{user_id}"

        if status_category != "all":
            state_ids = self.config.status_categories.get(status_category) or []
            if state_ids:
                query += " AND (" + " OR ".join(f"state_id:{sid}" for sid in state_ids) + ")"

        if status_category == "closed" and year != current_year:
            query += f" AND created_at:[{year}-01-01T00:00:00Z TO {year}-12-31T23:59:59Z]"

        return query

    async def get_tickets(
        self,
        status_category: Optional[str] = None,
        year: Optional[int] = None,
        sort_order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """The acting user's tickets for one status category and year."""
        now = self._now()
        status_category = status_category or self.config.default_status_filter
        year = year if year is not None else now.year
        sort_order = sort_order or self.config.default_sort_order

        user_id = self.session.require_user_id()
        cache_key = CacheKey.ticket_list(status_category, year, user_id)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            self.logger.debug(
                "Loaded tickets from cache",
                key=str(cache_key),
                count=len(cached),
                status_category=status_category,
                year=year,
            )
            return sort_tickets(cached, sort_order)

        query = self._build_query(user_id, status_category, year, now.year)
        tickets = await self.client.search_tickets(query)

        category = self.policy.category_for_list(year, status_category, now)
        ttl_ms = self.policy.ttl_for(category, year, now, EntityKind.LIST)
        await self.cache.set(cache_key, tickets, ttl_ms)
        self.logger.debug(
            "Cached ticket list",
            key=str(cache_key),
            count=len(tickets),
            cache_type=self.policy.describe(category),
            ttl_minutes=round(ttl_ms / 60000),
        )
        return sort_tickets(tickets, sort_order)

    async def create_ticket(
        self,
        subject: str,
        body: str,
        *,
        request_type: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        user_id = self.session.require_user_id()
        ticket = await self.client.create_ticket(
            subject, body, user_id, request_type=request_type, attachments=attachments
        )
        await invalidate_after(self.cache, Mutation.CREATE, ticket.get("id"), user_id)
        self.logger.info("Ticket created", ticket_id=ticket.get("id"))
        return ticket

    async def send_reply(
        self,
        ticket_id: TicketId,
        text: str,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        ticket_id = validate_ticket_id(ticket_id)
        article = await self.client.send_reply(ticket_id, text, attachments)
        await invalidate_after(self.cache, Mutation.REPLY, ticket_id, self.session.user_id)
        self.logger.info("Reply sent", ticket_id=ticket_id, article_id=article.get("id"))
        return article

    async def close_ticket(self, ticket_id: TicketId) -> Dict[str, Any]:
        ticket_id = validate_ticket_id(ticket_id)
        ticket = await self.client.close_ticket(ticket_id)
        await invalidate_after(self.cache, Mutation.CLOSE, ticket_id, self.session.user_id)
        self.logger.info("Ticket closed", ticket_id=ticket_id)
        return ticket

    async def get_request_types(self) -> Dict[str, Any]:
        """Selectable request types; concurrent callers share one fetch."""
        cache_key = CacheKey.request_types()

        cached = await self.cache.get(cache_key)
        if cached is not None:
            self.logger.debug("Loaded request types from cache")
            return cached

        async def _load() -> Dict[str, Any]:
            request_types = await self.client.get_request_types()
            ttl_ms = self.policy.ttl_for(TTLCategory.REFERENCE_DATA, None, self._now())
            await self.cache.set(cache_key, request_types, ttl_ms)
            self.logger.debug("Loaded request types from API", count=len(request_types["options"]))
            return request_types

        return await self.coalescer.coalesce(cache_key.render(), _load)
