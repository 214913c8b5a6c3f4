"""
Unit tests for TicketService caching and invalidation.
"""

import asyncio

import pytest

from helpdesk_portal.app.adapters.request_gateway import RequestGateway
from helpdesk_portal.app.adapters.ticketing_client import TicketingClient, basic_credentials
from helpdesk_portal.app.caching.cache_store import CacheStore
from helpdesk_portal.app.caching.coalescer import RequestCoalescer
from helpdesk_portal.app.caching.storage_backend import MemoryStorageBackend
from helpdesk_portal.app.caching.ttl_policy import TTLPolicy
from helpdesk_portal.app.domain.session import PortalSession
from helpdesk_portal.app.domain.ticket_service import TicketService, sort_tickets
from helpdesk_shared.config import DAY_MS, HOUR_MS, MINUTE_MS
from helpdesk_shared.errors import ApplicationError, AuthenticationError
from helpdesk_shared.test_helpers import FakeClock, FakeTicketingAPI, TicketFactory, create_test_config


@pytest.fixture
def api():
    return FakeTicketingAPI()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorageBackend()


@pytest.fixture
def cache(storage, clock):
    return CacheStore(storage, clock=clock)


@pytest.fixture
def session():
    return PortalSession(user_id=42, auth_token=basic_credentials("jane.doe", "password123"))


@pytest.fixture
def service(api, cache, clock, session):
    config = create_test_config()
    client = TicketingClient(RequestGateway(api.client(), retry_delay_ms=0), config, auth_token=session.auth_token)
    return TicketService(client, cache, TTLPolicy(config.cache), RequestCoalescer(), session, config, now=clock.now)


class TestTicketLists:
    """Test cases for cached ticket lists."""

    @pytest.mark.asyncio
    async def test_list_cached_then_invalidated_by_close(self, api, cache, clock, service):
        t1 = TicketFactory.ticket(1, created_at="2025-05-01T08:00:00Z")
        t2 = TicketFactory.ticket(2, created_at="2025-06-01T08:00:00Z")
        api.search_results = [t1, t2]
        api.tickets[1] = dict(t1)

        assert await service.get_tickets("active", 2025) == [t2, t1]
        assert await service.get_tickets("active", 2025) == [t2, t1]
        assert api.count("GET", "/tickets/search") == 1
        assert cache.expires_at("tickets_active_2025_42") == clock.now_ms() + 15 * MINUTE_MS

        await service.close_ticket(1)

        assert not cache.contains("tickets_active_2025_42")
        await service.get_tickets("active", 2025)
        assert api.count("GET", "/tickets/search") == 2

    @pytest.mark.asyncio
    async def test_list_ttl_by_status_and_year(self, api, cache, clock, service):
        api.search_results = []

        await service.get_tickets("closed", 2025)
        await service.get_tickets("closed", 2023)
        await service.get_tickets("inactive", 2025)

        now_ms = clock.now_ms()
        assert cache.expires_at("tickets_closed_2025_42") == now_ms + 4 * HOUR_MS
        assert cache.expires_at("tickets_closed_2023_42") == now_ms + 30 * DAY_MS
        assert cache.expires_at("tickets_inactive_2025_42") == now_ms + 15 * MINUTE_MS

    @pytest.mark.asyncio
    async def test_query_construction(self, api, service):
        await service.get_tickets("active", 2025)
        active_query = api.calls[-1].url.params["query"]
        await service.get_tickets("closed", 2023)
        closed_query = api.calls[-1].url.params["query"]
        await service.get_tickets("all", 2025)
        all_query = api.calls[-1].url.params["query"]

        assert active_query.startswith("customer_id:42 AND (state_id:1 OR state_id:2 OR state_id:3")
        assert "created_at" not in active_query
        assert closed_query == (
            "customer_id:42 AND (state_id:4) AND created_at:[2023-01-01T00:00:00Z TO 2023-12-31T23:59:59Z]"
        )
        assert all_query == "customer_id:42"

    @pytest.mark.asyncio
    async def test_defaults_to_current_year_and_configured_filter(self, cache, service):
        await service.get_tickets()

        assert cache.contains("tickets_active_2025_42")

    @pytest.mark.asyncio
    async def test_requires_signed_in_user(self, api, service, session):
        session.clear()

        with pytest.raises(AuthenticationError):
            await service.get_tickets("active", 2025)
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_lists_are_per_user(self, api, cache, service, session):
        api.search_results = [TicketFactory.ticket(1)]
        await service.get_tickets("active", 2025)

        session.user_id = 7
        await service.get_tickets("active", 2025)

        assert cache.contains("tickets_active_2025_42")
        assert cache.contains("tickets_active_2025_7")
        assert api.count("GET", "/tickets/search") == 2


class TestTicketDetail:
    """Test cases for cached ticket details."""

    @pytest.mark.asyncio
    async def test_detail_with_messages(self, api, service, clock):
        api.tickets[7] = TicketFactory.ticket(7)

        ticket = await service.get_ticket(7)

        assert [m["from"] for m in ticket["messages"]] == ["User", "Support"]
        assert ticket["messages"][1]["body"] == "Have you tried turning it off?"
        assert ticket["cached_at"] == clock.now_ms()

    @pytest.mark.asyncio
    async def test_detail_served_from_cache(self, api, service):
        api.tickets[7] = TicketFactory.ticket(7)

        await service.get_ticket(7)
        await service.get_ticket("7")

        assert api.count("GET", "/tickets/7") == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state_id, created_at, expected_ttl", [
        (1, "2025-03-01T09:00:00Z", 15 * MINUTE_MS),
        (4, "2025-03-01T09:00:00Z", 4 * HOUR_MS),
        (4, "2023-03-01T09:00:00Z", 30 * DAY_MS),
        (1, "2023-03-01T09:00:00Z", 30 * DAY_MS),
        (4, None, 15 * MINUTE_MS),
    ])
    async def test_detail_ttl(self, api, cache, clock, service, state_id, created_at, expected_ttl):
        ticket = TicketFactory.ticket(7, state_id=state_id)
        ticket["created_at"] = created_at
        api.tickets[7] = ticket

        await service.get_ticket(7)

        assert cache.expires_at("ticket_detail_7") == clock.now_ms() + expected_ttl

    @pytest.mark.asyncio
    async def test_reply_invalidates_detail_only(self, api, cache, service):
        api.tickets[7] = TicketFactory.ticket(7)
        await service.get_ticket(7)
        await service.get_tickets("active", 2025)

        await service.send_reply(7, "Still broken")

        assert not cache.contains("ticket_detail_7")
        assert cache.contains("tickets_active_2025_42")


class TestMutations:
    """Test cases for invalidation after writes."""

    @pytest.mark.asyncio
    async def test_create_invalidates_all_lists_of_user(self, api, cache, service):
        await service.get_tickets("active", 2025)
        await service.get_tickets("closed", 2024)
        await cache.set("tickets_active_2025_7", ["someone else"], 60000)
        await cache.set("ticket_detail_5", {"id": 5}, 60000)

        ticket = await service.create_ticket("Printer", "Jammed again")

        assert ticket["customer_id"] == 42
        assert not cache.contains("tickets_active_2025_42")
        assert not cache.contains("tickets_closed_2024_42")
        assert cache.contains("tickets_active_2025_7")
        assert cache.contains("ticket_detail_5")

    @pytest.mark.asyncio
    async def test_close_invalidates_detail_and_lists(self, api, cache, storage, service):
        api.tickets[7] = TicketFactory.ticket(7)
        await service.get_ticket(7)
        await service.get_tickets("active", 2025)

        await service.close_ticket(7)

        assert len(cache) == 0
        assert storage.data == {}

    @pytest.mark.asyncio
    async def test_failed_mutation_leaves_cache(self, api, cache, service):
        api.tickets[7] = TicketFactory.ticket(7)
        await service.get_ticket(7)
        await service.get_tickets("active", 2025)
        api.fail("PUT", "/tickets/7", 503)

        with pytest.raises(ApplicationError):
            await service.close_ticket(7)

        assert cache.contains("ticket_detail_7")
        assert cache.contains("tickets_active_2025_42")


class TestRequestTypes:
    """Test cases for coalesced reference data."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_fetch(self, api, cache, clock, service):
        results = await asyncio.gather(*(service.get_request_types() for _ in range(3)))

        assert api.count("GET", "/object_manager_attributes") == 1
        assert results[0] == results[1] == results[2]
        assert results[0]["default_value"] == "incident"
        assert cache.expires_at("request_types") == clock.now_ms() + DAY_MS

        await service.get_request_types()
        assert api.count("GET", "/object_manager_attributes") == 1

    @pytest.mark.asyncio
    async def test_failure_shared_then_retried(self, api, service):
        api.fail("GET", "/object_manager_attributes", 500)

        results = await asyncio.gather(*(service.get_request_types() for _ in range(3)), return_exceptions=True)

        assert all(isinstance(r, ApplicationError) for r in results)
        assert api.count("GET", "/object_manager_attributes") == 1

        api.recover()
        result = await service.get_request_types()
        assert len(result["options"]) == 2
        assert api.count("GET", "/object_manager_attributes") == 2


class TestSortTickets:
    """Test cases for list ordering."""

    def test_orders(self):
        tickets = [
            {"id": 1, "title": "b", "state_id": 4, "created_at": "2025-02-01T00:00:00Z"},
            {"id": 2, "title": "A", "state_id": 1, "created_at": "2025-03-01T00:00:00Z"},
            {"id": 3, "title": "c", "state_id": 2, "created_at": None},
        ]

        assert [t["id"] for t in sort_tickets(tickets, "date_desc")] == [2, 1, 3]
        assert [t["id"] for t in sort_tickets(tickets, "date_asc")] == [3, 1, 2]
        assert [t["id"] for t in sort_tickets(tickets, "status")] == [2, 3, 1]
        assert [t["id"] for t in sort_tickets(tickets, "subject")] == [2, 1, 3]
        assert [t["id"] for t in sort_tickets(tickets, "unknown")] == [1, 2, 3]
