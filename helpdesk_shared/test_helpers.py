"""
Test helper functions and factory methods for the helpdesk portal.
"""

import base64
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from helpdesk_shared.config import PortalConfig, get_config


class FakeClock:
    """Controllable wall clock; callable like ``time.time``."""

    def __init__(self, start: datetime = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)):
        self._seconds = start.timestamp()

    def __call__(self) -> float:
        return self._seconds

    def advance(self, ms: int) -> None:
        self._seconds += ms / 1000

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._seconds, tz=timezone.utc)

    def now_ms(self) -> int:
        return int(self._seconds * 1000)


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.histograms = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self.histograms.append((metric_name, value, labels))

    def count(self, metric_name: str, **labels) -> int:
        return sum(
            1 for name, recorded in self.counters
            if name == metric_name and all(recorded.get(k) == v for k, v in labels.items())
        )


@dataclass
class PortalUser:
    """Test user data."""
    user_id: int
    username: str
    password: str = "password123"


class TicketFactory:
    """Factory for ticketing API payloads."""

    @staticmethod
    def create_users() -> List[PortalUser]:
        return [
            PortalUser(user_id=42, username="jane.doe"),
            PortalUser(user_id=7, username="john.smith"),
        ]

    @staticmethod
    def ticket(ticket_id: int, *, state_id: int = 1, created_at: str = "2025-03-01T09:00:00Z",
               customer_id: int = 42, title: Optional[str] = None) -> Dict[str, Any]:
        return {
            "id": ticket_id,
            "title": title or f"Ticket {ticket_id}",
            "state_id": state_id,
            "customer_id": customer_id,
            "created_at": created_at,
        }

    @staticmethod
    def articles(ticket_id: int) -> List[Dict[str, Any]]:
        return [
            {"id": ticket_id * 10, "ticket_id": ticket_id, "sender_id": 2,
             "body": "Printer is on fire", "created_at": "2025-03-01T09:00:00Z"},
            {"id": ticket_id * 10 + 1, "ticket_id": ticket_id, "sender_id": 1,
             "body": "Have you tried turning it off?", "created_at": "2025-03-01T10:00:00Z"},
        ]

    @staticmethod
    def request_type_attribute() -> Dict[str, Any]:
        return {
            "object": "Ticket",
            "name": "type",
            "data_option": {
                "options": [
                    {"value": "incident", "name": "Incident"},
                    {"value": "service_request", "name": "Service request"},
                    {"value": "", "name": "Empty"},
                ],
                "default": "incident",
            },
        }

    @staticmethod
    def kb_answer(answer_id: int, title: str, category_id: int = 5,
                  category_title: str = "Network & VPN") -> Dict[str, Any]:
        """Knowledge base answer payload with its ``assets`` graph."""
        return {
            "id": answer_id,
            "assets": {
                "KnowledgeBaseAnswer": {str(answer_id): {"id": answer_id, "category_id": category_id}},
                "KnowledgeBaseCategory": {str(category_id): {"id": category_id, "translation_ids": [category_id * 10]}},
                "KnowledgeBaseCategoryTranslation": {
                    str(category_id * 10): {"id": category_id * 10, "title": category_title},
                },
                "KnowledgeBaseAnswerTranslation": {
                    str(answer_id * 10): {"id": answer_id * 10, "answer_id": answer_id, "title": title},
                },
            },
        }


def create_test_config(**overrides) -> PortalConfig:
    """Config with fast retries and no external services."""
    settings = {
        "api_base_url": "https://helpdesk.test/api/v1",
        "retry_delay_ms": 0,
        "redis_url": None,
    }
    settings.update(overrides)
    return get_config(**settings)


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


class FakeTicketingAPI:
    """In-process ticketing API served through ``httpx.MockTransport``."""

    def __init__(self, base_path: str = "/api/v1", users: Optional[List[PortalUser]] = None):
        self.base_path = base_path
        self.users = users or TicketFactory.create_users()
        self.tickets: Dict[int, Dict[str, Any]] = {}
        self.search_results: List[Dict[str, Any]] = []
        self.kb_payload: Dict[str, Any] = {"details": [], "highlights": {}}
        self.kb_answers: Dict[int, Dict[str, Any]] = {}
        self.request_types: Any = TicketFactory.request_type_attribute()
        self.failures: Dict[str, int] = {}
        self.calls: List[httpx.Request] = []
        self._next_id = 1000

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def fail(self, method: str, path: str, status: int = 500) -> None:
        """Answer ``method path`` with ``status`` until :meth:`recover` is called."""
        self.failures[f"{method} {path}"] = status

    def recover(self) -> None:
        self.failures.clear()

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.calls if r.method == method and self._path(r) == path)

    def _path(self, request: httpx.Request) -> str:
        path = request.url.path
        return path[len(self.base_path):] if path.startswith(self.base_path) else path

    def _user_for(self, request: httpx.Request) -> Optional[PortalUser]:
        header = request.headers.get("Authorization", "")
        for user in self.users:
            token = base64.b64encode(f"{user.username}:{user.password}".encode()).decode()
            if header == f"Basic {token}":
                return user
        return None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = self._path(request)
        route = f"{request.method} {path}"

        if route in self.failures:
            return json_response({"error": "failure"}, self.failures[route])

        user = self._user_for(request)
        parts = path.strip("/").split("/")

        if route == "POST /knowledge_bases/search":
            return json_response(self.kb_payload)
        if len(parts) == 4 and parts[0] == "knowledge_bases" and parts[2] == "answers":
            # answers need knowledge_base.reader, anonymous callers are refused
            if user is None:
                return json_response({"error": "not authorized"}, 403)
            answer = self.kb_answers.get(int(parts[3]))
            if answer is None:
                return json_response({"error": "not found"}, 404)
            return json_response(answer)

        if user is None:
            return json_response({"error": "authentication failed"}, 401)

        if route == "GET /users/me":
            return json_response({"id": user.user_id, "login": user.username})
        if route == "GET /tickets/search":
            return json_response(self.search_results)
        if route == "GET /object_manager_attributes":
            return json_response(self.request_types)
        if route == "POST /tickets":
            self._next_id += 1
            body = json.loads(request.content)
            ticket = {"id": self._next_id, "title": body["title"], "state_id": 1,
                      "customer_id": body["customer_id"], "created_at": "2025-06-15T12:00:00Z"}
            self.tickets[self._next_id] = ticket
            return json_response(ticket, 201)
        if route == "POST /ticket_articles":
            self._next_id += 1
            return json_response({"id": self._next_id, **json.loads(request.content)}, 201)
        if route == "POST /ticket_attachment":
            return json_response({"ok": True}, 201)
        if len(parts) == 2 and parts[0] == "tickets" and parts[1].isdigit():
            ticket = self.tickets.get(int(parts[1]))
            if ticket is None:
                return json_response({"error": "not found"}, 404)
            if request.method == "PUT":
                ticket.update(json.loads(request.content))
            return json_response(ticket)
        if parts[:2] == ["ticket_articles", "by_ticket"]:
            return json_response(TicketFactory.articles(int(parts[2])))

        return json_response({"error": "no route"}, 404)
