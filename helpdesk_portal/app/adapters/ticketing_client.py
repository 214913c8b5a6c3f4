"""
Ticketing REST API client for the portal.
"""

import base64
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import httpx

from helpdesk_shared.config import PortalConfig
from helpdesk_shared.errors import ApplicationError, AuthenticationError, ValidationError
from helpdesk_shared.logging import get_logger
from .request_gateway import RequestGateway

TicketId = Union[int, str]


def basic_credentials(username: str, password: str) -> str:
    """Encode ``username:password`` for HTTP Basic auth."""
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


def validate_ticket_id(ticket_id: TicketId) -> int:
    """Return the ticket id as an int, rejecting anything that is not a positive integer."""
    if isinstance(ticket_id, bool):
        raise ValidationError("Invalid ticket id", {"ticket_id": ticket_id})
    if isinstance(ticket_id, str) and ticket_id.strip().isdigit():
        ticket_id = int(ticket_id.strip())
    if not isinstance(ticket_id, int) or ticket_id <= 0:
        raise ValidationError("Invalid ticket id", {"ticket_id": ticket_id})
    return ticket_id


class TicketingClient:
    """Thin wrapper around the ticketing API.

    Every call goes through the :class:`RequestGateway`. Non-2xx responses
    are turned into :class:`ApplicationError` here, with the status kept so
    callers can tell an unauthorized session from a server error.
    """

    def __init__(self, gateway: RequestGateway, config: PortalConfig, auth_token: Optional[str] = None):
        self.gateway = gateway
        self.config = config
        self.base_url = config.api_base_url.rstrip("/")
        self.auth_token = auth_token
        self.logger = get_logger("portal.ticketing_client")

    def set_auth_token(self, token: Optional[str]) -> None:
        self.auth_token = token

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        token = token or self.auth_token
        if not token:
            raise AuthenticationError("Authentication token is required", reason="AUTH_REQUIRED")
        return {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
        }

    def _url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.base_url}{endpoint}"

    def _raise_for_status(self, response: httpx.Response, reason: str, message: str) -> None:
        if response.is_success:
            return
        if response.status_code == 401:
            raise AuthenticationError("Invalid credentials", reason="UNAUTHORIZED", status=401)
        raise ApplicationError(reason, message, status=response.status_code)

    async def authenticate(self, username: str, password: str) -> Dict[str, Any]:
        """Verify credentials against ``/users/me`` and keep them for later calls."""
        username = (username or "").strip()
        password = (password or "").strip()
        if not username or not password:
            raise AuthenticationError("Username and password cannot be empty", reason="MISSING_CREDENTIALS")

        credentials = basic_credentials(username, password)
        response = await self.gateway.get(self._url("/users/me"), headers=self._headers(credentials))
        if response.status_code == 401:
            raise AuthenticationError("Invalid credentials", reason="INVALID_CREDENTIALS", status=401)
        self._raise_for_status(response, "AUTH_FAILED", "Authentication failed")

        self.set_auth_token(credentials)
        self.logger.info("Authenticated", username=username)
        return response.json()

    async def get_current_user(self) -> Dict[str, Any]:
        response = await self.gateway.get(self._url("/users/me"), headers=self._headers())
        self._raise_for_status(response, "USER_FETCH_FAILED", "Failed to get current user")
        return response.json()

    async def get_ticket(self, ticket_id: TicketId) -> Dict[str, Any]:
        """Fetch a ticket and attach its articles under ``articles``."""
        ticket_id = validate_ticket_id(ticket_id)

        response = await self.gateway.get(self._url(f"/tickets/{ticket_id}"), headers=self._headers())
        self._raise_for_status(response, "TICKET_FETCH_FAILED", "Error loading ticket details")
        ticket = response.json()

        response = await self.gateway.get(
            self._url(f"/ticket_articles/by_ticket/{ticket_id}"),
            headers=self._headers(),
        )
        self._raise_for_status(response, "ARTICLES_FETCH_FAILED", "Error loading ticket articles")
        ticket["articles"] = response.json()
        return ticket

    async def search_tickets(self, query: str) -> List[Dict[str, Any]]:
        response = await self.gateway.get(
            self._url(f"/tickets/search?query={quote(query, safe='')}"),
            headers=self._headers(),
        )
        self._raise_for_status(response, "TICKETS_FETCH_FAILED", "Error fetching tickets")
        result = response.json()
        if isinstance(result, list):
            return result
        return list(result.get("tickets") or [])

    async def create_ticket(
        self,
        subject: str,
        body: str,
        customer_id: Optional[Union[int, str]],
        *,
        request_type: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        if not subject or not subject.strip():
            raise ValidationError("Ticket subject is required")
        if not body or not body.strip():
            raise ValidationError("Ticket body is required")

        article: Dict[str, Any] = {"subject": subject, "body": body, "type": "web"}
        if attachments:
            article["attachments"] = attachments
        payload: Dict[str, Any] = {
            "title": subject,
            "group": self.config.default_group,
            "customer_id": customer_id,
            "article": article,
        }
        if request_type and self.config.allow_request_type:
            payload["type"] = request_type

        response = await self.gateway.post(self._url("/tickets"), json=payload, headers=self._headers())
        self._raise_for_status(response, "TICKET_CREATE_FAILED", "Error creating ticket")
        return response.json()

    async def send_reply(
        self,
        ticket_id: TicketId,
        text: str,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        ticket_id = validate_ticket_id(ticket_id)
        if not text or not text.strip():
            raise ValidationError("Reply text is required")

        payload = {"ticket_id": ticket_id, "body": text, "type": "web", "internal": False}
        response = await self.gateway.post(self._url("/ticket_articles"), json=payload, headers=self._headers())
        self._raise_for_status(response, "REPLY_CREATE_FAILED", "Error creating reply")
        article = response.json()

        for attachment in attachments or []:
            attachment_payload = {
                "ticket_id": ticket_id,
                "article_id": article.get("id"),
                "filename": attachment.get("filename"),
                "data": attachment.get("data"),
                "mime-type": attachment.get("mime-type"),
            }
            response = await self.gateway.post(
                self._url("/ticket_attachment"), json=attachment_payload, headers=self._headers()
            )
            self._raise_for_status(response, "ATTACHMENT_UPLOAD_FAILED", "Error uploading attachment")

        return article

    async def close_ticket(self, ticket_id: TicketId) -> Dict[str, Any]:
        ticket_id = validate_ticket_id(ticket_id)
        response = await self.gateway.put(
            self._url(f"/tickets/{ticket_id}"),
            json={"state_id": self.config.closed_state_id},
            headers=self._headers(),
        )
        self._raise_for_status(response, "TICKET_CLOSE_FAILED", "Error closing ticket")
        return response.json()

    async def get_request_types(self) -> Dict[str, Any]:
        """Selectable request types as ``{"options": [{value, label}], "default_value": ...}``."""
        response = await self.gateway.get(
            self._url("/object_manager_attributes?object=Ticket&name=type"),
            headers=self._headers(),
        )
        self._raise_for_status(response, "REQUEST_TYPES_FETCH_FAILED", "Error loading request types")
        return normalize_request_types(response.json(), self.config.allowed_request_types)

    async def search_knowledge_base(self, query: str) -> Dict[str, Any]:
        kb = self.config.knowledge_base
        response = await self.gateway.post(
            self._url("/knowledge_bases/search"),
            json={"knowledge_base_id": kb.id, "locale": kb.locale, "query": query, "flavor": kb.flavor},
        )
        self._raise_for_status(response, "SEARCH_FAILED", "Search failed")
        return response.json()

    async def get_knowledge_base_article(self, article_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        """Fetch one answer with its ``assets``; ``None`` when the caller may not read it (403).

        Sent with the session's credentials when signed in, anonymously otherwise.
        """
        kb = self.config.knowledge_base
        headers = self._headers() if self.auth_token else {}
        response = await self.gateway.get(
            self._url(f"/knowledge_bases/{kb.id}/answers/{quote(str(article_id), safe='')}"),
            params={"locale": kb.locale},
            headers=headers,
        )
        if response.status_code == 403:
            self.logger.debug("Article requires authorization", article_id=article_id)
            return None
        self._raise_for_status(response, "ARTICLE_FETCH_FAILED", f"Failed to fetch article {article_id}")
        return response.json()


def normalize_request_types(data: Any, allowed: Optional[List[str]] = None) -> Dict[str, Any]:
    """Flatten an object-manager attribute into selectable options."""
    attribute = data
    if isinstance(data, list):
        attribute = next(
            (a for a in data if isinstance(a, dict) and a.get("object") == "Ticket" and a.get("name") == "type"),
            None,
        )
    if not isinstance(attribute, dict) or not attribute.get("data_option"):
        return {"options": [], "default_value": None}

    data_option = attribute["data_option"]
    raw_options = data_option.get("options")
    options: List[Dict[str, str]] = []
    if isinstance(raw_options, list):
        for opt in raw_options:
            value = opt.get("value")
            value = "" if value is None else str(value)
            if value:
                label = opt.get("name") if opt.get("name") is not None else value
                options.append({"value": value, "label": str(label)})
    elif isinstance(raw_options, dict):
        options = [{"value": str(value), "label": str(label)} for value, label in raw_options.items()]

    if allowed:
        allowed_set = {str(v) for v in allowed}
        options = [opt for opt in options if opt["value"] in allowed_set]

    default = data_option.get("default")
    return {"options": options, "default_value": default if isinstance(default, str) else None}
