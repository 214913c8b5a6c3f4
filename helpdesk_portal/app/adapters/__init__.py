"""
Adapters package for the helpdesk portal.

Contains the HTTP layer towards the ticketing service:

- RequestGateway: timeouts and transport-level retries
- TicketingClient: request shapes and status-to-error mapping

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .request_gateway import RequestGateway
from .ticketing_client import TicketingClient

__all__ = [
    "RequestGateway",
    "TicketingClient",
]
