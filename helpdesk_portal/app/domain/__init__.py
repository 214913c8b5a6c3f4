"""
Domain services built on the caching and request core.
"""

from .invalidation import Mutation, invalidate_after, keys_for_mutation
from .knowledge_base import KnowledgeBaseService
from .session import PortalSession
from .ticket_service import TicketService

__all__ = [
    "Mutation",
    "invalidate_after",
    "keys_for_mutation",
    "KnowledgeBaseService",
    "PortalSession",
    "TicketService",
]
