"""
Cache invalidation after mutating operations.

The cache receives no push notifications, so every successful mutation must
drop the keys it made stale before returning:

- create: every ticket list of the acting user
- reply: the ticket's detail
- close: the ticket's detail and every ticket list of the acting user

Nothing is invalidated when the mutation itself failed.
"""

from enum import Enum
from typing import List, Optional, Tuple, Union

from helpdesk_shared.logging import get_logger
from ..caching.cache_store import CacheStore
from ..caching.namespaces import CacheKey, CacheNamespace

logger = get_logger("portal.invalidation")


class Mutation(Enum):
    CREATE = "create"
    REPLY = "reply"
    CLOSE = "close"


def user_ticket_lists_pattern(user_id: Union[int, str]) -> str:
    """Glob matching ``tickets_<status>_<year>_<user_id>`` for every status and year."""
    return f"{CacheNamespace.TICKET_LIST.value}_*_*_{user_id}"


def keys_for_mutation(
    mutation: Mutation,
    ticket_id: Optional[Union[int, str]] = None,
    user_id: Optional[Union[int, str]] = None,
) -> Tuple[List[CacheKey], List[str]]:
    """Exact keys and glob patterns a successful ``mutation`` makes stale."""
    keys: List[CacheKey] = []
    patterns: List[str] = []

    if mutation in (Mutation.REPLY, Mutation.CLOSE) and ticket_id is not None:
        keys.append(CacheKey.ticket_detail(ticket_id))
    if mutation in (Mutation.CREATE, Mutation.CLOSE) and user_id is not None:
        patterns.append(user_ticket_lists_pattern(user_id))

    return keys, patterns


async def invalidate_after(
    cache: CacheStore,
    mutation: Mutation,
    ticket_id: Optional[Union[int, str]] = None,
    user_id: Optional[Union[int, str]] = None,
) -> int:
    """Drop everything ``mutation`` made stale. Returns the number of keys removed."""
    keys, patterns = keys_for_mutation(mutation, ticket_id, user_id)
    removed = 0
    for key in keys:
        await cache.invalidate(key)
        removed += 1
    for pattern in patterns:
        removed += await cache.invalidate_pattern(pattern)

    logger.debug(
        "Invalidated after mutation",
        mutation=mutation.value,
        ticket_id=ticket_id,
        user_id=user_id,
        removed=removed,
    )
    return removed
