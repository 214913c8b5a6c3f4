"""
Cache key namespaces and their persistence policy.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple, Union


class CacheNamespace(Enum):
    """Leading token of a cache key."""

    TICKET_DETAIL = "ticket_detail"
    TICKET_LIST = "tickets"
    SEARCH = "search"
    REQUEST_TYPES = "request_types"
    SESSION = "session"
    USER = "user"
    KB_ARTICLE = "kb_article"


DEFAULT_PERSISTENCE: Dict[CacheNamespace, bool] = {
    CacheNamespace.TICKET_DETAIL: True,
    CacheNamespace.TICKET_LIST: True,
    CacheNamespace.SEARCH: True,
    CacheNamespace.REQUEST_TYPES: True,
    CacheNamespace.SESSION: False,
    CacheNamespace.USER: False,
    CacheNamespace.KB_ARTICLE: False,
}


@dataclass(frozen=True)
class CacheKey:
    """A namespace tag plus the parameters that discriminate one entry from another."""

    namespace: Optional[CacheNamespace]
    discriminators: Tuple[str, ...] = ()
    raw: Optional[str] = None

    def __post_init__(self) -> None:
        if self.namespace is None and self.raw is None:
            raise ValueError("a cache key needs a namespace or a raw key")

    @classmethod
    def of(cls, namespace: CacheNamespace, *parts: object) -> "CacheKey":
        return cls(namespace, tuple(str(part) for part in parts))

    @classmethod
    def ticket_detail(cls, ticket_id: Union[int, str]) -> "CacheKey":
        return cls.of(CacheNamespace.TICKET_DETAIL, ticket_id)

    @classmethod
    def ticket_list(cls, status_category: str, year: int, user_id: Union[int, str]) -> "CacheKey":
        return cls.of(CacheNamespace.TICKET_LIST, status_category, year, user_id)

    @classmethod
    def search(cls, query: str) -> "CacheKey":
        return cls.of(CacheNamespace.SEARCH, query)

    @classmethod
    def request_types(cls) -> "CacheKey":
        return cls.of(CacheNamespace.REQUEST_TYPES)

    @classmethod
    def kb_article(cls, article_id: Union[int, str]) -> "CacheKey":
        return cls.of(CacheNamespace.KB_ARTICLE, article_id)

    def render(self) -> str:
        if self.raw is not None:
            return self.raw
        return "_".join((self.namespace.value,) + self.discriminators)

    def __str__(self) -> str:
        return self.render()


class NamespaceRegistry:
    """Maps namespaces to their ``persist`` policy and resolves rendered keys back to a namespace."""

    def __init__(self, persistence: Optional[Dict[CacheNamespace, bool]] = None):
        self._persistence = dict(DEFAULT_PERSISTENCE if persistence is None else persistence)

    def register(self, namespace: CacheNamespace, persist: bool) -> None:
        self._persistence[namespace] = persist

    def is_persistent(self, key: CacheKey) -> bool:
        if key.namespace is None:
            return False
        return self._persistence.get(key.namespace, False)

    def persistent_namespaces(self) -> Iterable[CacheNamespace]:
        return [ns for ns, persist in self._persistence.items() if persist]

    def parse(self, key: str) -> CacheKey:
        """Resolve a rendered key string.

        Registered namespace tokens are matched longest first and must be the
        whole key or be followed by ``_``. Unknown keys are kept verbatim and
        never persisted.
        """
        for namespace in sorted(self._persistence, key=lambda ns: len(ns.value), reverse=True):
            token = namespace.value
            if key == token:
                return CacheKey(namespace, (), raw=key)
            if key.startswith(token + "_"):
                rest = key[len(token) + 1:]
                return CacheKey(namespace, tuple(rest.split("_")), raw=key)
        return CacheKey(None, (), raw=key)

    def coerce(self, key: Union[CacheKey, str]) -> CacheKey:
        if isinstance(key, CacheKey):
            return key
        return self.parse(key)
