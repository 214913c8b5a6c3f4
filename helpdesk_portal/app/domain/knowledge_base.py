"""
Knowledge base search and article lookup with short-lived caching.
"""

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from helpdesk_shared.config import PortalConfig
from helpdesk_shared.errors import ValidationError
from helpdesk_shared.logging import get_logger
from ..adapters.ticketing_client import TicketingClient
from ..caching.cache_store import CacheStore
from ..caching.namespaces import CacheKey
from ..caching.ttl_policy import TTLCategory, TTLPolicy

RESULT_FIELDS = ("details", "result", "results", "answers")


def extract_results(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Pick the first result list the search API filled in.

    ``details`` carries full answers (with URLs) and is preferred. Translation
    objects that only have ``answer_id`` get it copied to ``id``.
    """
    results: List[Dict[str, Any]] = []
    for field in RESULT_FIELDS:
        if isinstance(payload.get(field), list):
            results = payload[field]
            break

    normalized = []
    for item in results:
        if isinstance(item, dict) and item.get("answer_id") and not item.get("id"):
            item = {**item, "id": item["answer_id"]}
        normalized.append(item)
    return normalized


class KnowledgeBaseService:
    """Knowledge base search and article lookup."""

    def __init__(
        self,
        client: TicketingClient,
        cache: CacheStore,
        policy: TTLPolicy,
        config: PortalConfig,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.client = client
        self.cache = cache
        self.policy = policy
        self.config = config
        self._now = now
        self.logger = get_logger("portal.knowledge_base")

    async def search(self, query: str) -> Dict[str, Any]:
        if not isinstance(query, str) or len(query.strip()) < self.config.search_min_length:
            raise ValidationError(
                f"Search query must be at least {self.config.search_min_length} characters",
                {"query": query},
            )

        clean_query = query.strip()
        cache_key = CacheKey.search(clean_query)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            self.logger.debug("Loaded search results from cache", query=clean_query)
            return cached

        payload = await self.client.search_knowledge_base(clean_query)
        result = {
            "results": extract_results(payload),
            "highlights": payload.get("highlights") or {},
        }

        ttl_ms = self.policy.ttl_for(TTLCategory.SEARCH_RESULT, None, self._now())
        await self.cache.set(cache_key, result, ttl_ms)
        self.logger.debug(
            "Cached search results",
            query=clean_query,
            count=len(result["results"]),
            ttl_minutes=round(ttl_ms / 60000),
        )
        return result

    async def get_article(self, article_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        """Answer details plus ``category`` and ``slug`` derived from its assets.

        Returns ``None`` when the article is not readable by the caller; that
        outcome is not cached.
        """
        cache_key = CacheKey.kb_article(article_id)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            self.logger.debug("Loaded article from cache", article_id=article_id)
            return cached

        payload = await self.client.get_knowledge_base_article(article_id)
        if payload is None:
            return None

        article = {"id": article_id, **payload}
        article["category"] = article_category(payload, article_id)
        article["slug"] = article_slug(payload, article_id)

        await self.cache.set(cache_key, article, self.config.cache.kb_article_ttl_ms)
        self.logger.debug(
            "Fetched and cached article",
            article_id=article_id,
            category_id=(article["category"] or {}).get("id"),
            slug=article["slug"],
        )
        return article


_UMLAUTS = {"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"}


def slugify(title: Optional[str]) -> str:
    """``"Größe & VPN"`` -> ``"groesse-vpn"``."""
    if not title:
        return ""
    lowered = title.lower()
    for char, replacement in _UMLAUTS.items():
        lowered = lowered.replace(char, replacement)
    return re.sub(r"[^a-z0-9]+", "-", lowered).strip("-")


def _asset(assets: Dict[str, Any], kind: str, asset_id: Any) -> Optional[Dict[str, Any]]:
    table = assets.get(kind) or {}
    if asset_id is None:
        return None
    return table.get(str(asset_id))


def article_category(payload: Dict[str, Any], article_id: Union[int, str]) -> Optional[Dict[str, Any]]:
    assets = payload.get("assets") or {}
    answer = _asset(assets, "KnowledgeBaseAnswer", article_id)
    if not answer or not answer.get("category_id"):
        return None
    category = _asset(assets, "KnowledgeBaseCategory", answer["category_id"])
    if not category:
        return None
    translation_ids = category.get("translation_ids") or [None]
    translation = _asset(assets, "KnowledgeBaseCategoryTranslation", translation_ids[0])
    if not translation:
        return None
    return {"id": category.get("id"), "slug": slugify(translation.get("title")), "title": translation.get("title")}


def article_slug(payload: Dict[str, Any], article_id: Union[int, str]) -> Optional[str]:
    translations = (payload.get("assets") or {}).get("KnowledgeBaseAnswerTranslation") or {}
    for translation in translations.values():
        if str(translation.get("answer_id")) == str(article_id) and translation.get("title"):
            return slugify(translation["title"])
    return None
