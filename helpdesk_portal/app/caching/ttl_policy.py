"""
Cache lifetime selection.

Lifetimes depend on how likely an entity is to change: tickets from a prior
year are effectively immutable, closed tickets of the current year change
rarely, active tickets change often. Reference data and search results have
fixed lifetimes of their own. The period is the calendar year of ``now``.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from helpdesk_shared.config import CacheTTLSettings


class TTLCategory(Enum):
    """Freshness class of a cached payload."""

    ARCHIVED = "archived"
    CURRENT_PERIOD_CLOSED = "current_period_closed"
    CURRENT_PERIOD_ACTIVE = "current_period_active"
    REFERENCE_DATA = "reference_data"
    SEARCH_RESULT = "search_result"


class EntityKind(Enum):
    """Which row of the ticket TTL table applies."""

    DETAIL = "detail"
    LIST = "list"


ENTITY_CATEGORIES = frozenset({
    TTLCategory.ARCHIVED,
    TTLCategory.CURRENT_PERIOD_CLOSED,
    TTLCategory.CURRENT_PERIOD_ACTIVE,
})

_DESCRIPTIONS: Dict[TTLCategory, str] = {
    TTLCategory.ARCHIVED: "long-term (archived)",
    TTLCategory.CURRENT_PERIOD_CLOSED: "medium-term (closed current year)",
    TTLCategory.CURRENT_PERIOD_ACTIVE: "short-term (active current year)",
    TTLCategory.REFERENCE_DATA: "reference data",
    TTLCategory.SEARCH_RESULT: "search results",
}


def reference_year(value: Any) -> Optional[int]:
    """Extract the year of a reference date; ``None`` when missing or unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (datetime, date)):
        return value.year
    if isinstance(value, int):
        return value if 1 <= value <= 9999 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit() and len(text) == 4:
            return int(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).year
        except ValueError:
            return None
    return None


class TTLPolicy:
    """Deterministic mapping of ``(category, reference_date, now)`` to a lifetime in ms."""

    def __init__(self, settings: Optional[CacheTTLSettings] = None):
        self.settings = settings if settings is not None else CacheTTLSettings()
        s = self.settings
        self._table: Dict[Tuple[TTLCategory, EntityKind], int] = {
            (TTLCategory.ARCHIVED, EntityKind.DETAIL): s.archived_ticket_detail_ttl_ms,
            (TTLCategory.ARCHIVED, EntityKind.LIST): s.archived_ticket_list_ttl_ms,
            (TTLCategory.CURRENT_PERIOD_CLOSED, EntityKind.DETAIL): s.current_year_closed_ticket_detail_ttl_ms,
            (TTLCategory.CURRENT_PERIOD_CLOSED, EntityKind.LIST): s.current_year_closed_ticket_list_ttl_ms,
            (TTLCategory.CURRENT_PERIOD_ACTIVE, EntityKind.DETAIL): s.current_year_active_ticket_detail_ttl_ms,
            (TTLCategory.CURRENT_PERIOD_ACTIVE, EntityKind.LIST): s.current_year_active_ticket_list_ttl_ms,
        }

    def ttl_for(
        self,
        category: TTLCategory,
        reference_date: Any,
        now: datetime,
        kind: EntityKind = EntityKind.DETAIL,
    ) -> int:
        """Lifetime in milliseconds.

        For ticket categories the reference date decides the period: a date in
        a prior year always gets the archived lifetime, and a missing or
        invalid date gets the shortest ticket lifetime (active current year).
        An archived category paired with a current-year date has no status to
        go on and is treated as active.
        """
        if category is TTLCategory.REFERENCE_DATA:
            return self.settings.request_type_ttl_ms
        if category is TTLCategory.SEARCH_RESULT:
            return self.settings.search_results_ttl_ms

        year = reference_year(reference_date)
        if year is None:
            effective = TTLCategory.CURRENT_PERIOD_ACTIVE
        elif year < now.year:
            effective = TTLCategory.ARCHIVED
        elif category is TTLCategory.ARCHIVED:
            effective = TTLCategory.CURRENT_PERIOD_ACTIVE
        else:
            effective = category
        return self._table[(effective, kind)]

    @staticmethod
    def classify(reference_date: Any, is_closed: bool, now: datetime) -> TTLCategory:
        """Category of a single ticket from its creation date and status."""
        year = reference_year(reference_date)
        if year is None:
            return TTLCategory.CURRENT_PERIOD_ACTIVE
        if year < now.year:
            return TTLCategory.ARCHIVED
        if is_closed:
            return TTLCategory.CURRENT_PERIOD_CLOSED
        return TTLCategory.CURRENT_PERIOD_ACTIVE

    @classmethod
    def category_for_list(cls, year: Any, status_category: str, now: datetime) -> TTLCategory:
        """Category of a ticket list filtered by year and status category."""
        return cls.classify(year, status_category == "closed", now)

    @staticmethod
    def describe(category: TTLCategory) -> str:
        return _DESCRIPTIONS[category]
