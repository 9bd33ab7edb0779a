"""Global free-text search across entity types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from planner_bot.core.types import EntityType
from planner_bot.storage.entity_repo import EntityFilters, EntityRepository


@dataclass
class SearchResults:
    tasks: list[Any] = field(default_factory=list)
    events: list[Any] = field(default_factory=list)
    notes: list[Any] = field(default_factory=list)
    projects: list[Any] = field(default_factory=list)

    def for_type(self, entity_type: EntityType) -> list[Any]:
        return getattr(self, entity_type.plural)

    @property
    def total(self) -> int:
        return len(self.tasks) + len(self.events) + len(self.notes) + len(self.projects)


class SearchService:
    """Fans a query out to each requested repository and groups the hits by type."""

    def __init__(self, repositories: dict[EntityType, EntityRepository]):
        self._repositories = repositories

    async def search(
        self,
        user_id: str,
        query: str,
        entity_types: Iterable[EntityType] | None = None,
        limit: int = 10,
        filters: EntityFilters | None = None,
    ) -> SearchResults:
        results = SearchResults()
        for entity_type in entity_types or list(EntityType):
            hits = await self._repositories[entity_type].search(user_id, query, filters=filters, limit=limit)
            setattr(results, entity_type.plural, hits)
        return results
