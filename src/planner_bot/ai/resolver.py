"""Entity reference resolution: identifier or free text to exactly one entity."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from planner_bot.core.errors import AmbiguousReferenceError, Candidate, NotFoundError
from planner_bot.core.types import EntityType
from planner_bot.log import get_logger
from planner_bot.storage.search import SearchService

logger = get_logger(__name__)

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
SEARCH_LIMIT = 10


@dataclass(frozen=True)
class Resolved:
    id: str


@dataclass(frozen=True)
class NotFound:
    entity_type: EntityType
    identifier: str

    def to_error(self) -> NotFoundError:
        return NotFoundError(self.entity_type, self.identifier)


@dataclass(frozen=True)
class Ambiguous:
    entity_type: EntityType
    identifier: str
    candidates: list[Candidate] = field(default_factory=list)

    def to_error(self) -> AmbiguousReferenceError:
        return AmbiguousReferenceError(self.entity_type, self.identifier, self.candidates)


Resolution = Resolved | NotFound | Ambiguous


def is_identifier(text: str) -> bool:
    return bool(UUID_PATTERN.match(text.strip()))


class EntityResolver:
    """Applies the one disambiguation rule shared by every tool that takes a reference.

    Identifier-shaped input is returned as-is without searching. Anything else is
    searched within the entity type: no hit is ``NotFound``, one hit ``Resolved``,
    several hits ``Ambiguous`` with every candidate.
    """

    def __init__(self, search: SearchService, limit: int = SEARCH_LIMIT):
        self._search = search
        self._limit = limit

    async def resolve(self, user_id: str, entity_type: EntityType, text: str) -> Resolution:
        reference = text.strip()
        if not reference:
            # An empty pattern would match every row
            return NotFound(entity_type, reference)
        if is_identifier(reference):
            return Resolved(reference.lower())

        results = await self._search.search(user_id, reference, entity_types=[entity_type], limit=self._limit)
        hits = results.for_type(entity_type)
        logger.debug("entity_resolution", entity_type=entity_type.value, reference=reference, hits=len(hits))

        match hits:
            case []:
                return NotFound(entity_type, reference)
            case [hit]:
                return Resolved(hit.id)
            case _:
                return Ambiguous(
                    entity_type,
                    reference,
                    [Candidate(id=h.id, title=h.title or "Untitled") for h in hits],
                )

    async def require(self, user_id: str, entity_type: EntityType, text: str) -> str:
        """Resolve or raise ``NotFoundError`` / ``AmbiguousReferenceError``."""
        resolution = await self.resolve(user_id, entity_type, text)
        if isinstance(resolution, Resolved):
            return resolution.id
        raise resolution.to_error()
