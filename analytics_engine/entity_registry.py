"""
Entity registry

Maps an entity type to a coroutine returning the ids of entities of that
type that still exist. Orphan cleanup treats an unregistered type as gone.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

LiveIdResolver = Callable[[AsyncSession], Awaitable[Iterable]]


class EntityRegistry:
    def __init__(self):
        self._resolvers: dict[str, LiveIdResolver] = {}

    def register(self, entity_type: str, resolver: LiveIdResolver) -> None:
        self._resolvers[entity_type] = resolver
        logger.debug("Registered live-id resolver for %s", entity_type)

    def unregister(self, entity_type: str) -> None:
        self._resolvers.pop(entity_type, None)

    def is_registered(self, entity_type: str) -> bool:
        return entity_type in self._resolvers

    @property
    def entity_types(self) -> list[str]:
        return sorted(self._resolvers)

    async def live_ids(self, db: AsyncSession, entity_type: str) -> set[str] | None:
        """
        Ids of live entities of ``entity_type``.

        Returns:
            The id set, or None when the type has no resolver or the resolver failed
        """
        resolver = self._resolvers.get(entity_type)
        if resolver is None:
            return None
        try:
            return {str(entity_id) for entity_id in await resolver(db)}
        except Exception as e:
            logger.warning("Live-id resolver for %s failed: %s", entity_type, e)
            return None


entity_registry = EntityRegistry()
