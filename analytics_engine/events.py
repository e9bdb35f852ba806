"""
Domain events

Hook names the domain layer publishes when something happens to a
trackable entity, and the bus that delivers them. Hook names follow the
``category.action`` convention.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from analytics_engine.trackable import Actor, EntityRef, RequestInfo

logger = logging.getLogger(__name__)

# ── View lifecycle ────────────────────────────────────────────────────────────
HOOK_ENTITY_VIEWED = "entity.viewed"

# ── Engagement ────────────────────────────────────────────────────────────────
HOOK_ENTITY_IMPRESSION = "entity.impression"
HOOK_ENTITY_LIKED = "entity.liked"
HOOK_ENTITY_UNLIKED = "entity.unliked"
HOOK_ENTITY_SHARED = "entity.shared"
HOOK_ENTITY_CLICKED = "entity.clicked"
HOOK_ENTITY_FOLLOWED = "entity.followed"
HOOK_ENTITY_UNFOLLOWED = "entity.unfollowed"
HOOK_ENTITY_BOOKMARKED = "entity.bookmarked"
HOOK_ENTITY_UNBOOKMARKED = "entity.unbookmarked"
HOOK_ENTITY_REPLIED = "entity.replied"
HOOK_ENTITY_VOTED = "entity.voted"
HOOK_ENTITY_COMPLAINED = "entity.complained"
HOOK_ENTITY_COMMENTED = "entity.commented"

# ── Entity lifecycle ──────────────────────────────────────────────────────────
HOOK_ENTITY_DELETED = "entity.deleted"

# hook -> (counter column, direction)
METRIC_HOOKS: dict[str, tuple[str, int]] = {
    HOOK_ENTITY_IMPRESSION: ("impressions_count", 1),
    HOOK_ENTITY_LIKED: ("likes_count", 1),
    HOOK_ENTITY_UNLIKED: ("likes_count", -1),
    HOOK_ENTITY_SHARED: ("shares_count", 1),
    HOOK_ENTITY_CLICKED: ("clicks_count", 1),
    HOOK_ENTITY_FOLLOWED: ("follows_count", 1),
    HOOK_ENTITY_UNFOLLOWED: ("follows_count", -1),
    HOOK_ENTITY_BOOKMARKED: ("bookmarks_count", 1),
    HOOK_ENTITY_UNBOOKMARKED: ("bookmarks_count", -1),
    HOOK_ENTITY_REPLIED: ("replies_count", 1),
    HOOK_ENTITY_VOTED: ("votes_count", 1),
    HOOK_ENTITY_COMPLAINED: ("complaints_count", 1),
    HOOK_ENTITY_COMMENTED: ("comments_count", 1),
}

ALL_HOOKS: list[str] = [HOOK_ENTITY_VIEWED, *METRIC_HOOKS, HOOK_ENTITY_DELETED]


@dataclass
class DomainEvent:
    """Payload delivered to subscribers."""

    db: AsyncSession
    entity: EntityRef
    actor: Optional[Actor] = None
    action: str = "view"
    request: Optional[RequestInfo] = None
    amount: int = 1


EventHandler = Callable[[str, DomainEvent], Awaitable[Any]]


class DomainEventBus:
    def __init__(self):
        self._subscriptions: dict[str, list[EventHandler]] = {}

    def subscribe(self, hook_name: str, handler: EventHandler) -> None:
        if hook_name not in ALL_HOOKS:
            raise ValueError(f"Unknown hook '{hook_name}'")
        handlers = self._subscriptions.setdefault(hook_name, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, hook_name: str, handler: EventHandler) -> None:
        handlers = self._subscriptions.get(hook_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscribers(self, hook_name: str) -> list[EventHandler]:
        return list(self._subscriptions.get(hook_name, []))

    async def publish(self, hook_name: str, event: DomainEvent) -> list[Any]:
        """
        Deliver ``event`` to every subscriber of ``hook_name``.

        A failing subscriber is logged and skipped; it never prevents the
        others from running or propagates to the publisher.

        Returns:
            List of return values from each subscriber
        """
        results: list[Any] = []
        for handler in self._subscriptions.get(hook_name, []):
            try:
                results.append(await handler(hook_name, event))
            except Exception as exc:
                logger.warning(
                    "Subscriber %s for %s raised: %s",
                    getattr(handler, "__qualname__", handler),
                    hook_name,
                    exc,
                )
        return results


event_bus = DomainEventBus()
