"""Per-request duplicate suppression for tracking calls."""

import hashlib

from analytics_engine.trackable import Actor, EntityRef, RequestInfo


def request_signature(entity: EntityRef, action: str, request: RequestInfo, actor: Actor) -> str:
    """md5 of entity, action, full URL, session and actor identity."""
    parts = (
        entity.entity_type,
        entity.entity_id,
        action,
        request.full_url,
        actor.session_id or "",
        actor.user_id or "guest",
        actor.visitor_token or "",
    )
    return hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()


class RequestDeduplicationContext:
    """
    Signatures already tracked within one request.

    Created per request (see ``get_dedup_context``) and passed explicitly to
    ``TrackingService.track``; nothing about it is process-global.
    """

    def __init__(self):
        self._seen: set[str] = set()

    def seen(self, signature: str) -> bool:
        return signature in self._seen

    def mark(self, signature: str) -> None:
        self._seen.add(signature)

    def check_and_mark(self, signature: str) -> bool:
        """Return True if ``signature`` was new (and record it)."""
        if signature in self._seen:
            return False
        self._seen.add(signature)
        return True

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)


async def get_dedup_context():
    """FastAPI dependency yielding a fresh context that is cleared afterwards."""
    context = RequestDeduplicationContext()
    try:
        yield context
    finally:
        context.clear()
