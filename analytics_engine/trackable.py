"""
Tracking value objects

``Trackable`` is the capability a domain object exposes to be tracked.
``EntityRef``, ``Actor`` and ``RequestInfo`` are the immutable inputs of a
tracking call; they validate on construction and raise the validation
errors from ``analytics_engine.exceptions``.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from analytics_engine.exceptions import InvalidEntityReferenceError, UnresolvableActorError

MAX_ENTITY_TYPE_LENGTH = 100
MAX_ENTITY_ID_LENGTH = 64


@runtime_checkable
class Trackable(Protocol):
    """Anything that can name itself as an analytics entity."""

    @property
    def analytics_type(self) -> str: ...

    @property
    def analytics_id(self) -> Any: ...


@dataclass(frozen=True)
class EntityRef:
    entity_type: str
    entity_id: str

    def __post_init__(self):
        entity_type = str(self.entity_type).strip() if self.entity_type is not None else ""
        entity_id = str(self.entity_id).strip() if self.entity_id is not None else ""
        if not entity_type:
            raise InvalidEntityReferenceError(self.entity_type, self.entity_id, "entity_type is empty")
        if not entity_id:
            raise InvalidEntityReferenceError(self.entity_type, self.entity_id, "entity_id is empty")
        if len(entity_type) > MAX_ENTITY_TYPE_LENGTH:
            raise InvalidEntityReferenceError(self.entity_type, self.entity_id, "entity_type is too long")
        if len(entity_id) > MAX_ENTITY_ID_LENGTH:
            raise InvalidEntityReferenceError(self.entity_type, self.entity_id, "entity_id is too long")
        object.__setattr__(self, "entity_type", entity_type)
        object.__setattr__(self, "entity_id", entity_id)

    @classmethod
    def of(cls, entity: "Trackable | EntityRef") -> "EntityRef":
        """Build a reference from a ``Trackable`` (or return an existing reference)."""
        if isinstance(entity, EntityRef):
            return entity
        if not isinstance(entity, Trackable):
            raise InvalidEntityReferenceError(None, None, f"{type(entity).__name__} is not trackable")
        return cls(entity.analytics_type, entity.analytics_id)

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.entity_id}"


@dataclass(frozen=True)
class Actor:
    """
    Who caused an event.

    Exactly one of ``user_id`` and ``visitor_token`` identifies the actor;
    when a user id is present the visitor token is dropped. ``session_id``
    and ``ip_address`` are metadata only.
    """

    user_id: Optional[str] = None
    visitor_token: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None

    def __post_init__(self):
        user_id = str(self.user_id).strip() if self.user_id not in (None, "") else None
        visitor_token = str(self.visitor_token).strip() if self.visitor_token not in (None, "") else None
        if user_id:
            visitor_token = None
        if not user_id and not visitor_token:
            raise UnresolvableActorError()
        object.__setattr__(self, "user_id", user_id or None)
        object.__setattr__(self, "visitor_token", visitor_token or None)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def key(self) -> str:
        """Stable identity string, used in request signatures."""
        return f"user:{self.user_id}" if self.user_id else f"visitor:{self.visitor_token}"


@dataclass(frozen=True)
class RequestInfo:
    """Snapshot of the HTTP request that produced an event."""

    path: str = ""
    method: str = "GET"
    url: Optional[str] = None
    referer: Optional[str] = None
    user_agent: Optional[str] = None
    languages: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    @property
    def full_url(self) -> str:
        return self.url or self.path
