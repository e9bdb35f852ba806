"""
Request identity

FastAPI dependencies turning an incoming HTTP request into the ``Actor``
and ``RequestInfo`` inputs of a tracking call. Authentication happens
upstream; the caller forwards the resolved user id in ``X-User-Id`` and
the anonymous visitor token in ``X-Visitor-Token`` or the
``visitor_token`` cookie.
"""

import logging
from typing import Optional

from fastapi import Request

from analytics_engine.exceptions import UnresolvableActorError
from analytics_engine.middleware.logging import client_ip_from
from analytics_engine.trackable import Actor, RequestInfo

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
VISITOR_TOKEN_HEADER = "X-Visitor-Token"
SESSION_ID_HEADER = "X-Session-Id"
VISITOR_TOKEN_COOKIE = "visitor_token"
SESSION_COOKIE = "session_id"

# Headers stored on view rows
SNAPSHOT_HEADERS = ("accept", "accept-language", "host", "origin", "referer", "user-agent", "dnt")


def resolve_actor(request: Request) -> Actor:
    """
    Build the actor of ``request``.

    Raises:
        UnresolvableActorError: neither a user id nor a visitor token was sent
    """
    return Actor(
        user_id=request.headers.get(USER_ID_HEADER),
        visitor_token=request.headers.get(VISITOR_TOKEN_HEADER) or request.cookies.get(VISITOR_TOKEN_COOKIE),
        session_id=request.headers.get(SESSION_ID_HEADER) or request.cookies.get(SESSION_COOKIE),
        ip_address=client_ip_from(request),
    )


async def get_optional_actor(request: Request) -> Optional[Actor]:
    """Dependency: the request's actor, or None when it cannot be identified."""
    try:
        return resolve_actor(request)
    except UnresolvableActorError:
        logger.debug("No user id or visitor token on %s", request.url.path)
        return None


def request_info_from(
    request: Request,
    path: Optional[str] = None,
    url: Optional[str] = None,
    referer: Optional[str] = None,
) -> RequestInfo:
    """
    Snapshot ``request`` for tracking.

    ``path``, ``url`` and ``referer`` describe the page that was viewed when
    the tracking call is made on its behalf; they default to the tracking
    request itself.
    """
    headers = {name: request.headers[name] for name in SNAPSHOT_HEADERS if name in request.headers}
    return RequestInfo(
        path=path if path is not None else request.url.path,
        method=request.method,
        url=url or str(request.url),
        referer=referer or request.headers.get("referer"),
        user_agent=request.headers.get("user-agent"),
        languages=request.headers.get("accept-language"),
        headers=headers,
    )
