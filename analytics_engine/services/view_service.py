"""
View Deduplication Service

Keeps exactly one View row per (entity, actor, action, path). A repeat
visit refreshes the row in place; counters are never touched here.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from analytics_engine.constants.metrics import RecordStatus
from analytics_engine.models.view import View
from analytics_engine.services.classifier import ClassifiedEvent
from analytics_engine.services.geolocation_service import LOCATION_FIELDS, is_known_location
from analytics_engine.trackable import Actor, EntityRef, RequestInfo
from analytics_engine.utils.dates import utcnow
from analytics_engine.utils.metrics import record_view_dedup

logger = logging.getLogger(__name__)


class ViewDeduplicator:
    @staticmethod
    async def find(db: AsyncSession, entity: EntityRef, actor: Actor, action: str, path: str) -> Optional[View]:
        query = select(View).where(
            View.entity_type == entity.entity_type,
            View.entity_id == entity.entity_id,
            View.action_type == action,
            View.request_path == path,
        )
        if actor.user_id:
            query = query.where(View.user_id == actor.user_id)
        else:
            query = query.where(View.visitor_token == actor.visitor_token)
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    def _snapshot(request: RequestInfo, event: ClassifiedEvent) -> dict[str, Any]:
        """Request/device/bot fields; None means "keep what the row has"."""
        details = event.user_agent
        return {
            "method": request.method,
            "url": request.url,
            "referer": request.referer,
            "page_url": request.full_url,
            "languages": request.languages,
            "useragent": request.user_agent,
            "headers": request.headers or None,
            "device": details.device,
            "device_type": details.device_type,
            "platform": details.platform,
            "os": details.os,
            "browser": details.browser,
            "browser_version": details.browser_version,
            "is_robot": event.bot.is_robot,
            "robot_name": event.bot.robot_name,
            "robot_category": event.bot.robot_category,
        }

    @classmethod
    def _apply_update(
        cls, view: View, actor: Actor, request: RequestInfo, event: ClassifiedEvent, now: datetime
    ) -> None:
        for name, value in cls._snapshot(request, event).items():
            if value is not None:
                setattr(view, name, value)
        if actor.session_id:
            view.session_id = actor.session_id
        if actor.ip_address:
            view.ip_address = actor.ip_address
        if not view.has_geolocation and is_known_location(event.location):
            for name in LOCATION_FIELDS:
                setattr(view, name, event.location.get(name))
        view.visited_at = now
        view.updated_at = now
        view.updated_by = actor.user_id

    @classmethod
    async def record_view(
        cls,
        db: AsyncSession,
        entity: EntityRef,
        actor: Actor,
        action: str,
        request: RequestInfo,
        event: ClassifiedEvent,
        analytic_id: Optional[int] = None,
        now: Optional[datetime] = None,
        status: str = RecordStatus.ACTIVE.value,
    ) -> Optional[View]:
        """
        Insert or refresh the view row for this (entity, actor, action, path).

        Args:
            db: Database session
            entity: Viewed entity
            actor: Viewer
            action: Tracked action; with the request path it forms the dedup key
            request: Request snapshot
            event: Classifier output
            analytic_id: Owning per-actor analytic row
            now: Visit timestamp (default: now)
            status: Status of a newly inserted row, taken from the owning analytic row

        Returns:
            The view row (unchanged when locked), or None on an unexpected persistence error
        """
        now = now or utcnow()
        path = request.path or ""

        try:
            view = await cls.find(db, entity, actor, action, path)
            if view is not None and view.view_lock:
                record_view_dedup("locked")
                return view
            if view is not None:
                cls._apply_update(view, actor, request, event, now)
                await db.commit()
                await db.refresh(view)
                record_view_dedup("updated")
                return view

            view = View(
                analytic_id=analytic_id,
                entity_type=entity.entity_type,
                entity_id=entity.entity_id,
                action_type=action,
                request_path=path,
                user_id=actor.user_id,
                visitor_token=actor.visitor_token,
                session_id=actor.session_id,
                ip_address=actor.ip_address,
                view_status=status,
                created_by=actor.user_id,
                visited_at=now,
                created_at=now,
                updated_at=now,
                **cls._snapshot(request, event),
                **{name: event.location.get(name) for name in LOCATION_FIELDS},
            )
            db.add(view)
            try:
                await db.commit()
            except IntegrityError:
                # A concurrent request inserted the same view; fold into it
                await db.rollback()
                record_view_dedup("conflict")
                view = await cls.find(db, entity, actor, action, path)
                if view is None:
                    logger.error("View for %s vanished after unique conflict", entity)
                    return None
                cls._apply_update(view, actor, request, event, now)
                await db.commit()
                await db.refresh(view)
                return view

            await db.refresh(view)
            record_view_dedup("inserted")
            return view
        except Exception as e:
            await db.rollback()
            logger.error("View tracking failed for %s: %s", entity, e)
            return None


view_deduplicator = ViewDeduplicator()
