"""
Event Classifier

Turns a raw request snapshot into the enrichment stored with a view:
device/browser details, bot verdict and a geolocation snapshot. Geolocation
is bounded by a timeout and degrades to the unknown location.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from analytics_engine.config import settings
from analytics_engine.services.bot_classifier import BotClassification, BotClassifier, bot_classifier
from analytics_engine.services.geolocation_service import GeolocationService, geolocation_service, unknown_location
from analytics_engine.trackable import Actor, RequestInfo
from analytics_engine.utils.metrics import record_geolocation_lookup
from analytics_engine.utils.user_agent import UserAgentDetails, parse_user_agent

logger = logging.getLogger(__name__)


@dataclass
class ClassifiedEvent:
    """Enrichment attached to a tracked event."""

    bot: BotClassification
    user_agent: UserAgentDetails
    location: dict[str, Any] = field(default_factory=unknown_location)

    @property
    def is_robot(self) -> bool:
        return self.bot.is_robot


class EventClassifier:
    def __init__(
        self,
        bots: BotClassifier = bot_classifier,
        geolocation: GeolocationService = geolocation_service,
        timeout: Optional[float] = None,
        track_bots: Optional[bool] = None,
        tracked_actions: Optional[list[str]] = None,
        geolocation_enabled: Optional[bool] = None,
    ):
        self.bots = bots
        self.geolocation = geolocation
        self._timeout = timeout
        self._track_bots = track_bots
        self._tracked_actions = tracked_actions
        self._geolocation_enabled = geolocation_enabled

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else settings.geolocation_timeout_seconds

    @property
    def track_bots(self) -> bool:
        return self._track_bots if self._track_bots is not None else settings.analytics_track_bots

    @property
    def tracked_actions(self) -> list[str]:
        return self._tracked_actions if self._tracked_actions is not None else settings.tracked_actions

    @property
    def geolocation_enabled(self) -> bool:
        if self._geolocation_enabled is not None:
            return self._geolocation_enabled
        return settings.geolocation_enabled

    def is_tracked_action(self, action: str) -> bool:
        return action in self.tracked_actions

    async def locate(self, ip: Optional[str]) -> dict[str, Any]:
        """Geolocate ``ip`` within the configured timeout; never raises."""
        if not ip or not self.geolocation_enabled:
            return unknown_location()
        try:
            return await asyncio.wait_for(self.geolocation.lookup(ip), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Geolocation lookup for %s timed out after %.1fs", ip, self.timeout)
            record_geolocation_lookup("timeout")
        except Exception as e:
            logger.error("Geolocation lookup failed for IP %s: %s", ip, e)
            record_geolocation_lookup("unknown")
        return unknown_location()

    async def classify(self, request: RequestInfo, actor: Actor) -> Optional[ClassifiedEvent]:
        """
        Enrich one event.

        Returns:
            The classification, or None when the event comes from a bot and
            bot tracking is disabled
        """
        bot = self.bots.classify(request.user_agent)
        if bot.is_robot and not self.track_bots:
            logger.debug("Skipping bot event from %s", bot.robot_name)
            return None

        details = parse_user_agent(request.user_agent)
        if bot.is_robot:
            details.device = "Bot"
            details.device_type = "bot"

        location = await self.locate(actor.ip_address)
        return ClassifiedEvent(bot=bot, user_agent=details, location=location)


event_classifier = EventClassifier()
