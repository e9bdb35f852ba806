"""
Tests for event classification: bots, user agents and geolocation
"""

import asyncio

import httpx
import pytest

from analytics_engine.services.bot_classifier import BotClassifier
from analytics_engine.services.classifier import EventClassifier
from analytics_engine.services.geolocation_service import GeolocationService, is_known_location, unknown_location
from analytics_engine.trackable import Actor, RequestInfo
from analytics_engine.utils.user_agent import parse_user_agent
from conftest import FIREFOX_UA, GOOGLEBOT_UA

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
ANDROID_TABLET_UA = (
    "Mozilla/5.0 (Linux; Android 13; SM-T870) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class FakeCache:
    """In-memory stand-in for the Redis cache manager."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ttl=None):
        self.store[key] = value
        return True

    async def delete(self, key):
        return self.store.pop(key, None) is not None


class TestBotClassifier:
    """Test crawler detection"""

    def setup_method(self):
        self.classifier = BotClassifier()

    def test_human_browser(self):
        result = self.classifier.classify(FIREFOX_UA)
        assert result.is_robot is False
        assert result.robot_name is None

    def test_googlebot(self):
        result = self.classifier.classify(GOOGLEBOT_UA)
        assert result.is_robot is True
        assert result.robot_name == "Googlebot"
        assert result.robot_category == "Search Engine"

    def test_specific_variant_wins(self):
        result = self.classifier.classify("Googlebot-Image/1.0")
        assert result.robot_name == "Googlebot-Image"

    def test_social_preview(self):
        result = self.classifier.classify("facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)")
        assert result.robot_name == "Facebook External Hit"
        assert result.robot_category == "Social Media"

    def test_generic_keyword(self):
        result = self.classifier.classify("Mozilla/5.0 (compatible; acme spider 2.0)")
        assert result.is_robot is True
        assert result.robot_name == "Spider"
        assert result.robot_category == "Other Bot"

    def test_empty_user_agent(self):
        assert self.classifier.classify(None).is_robot is False
        assert self.classifier.classify("").is_robot is False


class TestUserAgentParser:
    """Test device and browser extraction"""

    def test_desktop_firefox(self):
        details = parse_user_agent(FIREFOX_UA)
        assert details.device == "Desktop"
        assert details.browser == "Firefox"
        assert details.browser_version == "121.0"
        assert details.platform == "Windows"
        assert details.os == "Windows 10.0"

    def test_desktop_chrome(self):
        details = parse_user_agent(CHROME_WINDOWS_UA)
        assert details.browser == "Chrome"
        assert details.browser_version == "120.0.0.0"

    def test_iphone_safari(self):
        details = parse_user_agent(SAFARI_IPHONE_UA)
        assert details.device == "Mobile"
        assert details.device_type == "mobile"
        assert details.platform == "iOS"
        assert details.os == "iOS 17.2"
        assert details.browser == "Safari"
        assert details.browser_version == "17.2"

    def test_android_tablet(self):
        details = parse_user_agent(ANDROID_TABLET_UA)
        assert details.device == "Tablet"
        assert details.platform == "Android"

    def test_unknown(self):
        details = parse_user_agent(None)
        assert details.as_dict() == {
            "device": "Desktop",
            "device_type": "Unknown",
            "platform": "Unknown",
            "os": "Unknown",
            "browser": "Unknown",
            "browser_version": "Unknown",
        }


class TestGeolocationService:
    """Test IP lookups"""

    @pytest.mark.asyncio
    async def test_invalid_ip(self):
        service = GeolocationService(cache=FakeCache(), providers=[])
        location = await service.lookup("not-an-ip")
        assert location == unknown_location()
        assert not is_known_location(location)

    @pytest.mark.asyncio
    async def test_private_addresses_use_development_locations(self):
        service = GeolocationService(cache=FakeCache(), providers=[])

        assert (await service.lookup("127.0.0.1"))["country_code"] == "LH"
        assert (await service.lookup("192.168.1.20"))["country"] == "Local Network"
        assert (await service.lookup("10.0.0.7"))["country"] == "Corporate Network"
        assert (await service.lookup("::1"))["country"] == "Development"

    @pytest.mark.asyncio
    async def test_falls_through_providers_in_order(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.host)
            if request.url.host == "ip-api.com":
                return httpx.Response(200, json={"status": "fail", "message": "quota"})
            return httpx.Response(
                200,
                json={
                    "country_name": "United States",
                    "country_code": "US",
                    "region": "California",
                    "region_code": "CA",
                    "city": "Mountain View",
                    "postal": "94043",
                    "latitude": 37.4,
                    "longitude": -122.1,
                    "timezone": "America/Los_Angeles",
                    "org": "Google LLC",
                    "asn": "AS15169",
                },
            )

        cache = FakeCache()
        service = GeolocationService(
            cache=cache, providers=["ip-api", "ipapi", "ipwhois"], transport=httpx.MockTransport(handler)
        )

        location = await service.lookup("8.8.8.8")

        assert calls == ["ip-api.com", "ipapi.co"]
        assert location["country"] == "United States"
        assert location["region"] == "CA"
        assert location["region_name"] == "California"
        assert cache.store["geolocation:8.8.8.8"] == location

    @pytest.mark.asyncio
    async def test_cached_result_skips_providers(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("provider should not be called")

        cache = FakeCache()
        cache.store["geolocation:8.8.4.4"] = {"country": "Cached", "country_code": "CC"}
        service = GeolocationService(cache=cache, providers=["ip-api"], transport=httpx.MockTransport(handler))

        assert (await service.lookup("8.8.4.4"))["country"] == "Cached"

    @pytest.mark.asyncio
    async def test_every_provider_failing(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        cache = FakeCache()
        service = GeolocationService(cache=cache, providers=["ip-api", "ipwhois"], transport=httpx.MockTransport(handler))

        assert await service.lookup("1.1.1.1") == unknown_location()
        assert cache.store == {}


class SlowGeolocation:
    async def lookup(self, ip):
        await asyncio.sleep(1)
        return {"country": "Late", "country_code": "LT"}


class TestEventClassifier:
    """Test request enrichment"""

    @pytest.mark.asyncio
    async def test_human_event(self):
        classifier = EventClassifier(geolocation=GeolocationService(cache=FakeCache(), providers=[]))
        event = await classifier.classify(RequestInfo(user_agent=FIREFOX_UA), Actor(user_id="u", ip_address="127.0.0.1"))

        assert event.is_robot is False
        assert event.user_agent.browser == "Firefox"
        assert event.location["country"] == "Localhost"

    @pytest.mark.asyncio
    async def test_bot_skipped_unless_tracked(self):
        actor = Actor(user_id="u", ip_address="127.0.0.1")
        request = RequestInfo(user_agent=GOOGLEBOT_UA)

        assert await EventClassifier(track_bots=False).classify(request, actor) is None

        event = await EventClassifier(track_bots=True, geolocation_enabled=False).classify(request, actor)
        assert event.is_robot is True
        assert event.user_agent.device == "Bot"

    @pytest.mark.asyncio
    async def test_geolocation_timeout_degrades_to_unknown(self):
        classifier = EventClassifier(geolocation=SlowGeolocation(), timeout=0.01)
        location = await classifier.locate("8.8.8.8")
        assert location["country_code"] == "XX"

    @pytest.mark.asyncio
    async def test_missing_ip(self):
        assert (await EventClassifier().locate(None))["country"] == "Unknown"

    def test_tracked_actions(self):
        classifier = EventClassifier(tracked_actions=["show", "index"])
        assert classifier.is_tracked_action("show")
        assert not classifier.is_tracked_action("edit")
