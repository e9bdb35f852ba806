"""
Geolocation Service

Resolves an IP address to a location snapshot. Private and reserved
addresses get a synthetic development location; public addresses are
looked up through a chain of free HTTP providers and cached in Redis.
Any failure yields the "unknown" location instead of an exception.
"""

import ipaddress
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from analytics_engine.config import settings
from analytics_engine.exceptions import GeolocationUnavailableError
from analytics_engine.utils.cache import CacheManager, cache_manager
from analytics_engine.utils.metrics import record_geolocation_lookup

logger = logging.getLogger(__name__)

LOCATION_FIELDS = (
    "country",
    "country_code",
    "region",
    "region_name",
    "city",
    "zip",
    "lat",
    "lon",
    "timezone",
    "isp",
    "org",
    "as_name",
)

UNKNOWN_COUNTRY_CODE = "XX"


def unknown_location() -> dict[str, Any]:
    location = dict.fromkeys(LOCATION_FIELDS)
    location.update(country="Unknown", country_code=UNKNOWN_COUNTRY_CODE)
    return location


def is_known_location(location: Optional[dict[str, Any]]) -> bool:
    return bool(
        location
        and location.get("country")
        and location.get("country_code")
        and location.get("country_code") != UNKNOWN_COUNTRY_CODE
    )


def _mock(country, code, region, region_name, city, lat, lon, tz, isp, org, as_name) -> dict[str, Any]:
    return {
        "country": country,
        "country_code": code,
        "region": region,
        "region_name": region_name,
        "city": city,
        "zip": "00000",
        "lat": lat,
        "lon": lon,
        "timezone": tz,
        "isp": isp,
        "org": org,
        "as_name": as_name,
    }


# Synthetic locations for non-routable addresses, matched by prefix
DEVELOPMENT_LOCATIONS: tuple[tuple[str, dict[str, Any]], ...] = (
    (
        "127.0.0.1",
        _mock("Localhost", "LH", "Development", "Development Server", "Local Machine", 40.7128, -74.0060,
              "America/New_York", "Local Development", "Development Environment", "AS0 - Local Development"),
    ),
    (
        "192.168.",
        _mock("Local Network", "LN", "Private Network", "Private Network", "Local Network", 34.0522, -118.2437,
              "America/Los_Angeles", "Local Network", "Private Network", "AS0 - Private Network"),
    ),
    (
        "10.",
        _mock("Corporate Network", "CN", "Corporate", "Corporate Network", "Office Network", 37.7749, -122.4194,
              "America/Los_Angeles", "Corporate Network", "Corporate Environment", "AS0 - Corporate Network"),
    ),
    (
        "172.",
        _mock("Docker Network", "DN", "Container", "Container Network", "Docker Network", 47.6062, -122.3321,
              "America/Los_Angeles", "Docker Network", "Container Environment", "AS0 - Container Network"),
    ),
)

DEFAULT_DEVELOPMENT_LOCATION = _mock(
    "Development", "DV", "Development", "Development Environment", "Development Server", 51.5074, -0.1278,
    "Europe/London", "Development ISP", "Development Organization", "AS0 - Development",
)


@dataclass(frozen=True)
class GeoProvider:
    name: str
    url_template: str
    is_valid: Callable[[dict], bool]
    mapping: dict[str, Optional[str]]

    def url_for(self, ip: str) -> str:
        return self.url_template.format(ip=ip)

    def format(self, payload: dict) -> dict[str, Any]:
        return {field: payload.get(source) if source else None for field, source in self.mapping.items()}


PROVIDERS: dict[str, GeoProvider] = {
    "ip-api": GeoProvider(
        name="ip-api",
        url_template=(
            "http://ip-api.com/json/{ip}?fields=status,message,country,countryCode,region,regionName,"
            "city,zip,lat,lon,timezone,isp,org,as,query"
        ),
        is_valid=lambda payload: payload.get("status") == "success",
        mapping={
            "country": "country",
            "country_code": "countryCode",
            "region": "region",
            "region_name": "regionName",
            "city": "city",
            "zip": "zip",
            "lat": "lat",
            "lon": "lon",
            "timezone": "timezone",
            "isp": "isp",
            "org": "org",
            "as_name": "as",
        },
    ),
    "ipapi": GeoProvider(
        name="ipapi",
        url_template="https://ipapi.co/{ip}/json/",
        is_valid=lambda payload: "error" not in payload,
        mapping={
            "country": "country_name",
            "country_code": "country_code",
            "region": "region_code",
            "region_name": "region",
            "city": "city",
            "zip": "postal",
            "lat": "latitude",
            "lon": "longitude",
            "timezone": "timezone",
            "isp": "org",
            "org": "org",
            "as_name": "asn",
        },
    ),
    "ipwhois": GeoProvider(
        name="ipwhois",
        url_template="https://ipwhois.app/json/{ip}",
        is_valid=lambda payload: payload.get("success") is True,
        mapping={
            "country": "country",
            "country_code": "country_code",
            "region": "region",
            "region_name": "region",
            "city": "city",
            "zip": "postal",
            "lat": "latitude",
            "lon": "longitude",
            "timezone": "timezone",
            "isp": "isp",
            "org": "org",
            "as_name": "asn",
        },
    ),
    "freeipapi": GeoProvider(
        name="freeipapi",
        url_template="https://freeipapi.com/api/json/{ip}",
        is_valid=lambda payload: "error" not in payload,
        mapping={
            "country": "countryName",
            "country_code": "countryCode",
            "region": "regionName",
            "region_name": "regionName",
            "city": "cityName",
            "zip": "zipCode",
            "lat": "latitude",
            "lon": "longitude",
            "timezone": "timeZone",
            "isp": "isp",
            "org": "org",
            "as_name": None,
        },
    ),
}


class GeolocationService:
    """IP to location lookups with caching and provider fallback."""

    CACHE_PREFIX = CacheManager.PREFIX_GEOLOCATION

    def __init__(
        self,
        cache: CacheManager | None = None,
        providers: list[str] | None = None,
        cache_ttl_days: int | None = None,
        http_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cache = cache if cache is not None else cache_manager
        names = providers if providers is not None else settings.geolocation_providers
        self.providers = [PROVIDERS[name] for name in names if name in PROVIDERS]
        self.cache_ttl_days = cache_ttl_days if cache_ttl_days is not None else settings.geolocation_cache_ttl_days
        self.http_timeout = http_timeout
        self._transport = transport

    @staticmethod
    def is_valid_ip(ip: Optional[str]) -> bool:
        if not ip:
            return False
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            return False
        return True

    @staticmethod
    def is_private_ip(ip: str) -> bool:
        address = ipaddress.ip_address(ip)
        return address.is_private or address.is_loopback or address.is_reserved or address.is_link_local

    @staticmethod
    def development_location(ip: str) -> dict[str, Any]:
        for prefix, location in DEVELOPMENT_LOCATIONS:
            if ip.startswith(prefix):
                return dict(location)
        return dict(DEFAULT_DEVELOPMENT_LOCATION)

    def cache_key(self, ip: str) -> str:
        return f"{self.CACHE_PREFIX}{ip}"

    async def lookup(self, ip: Optional[str]) -> dict[str, Any]:
        """
        Resolve ``ip`` to a location dict with the keys in ``LOCATION_FIELDS``.

        Args:
            ip: IPv4 or IPv6 address

        Returns:
            Location snapshot; the unknown location when nothing resolves
        """
        if not self.is_valid_ip(ip):
            logger.warning("Invalid IP format: %s", ip)
            record_geolocation_lookup("unknown")
            return unknown_location()

        if self.is_private_ip(ip):
            record_geolocation_lookup("private")
            return self.development_location(ip)

        cached = await self.cache.get(self.cache_key(ip))
        if cached:
            record_geolocation_lookup("cache")
            return cached

        location = await self._query_providers(ip)
        if location is None:
            logger.warning("No geolocation data found for IP: %s, using default", ip)
            record_geolocation_lookup("unknown")
            return unknown_location()

        await self.cache.set(self.cache_key(ip), location, ttl=self.cache_ttl_days * 86400)
        record_geolocation_lookup("provider")
        return location

    async def _query_providers(self, ip: str) -> Optional[dict[str, Any]]:
        async with httpx.AsyncClient(
            timeout=self.http_timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        ) as client:
            for provider in self.providers:
                try:
                    location = await self._query_provider(client, provider, ip)
                except GeolocationUnavailableError as e:
                    logger.warning("%s", e.message)
                    continue
                if is_known_location(location):
                    return location
        return None

    @staticmethod
    async def _query_provider(client: httpx.AsyncClient, provider: GeoProvider, ip: str) -> dict[str, Any]:
        try:
            response = await client.get(provider.url_for(ip))
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GeolocationUnavailableError(provider.name, str(e)) from e

        if not isinstance(payload, dict) or not provider.is_valid(payload):
            raise GeolocationUnavailableError(provider.name, "invalid response")
        return provider.format(payload)


geolocation_service = GeolocationService()
