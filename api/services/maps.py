"""
Maps Service — Geocoding and drive times with Redis caching.

Optimization strategy:
  1. Geocode cache in Redis (30-day TTL)
  2. Pairwise drive-time cache (2-hour TTL), keyed on 4-decimal coordinates
  3. Haversine fallback when the routing provider is down (configurable)

The planner consumes this module through MapsGeocoder / MapsTravelEstimator.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config import settings
from services.errors import TravelEstimationError

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None
_http: httpx.AsyncClient | None = None

# Primary provider: Geoapify
GEOAPIFY_GEOCODE_URL = "https://api.geoapify.com/v1/geocode/search"
GEOAPIFY_ROUTING_URL = "https://api.geoapify.com/v1/routing"

# Fallback geocoder: Nominatim (OpenStreetMap)
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"

ROAD_FACTOR = 1.4


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class TravelEstimate:
    distance_meters: float
    duration_seconds: float
    source: str = "provider"


async def _get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


async def _get_http() -> httpx.AsyncClient:
    global _http
    if _http is None:
        _http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SEC)
    return _http


async def close_clients() -> None:
    """Release pooled HTTP/Redis connections (app shutdown)."""
    global _redis, _http
    if _http is not None:
        await _http.aclose()
        _http = None
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def _address_hash(address: str) -> str:
    """Normalize and hash an address for cache key."""
    normalized = " ".join(address.strip().lower().split())
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


def _latlng_hash(lat: float, lng: float) -> str:
    """Hash lat/lng to 4 decimal places for distance cache."""
    key = f"{lat:.4f},{lng:.4f}"
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def _cache_get(key: str) -> dict:
    try:
        r = await _get_redis()
        return await r.hgetall(key)
    except RedisError as e:
        logger.warning("Cache read failed for %s: %s", key, e)
        return {}


async def _cache_set(key: str, mapping: dict, ttl: int) -> None:
    try:
        r = await _get_redis()
        await r.hset(key, mapping={k: str(v) for k, v in mapping.items()})
        await r.expire(key, ttl)
    except RedisError as e:
        logger.warning("Cache write failed for %s: %s", key, e)


# ── Haversine Fallback ─────────────────────────────────────

def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Calculate straight-line distance in km using Haversine formula.
    Multiply by 1.4 road factor to approximate actual road distance.
    """
    R = 6371  # Earth radius in km
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    straight_line = R * c
    return round(straight_line * ROAD_FACTOR, 2)


def estimate_duration_seconds(distance_km: float, avg_speed_kmh: float | None = None) -> int:
    """Estimate drive seconds from distance at average speed."""
    speed = avg_speed_kmh or settings.AVG_SPEED_KMH
    return int(round(distance_km / speed * 3600))


# ── Geocoding ──────────────────────────────────────────────

def _parse_lat_lng(text: str) -> tuple[float, float] | None:
    """Parse a raw 'lat,lng' string (e.g. a dropped map pin)."""
    if not text or "," not in text:
        return None
    parts = text.strip().split(",", 1)
    try:
        lat, lng = float(parts[0].strip()), float(parts[1].strip())
    except ValueError:
        return None
    if -90 <= lat <= 90 and -180 <= lng <= 180:
        return (lat, lng)
    return None


async def _geocode_geoapify(http: httpx.AsyncClient, address: str) -> dict | None:
    resp = await http.get(
        GEOAPIFY_GEOCODE_URL,
        params={"text": address, "apiKey": settings.GEOAPIFY_API_KEY},
    )
    resp.raise_for_status()
    features = resp.json().get("features") or []
    if not features:
        return None
    props = features[0].get("properties", {}) or {}
    lat, lon = props.get("lat"), props.get("lon")
    if lat is None or lon is None:
        return None
    return {
        "lat": float(lat),
        "lng": float(lon),
        "formatted": props.get("formatted") or address,
    }


async def _geocode_nominatim(http: httpx.AsyncClient, address: str) -> dict | None:
    params = {"q": address, "format": "json", "limit": 1}
    if settings.NOMINATIM_COUNTRY_CODES:
        params["countrycodes"] = settings.NOMINATIM_COUNTRY_CODES
    resp = await http.get(
        NOMINATIM_URL,
        params=params,
        headers={"User-Agent": settings.NOMINATIM_USER_AGENT},
    )
    resp.raise_for_status()
    hits = resp.json()
    if not hits:
        return None
    return {
        "lat": float(hits[0]["lat"]),
        "lng": float(hits[0]["lon"]),
        "formatted": hits[0].get("display_name", address),
    }


async def geocode(address: str) -> dict | None:
    """
    Geocode an address to lat/lng. Uses Redis cache first,
    then Geoapify, then Nominatim (OSM) as free fallback.
    Handles "lat,lng" strings directly.

    Returns:
        {"lat": float, "lng": float, "formatted": str} or None
    """
    coords = _parse_lat_lng(address)
    if coords is not None:
        return {"lat": coords[0], "lng": coords[1], "formatted": address}

    cache_key = f"geo:{_address_hash(address)}"
    cached = await _cache_get(cache_key)
    if cached and "lat" in cached:
        return {
            "lat": float(cached["lat"]),
            "lng": float(cached["lng"]),
            "formatted": cached.get("formatted", address),
        }

    http = await _get_http()
    result = None

    if settings.GEOAPIFY_API_KEY:
        try:
            result = await _geocode_geoapify(http, address)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Geoapify geocode failed for '%s': %s", address[:60], e)

    if result is None:
        try:
            result = await _geocode_nominatim(http, address)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("Nominatim geocode failed for '%s': %s", address[:60], e)

    if result:
        await _cache_set(cache_key, result, settings.GEOCODE_CACHE_TTL_SEC)
    else:
        logger.info("No geocode result for '%s'", address[:60])

    return result


# ── Drive Time ─────────────────────────────────────────────

async def get_distance(
    origin_lat: float, origin_lng: float,
    dest_lat: float, dest_lng: float,
) -> dict:
    """
    Get distance and duration between two points.
    Uses cache, falls back to Haversine if the provider is unavailable
    and HAVERSINE_FALLBACK is enabled.

    Returns:
        {"distance_meters": float, "duration_seconds": float, "source": "cache"|"geoapify"|"haversine"}

    Raises:
        TravelEstimationError when no estimate can be produced.
    """
    if (origin_lat, origin_lng) == (dest_lat, dest_lng):
        return {"distance_meters": 0.0, "duration_seconds": 0.0, "source": "identity"}

    cache_key = f"dist:{_latlng_hash(origin_lat, origin_lng)}:{_latlng_hash(dest_lat, dest_lng)}"
    cached = await _cache_get(cache_key)
    if cached and "distance_meters" in cached:
        return {
            "distance_meters": float(cached["distance_meters"]),
            "duration_seconds": float(cached["duration_seconds"]),
            "source": "cache",
        }

    if settings.GEOAPIFY_API_KEY:
        try:
            http = await _get_http()
            resp = await http.get(
                GEOAPIFY_ROUTING_URL,
                params={
                    "waypoints": f"{origin_lat},{origin_lng}|{dest_lat},{dest_lng}",
                    "mode": "drive",
                    "apiKey": settings.GEOAPIFY_API_KEY,
                },
            )
            resp.raise_for_status()
            features = resp.json().get("features") or []
            if features:
                props = features[0].get("properties", {}) or {}
                distance_m = props.get("distance")
                time_s = props.get("time")
                if isinstance(distance_m, (int, float)) and isinstance(time_s, (int, float)):
                    result = {"distance_meters": float(distance_m), "duration_seconds": float(time_s)}
                    await _cache_set(cache_key, result, settings.DISTANCE_CACHE_TTL_SEC)
                    return {**result, "source": "geoapify"}
            logger.warning(
                "Geoapify routing returned no route for %s,%s → %s,%s",
                origin_lat, origin_lng, dest_lat, dest_lng,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Geoapify routing failed: %s", e)

    if not settings.HAVERSINE_FALLBACK:
        raise TravelEstimationError(
            f"No drive time for {origin_lat},{origin_lng} → {dest_lat},{dest_lng}"
        )

    distance_km = haversine_distance(origin_lat, origin_lng, dest_lat, dest_lng)
    return {
        "distance_meters": distance_km * 1000,
        "duration_seconds": float(estimate_duration_seconds(distance_km)),
        "source": "haversine",
    }


# ── Collaborator adapters ──────────────────────────────────

class MapsGeocoder:
    """Geocoder backed by geocode()."""

    async def resolve(self, address: str) -> Coordinates | None:
        result = await geocode(address)
        if result is None:
            return None
        return Coordinates(lat=result["lat"], lng=result["lng"])


class MapsTravelEstimator:
    """Travel estimator backed by get_distance()."""

    async def estimate(self, origin: Coordinates, dest: Coordinates) -> TravelEstimate:
        result = await get_distance(origin.lat, origin.lng, dest.lat, dest.lng)
        return TravelEstimate(
            distance_meters=result["distance_meters"],
            duration_seconds=result["duration_seconds"],
            source=result["source"],
        )
