"""Tests for the maps service (mocked Redis / HTTP)."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from config import settings
from services import maps
from services.errors import TravelEstimationError
from services.maps import (
    Coordinates,
    MapsGeocoder,
    MapsTravelEstimator,
    _parse_lat_lng,
    estimate_duration_seconds,
    get_distance,
    geocode,
    haversine_distance,
)


def _response(payload) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def test_haversine_applies_road_factor():
    # Springfield IL → Chicago is ~280 km straight line
    km = haversine_distance(39.7817, -89.6501, 41.8781, -87.6298)
    assert 280 * 1.3 < km < 300 * 1.5


def test_haversine_same_point():
    assert haversine_distance(39.78, -89.65, 39.78, -89.65) == 0


def test_estimate_duration_seconds():
    assert estimate_duration_seconds(40.0, avg_speed_kmh=40.0) == 3600
    assert estimate_duration_seconds(10.0, avg_speed_kmh=60.0) == 600


def test_parse_lat_lng():
    assert _parse_lat_lng("39.78, -89.65") == (39.78, -89.65)
    assert _parse_lat_lng("100 Main St, Springfield") is None
    assert _parse_lat_lng("95.0,10.0") is None


@pytest.mark.asyncio
async def test_geocode_cache_hit_skips_providers():
    with patch("services.maps._cache_get", new=AsyncMock(return_value={"lat": "39.1", "lng": "-89.2"})), \
         patch("services.maps._get_http") as mock_http:
        result = await geocode("100 Main St, Springfield, IL")

    assert result == {"lat": 39.1, "lng": -89.2, "formatted": "100 Main St, Springfield, IL"}
    mock_http.assert_not_called()


@pytest.mark.asyncio
async def test_geocode_falls_back_to_nominatim(monkeypatch):
    monkeypatch.setattr(settings, "GEOAPIFY_API_KEY", None)
    client = MagicMock()
    client.get = AsyncMock(return_value=_response([{"lat": "39.78", "lon": "-89.65", "display_name": "Springfield"}]))

    with patch("services.maps._cache_get", new=AsyncMock(return_value={})), \
         patch("services.maps._cache_set", new=AsyncMock()) as mock_set, \
         patch("services.maps._get_http", new=AsyncMock(return_value=client)):
        result = await geocode("100 Main St, Springfield, IL")

    assert result == {"lat": 39.78, "lng": -89.65, "formatted": "Springfield"}
    mock_set.assert_awaited_once()


@pytest.mark.asyncio
async def test_geocode_not_found_returns_none(monkeypatch):
    monkeypatch.setattr(settings, "GEOAPIFY_API_KEY", None)
    client = MagicMock()
    client.get = AsyncMock(side_effect=httpx.ConnectError("unreachable"))

    with patch("services.maps._cache_get", new=AsyncMock(return_value={})), \
         patch("services.maps._get_http", new=AsyncMock(return_value=client)):
        assert await MapsGeocoder().resolve("nowhere") is None


@pytest.mark.asyncio
async def test_distance_identity():
    result = await get_distance(39.78, -89.65, 39.78, -89.65)
    assert result == {"distance_meters": 0.0, "duration_seconds": 0.0, "source": "identity"}


@pytest.mark.asyncio
async def test_distance_from_geoapify(monkeypatch):
    monkeypatch.setattr(settings, "GEOAPIFY_API_KEY", "test-key")
    client = MagicMock()
    client.get = AsyncMock(return_value=_response({"features": [{"properties": {"distance": 5200, "time": 540}}]}))

    with patch("services.maps._cache_get", new=AsyncMock(return_value={})), \
         patch("services.maps._cache_set", new=AsyncMock()), \
         patch("services.maps._get_http", new=AsyncMock(return_value=client)):
        estimate = await MapsTravelEstimator().estimate(Coordinates(39.78, -89.65), Coordinates(39.80, -89.60))

    assert estimate.distance_meters == 5200.0
    assert estimate.duration_seconds == 540.0
    assert estimate.source == "geoapify"


@pytest.mark.asyncio
async def test_distance_haversine_fallback(monkeypatch):
    monkeypatch.setattr(settings, "GEOAPIFY_API_KEY", None)
    monkeypatch.setattr(settings, "HAVERSINE_FALLBACK", True)

    with patch("services.maps._cache_get", new=AsyncMock(return_value={})):
        result = await get_distance(39.78, -89.65, 39.88, -89.65)

    assert result["source"] == "haversine"
    assert result["distance_meters"] > 0
    assert result["duration_seconds"] > 0


@pytest.mark.asyncio
async def test_distance_without_fallback_raises(monkeypatch):
    monkeypatch.setattr(settings, "GEOAPIFY_API_KEY", None)
    monkeypatch.setattr(settings, "HAVERSINE_FALLBACK", False)

    with patch("services.maps._cache_get", new=AsyncMock(return_value={})):
        with pytest.raises(TravelEstimationError):
            await get_distance(39.78, -89.65, 39.88, -89.65)


@pytest.mark.asyncio
async def test_cache_errors_are_not_fatal():
    from redis.exceptions import ConnectionError as RedisConnectionError

    broken = MagicMock()
    broken.hgetall = AsyncMock(side_effect=RedisConnectionError("redis down"))
    with patch("services.maps._get_redis", new=AsyncMock(return_value=broken)):
        assert await maps._cache_get("geo:abc") == {}
