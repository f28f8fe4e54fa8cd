"""Drive-distance enrichment via the Google Maps Directions API.

Distances are looked up between the first pickup and the last delivery of a
load. Every failure mode (no key, network error, no route) degrades to
"unavailable" (``None``) so load creation is never blocked.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

import httpx

from load_insights.domain.enums import StopType
from load_insights.domain.schemas import LoadRecord, Stop

logger = logging.getLogger(__name__)

GOOGLE_DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"

METERS_TO_MILES = 0.000621371

_MAX_CACHE_SIZE = 5_000


def stop_address(stop: Stop) -> str:
    """Comma-joined non-empty address parts of a stop ("" when nothing usable)."""
    parts = [stop.address, stop.city, stop.state, stop.zip]
    return ", ".join(p.strip() for p in parts if p and p.strip())


def route_endpoints(stops: list[Stop]) -> tuple[Stop, Stop] | None:
    """First pickup and last delivery, or None if either is missing."""
    pickups = [s for s in stops if s.type == StopType.PICKUP]
    deliveries = [s for s in stops if s.type == StopType.DELIVERY]
    if not pickups or not deliveries:
        return None
    return pickups[0], deliveries[-1]


class DistanceService:
    """Async driving-distance lookups with an in-memory LRU cache."""

    def __init__(self, api_key: str, timeout: float = 10.0) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._cache: OrderedDict[str, int | None] = OrderedDict()

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def _normalize_key(self, origin: str, destination: str) -> str:
        return f"{origin.strip().lower()}|{destination.strip().lower()}"

    def _cache_get(self, key: str) -> tuple[bool, int | None]:
        """Return (hit, value). Moves item to end on hit (LRU)."""
        if key in self._cache:
            self._cache.move_to_end(key)
            return True, self._cache[key]
        return False, None

    def _cache_put(self, key: str, value: int | None) -> None:
        self._cache[key] = value
        self._cache.move_to_end(key)
        if len(self._cache) > _MAX_CACHE_SIZE:
            self._cache.popitem(last=False)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def driving_miles(self, origin: str, destination: str) -> int | None:
        """Driving distance in whole miles, or None when unavailable."""
        if not self.enabled or not origin.strip() or not destination.strip():
            return None

        cache_key = self._normalize_key(origin, destination)
        hit, cached = self._cache_get(cache_key)
        if hit:
            return cached

        params = {
            "origin": origin,
            "destination": destination,
            "key": self._api_key,
        }
        data = await self._fetch(params)
        if data is None:
            # Transport failures are not cached so a later sync can retry
            return None

        miles = self._parse_directions_response(data)
        if miles is not None:
            logger.info("Directions: %d miles from %s to %s", miles, origin, destination)
        self._cache_put(cache_key, miles)
        return miles

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch(self, params: dict) -> dict | None:
        """Execute the HTTP request to Google. None on any transport failure."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(GOOGLE_DIRECTIONS_URL, params=params)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Google Directions API HTTP error: %s", exc)
        except httpx.RequestError as exc:
            logger.warning("Google Directions API request failed: %s", exc)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected error during directions request: %s", exc)
        return None

    def _parse_directions_response(self, data: dict) -> int | None:
        """Sum the leg distances of the first route and convert to miles."""
        status = data.get("status")
        if status != "OK":
            if status not in ("ZERO_RESULTS", "NOT_FOUND"):
                logger.warning("Google Directions API returned status: %s", status)
            return None

        routes = data.get("routes")
        if not routes:
            return None

        meters = 0
        for leg in routes[0].get("legs", []):
            value = (leg.get("distance") or {}).get("value")
            if value is None:
                logger.warning("Missing leg distance in directions response")
                return None
            meters += value

        if meters <= 0:
            return None
        return round(meters * METERS_TO_MILES)


async def enrich_load(load: LoadRecord, service: DistanceService) -> LoadRecord:
    """Set ``miles`` and ``rpm`` on a load from its billable route.

    Leaves ``miles`` empty and ``rpm`` None when the route or distance is
    unavailable. Returns a new record; the input is not mutated.
    """
    endpoints = route_endpoints(load.stops)
    if endpoints is None:
        return load

    origin, destination = (stop_address(s) for s in endpoints)
    if not origin or not destination:
        return load

    try:
        miles = await service.driving_miles(origin, destination)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Distance lookup failed for load %s: %s", load.load_id, exc)
        return load

    if not miles:
        return load

    enriched = load.model_copy(update={"miles": str(miles)})
    return enriched.model_copy(update={"rpm": enriched.compute_rpm()})


def distance_service_from_settings() -> DistanceService:
    """Build the enricher from configuration (disabled without a key)."""
    from load_insights.app.config import get_settings

    settings = get_settings()
    if not settings.google_maps_api_key:
        logger.info("GOOGLE_MAPS_API_KEY not set; miles will be left empty")
    return DistanceService(
        settings.google_maps_api_key, timeout=settings.distance_timeout_seconds
    )
