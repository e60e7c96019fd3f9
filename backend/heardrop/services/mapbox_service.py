"""
HEARDROP Backend — Mapbox Service
===================================

What:  Forward geocoding for shops and walking directions for journeys.
Why:   Shops imported without coordinates need them before they can appear
       on the map, and the journey planner needs a real walking route.
How:   httpx against the Mapbox REST API, wrapped in tenacity retries and a
       circuit breaker.
Who:   ShopService.geocode_missing() and JourneyService.route().

Endpoints used:
    GET /geocoding/v5/mapbox.places/{query}.json?limit=1
        → features[0].center is [longitude, latitude]
    GET /directions/v5/mapbox/walking/{lng,lat;lng,lat;...}
        ?geometries=geojson&steps=true
        → routes[0] carries distance (m), duration (s), geometry and legs
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from heardrop.config import settings
from heardrop.exceptions import UpstreamServiceError, ValidationError
from heardrop.services.resilience import CircuitBreaker, is_transient_http_error

logger = logging.getLogger(__name__)

# Mapbox Directions accepts at most 25 coordinates per request
MAX_WAYPOINTS = 25

LatLng = Tuple[float, float]


class MapboxService:
    """
    Thin async client for the two Mapbox APIs HEARDROP uses.

    `transport` lets tests plug in httpx.MockTransport; production uses the
    default network transport.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = settings.mapbox_token if token is None else token
        self.api_url = (api_url or settings.mapbox_api_url).rstrip("/")
        self._transport = transport
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
            name="Mapbox",
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    # ── Geocoding ─────────────────────────────────────────────────────────

    async def geocode(self, address: str, city: str, country: str) -> Optional[LatLng]:
        """
        Resolve "address, city, country" to (latitude, longitude).

        Returns None when Mapbox finds nothing for the query.

        Raises:
            UpstreamServiceError: token missing or Mapbox failing after retries
            CircuitBreakerOpenError: too many recent Mapbox failures
        """
        query = ", ".join(part for part in (address, city, country) if part)
        url = f"{self.api_url}/geocoding/v5/mapbox.places/{quote(query, safe='')}.json"
        data = await self._call(url, {"limit": 1}, operation="geocode")

        features = data.get("features") or []
        if not features:
            logger.info("Geocoding returned no results for %r", query)
            return None

        lng, lat = features[0]["center"][:2]
        return float(lat), float(lng)

    # ── Directions ────────────────────────────────────────────────────────

    async def walking_route(self, waypoints: Sequence[LatLng]) -> Dict[str, Any]:
        """
        Walking directions through `waypoints` in order.

        Args:
            waypoints: (latitude, longitude) pairs; the first is the start.

        Returns:
            {distance, duration, geometry, steps, legs, bounds}
            steps are flattened across all legs; bounds is
            [[min_lng, min_lat], [max_lng, max_lat]] of the route geometry.
        """
        if len(waypoints) < 2:
            raise ValidationError(message="A walking route needs at least two points", field="stops")
        if len(waypoints) > MAX_WAYPOINTS:
            raise ValidationError(
                message=f"A walking route supports at most {MAX_WAYPOINTS} points",
                field="stops",
                context={"count": len(waypoints)},
            )

        coordinates = ";".join(f"{lng},{lat}" for lat, lng in waypoints)
        url = f"{self.api_url}/directions/v5/mapbox/walking/{coordinates}"
        data = await self._call(
            url, {"geometries": "geojson", "steps": "true"}, operation="directions"
        )

        routes = data.get("routes") or []
        if not routes:
            raise ValidationError(
                message="No walking route could be found between these stops",
                field="stops",
                context={"code": data.get("code")},
            )

        route = routes[0]
        legs = route.get("legs") or []
        steps: List[Dict[str, Any]] = []
        for leg_index, leg in enumerate(legs):
            for step in leg.get("steps") or []:
                maneuver = step.get("maneuver") or {}
                steps.append(
                    {
                        "leg": leg_index,
                        "instruction": maneuver.get("instruction", ""),
                        "name": step.get("name", ""),
                        "distance": step.get("distance", 0.0),
                        "duration": step.get("duration", 0.0),
                    }
                )

        geometry = route.get("geometry") or {"type": "LineString", "coordinates": []}
        return {
            "distance": route.get("distance", 0.0),
            "duration": route.get("duration", 0.0),
            "geometry": geometry,
            "steps": steps,
            "legs": [
                {
                    "distance": leg.get("distance", 0.0),
                    "duration": leg.get("duration", 0.0),
                    "summary": leg.get("summary", ""),
                }
                for leg in legs
            ],
            "bounds": _bounds(geometry.get("coordinates") or [], waypoints),
        }

    # ── Transport ─────────────────────────────────────────────────────────

    async def _call(self, url: str, params: Dict[str, Any], operation: str) -> Dict[str, Any]:
        """Circuit breaker + retry + error translation around one GET."""
        if not self.is_configured:
            raise UpstreamServiceError(
                message="Map services are not configured on this server",
                service="mapbox",
            )

        self.circuit_breaker.can_execute()
        start_time = time.time()

        try:
            data = await self._get_json(url, {**params, "access_token": self.token})
        except httpx.HTTPStatusError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "Mapbox %s failed with HTTP %d", operation, e.response.status_code
            )
            raise UpstreamServiceError(
                message="The map service rejected the request. Please try again later.",
                service="mapbox",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"operation": operation, "status": e.response.status_code},
            )
        except (httpx.HTTPError, ValueError) as e:
            self.circuit_breaker.record_failure()
            logger.error("Mapbox %s failed: %s", operation, str(e))
            raise UpstreamServiceError(
                message="The map service is temporarily unavailable. Please try again later.",
                service="mapbox",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"operation": operation, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        logger.debug("Mapbox %s completed in %.0fms", operation, (time.time() - start_time) * 1000)
        return data

    @retry(
        retry=retry_if_exception(is_transient_http_error),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get_json(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            timeout=settings.http_timeout, transport=self._transport
        ) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()


def _bounds(coordinates: Sequence[Sequence[float]], waypoints: Sequence[LatLng]) -> List[List[float]]:
    """[[min_lng, min_lat], [max_lng, max_lat]] over the geometry, or the waypoints if empty."""
    points = [(c[0], c[1]) for c in coordinates] or [(lng, lat) for lat, lng in waypoints]
    lngs = [p[0] for p in points]
    lats = [p[1] for p in points]
    return [[min(lngs), min(lats)], [max(lngs), max(lats)]]


mapbox_service = MapboxService()
