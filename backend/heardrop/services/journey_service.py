"""
HEARDROP Backend — Journey Planner Service
============================================

What:  Turns a list of shop ids into a walkable trip: ordered stops with
       straight-line legs, a real Mapbox walking route, saved journeys and
       a shareable text summary.
Who:   The /api/journeys routes.

Stops that cannot be placed on a map (unknown id, inactive shop, missing
coordinates) are dropped from the plan and listed in `skipped` instead of
failing the whole request.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import utcnow
from heardrop.exceptions import NotFoundError, ValidationError
from heardrop.models.journey import SavedJourney
from heardrop.models.user import User
from heardrop.schemas.journey import (
    Coordinates,
    JourneyPlanResponse,
    JourneyStop,
    RouteResponse,
    SavedJourneyResponse,
    ShareTextResponse,
)
from heardrop.services.geo import haversine_km
from heardrop.services.mapbox_service import MapboxService, mapbox_service
from heardrop.services.shop_service import shop_service

logger = logging.getLogger(__name__)

SHARE_FOOTER = "Plan your streetwear trip at heardrop.app"


def default_journey_name(now: datetime) -> str:
    return f"Route - {now.day} {now.strftime('%b %Y')}"


def share_text(stop_names: Sequence[str]) -> str:
    if not stop_names:
        raise ValidationError(message="Add at least one stop to share your route", field="stop_ids")
    lines = [f"{index}. {name}" for index, name in enumerate(stop_names, start=1)]
    return "My HEARDROP Route:\n" + "\n".join(lines) + f"\n\n{SHARE_FOOTER}"


class JourneyService:

    async def plan(
        self,
        db: AsyncSession,
        stop_ids: Sequence[uuid.UUID],
        origin: Optional[Coordinates] = None,
        sort_by_distance: bool = False,
    ) -> JourneyPlanResponse:
        if sort_by_distance and origin is None:
            raise ValidationError(message="Sorting by distance needs an origin", field="origin")

        stops, skipped = await self._load_stops(db, stop_ids)
        if sort_by_distance:
            here = (origin.latitude, origin.longitude)
            stops.sort(key=lambda s: haversine_km(here, (s.latitude, s.longitude)))

        total = _fill_leg_distances(stops, origin)
        return JourneyPlanResponse(stops=stops, skipped=skipped, total_distance_km=round(total, 3))

    async def route(
        self,
        db: AsyncSession,
        stop_ids: Sequence[uuid.UUID],
        origin: Coordinates,
        router: Optional[MapboxService] = None,
    ) -> RouteResponse:
        """
        Walking route from `origin` through the stops, in the given order.

        Raises:
            ValidationError: none of the stops can be placed on the map
            UpstreamServiceError / CircuitBreakerOpenError: Mapbox failure
        """
        router = router or mapbox_service
        stops, skipped = await self._load_stops(db, stop_ids)
        if not stops:
            raise ValidationError(
                message="At least one stop with a known location is required",
                field="stop_ids",
                context={"skipped": [str(s) for s in skipped]},
            )
        _fill_leg_distances(stops, origin)

        waypoints = [(origin.latitude, origin.longitude)] + [
            (stop.latitude, stop.longitude) for stop in stops
        ]
        route = await router.walking_route(waypoints)
        logger.info(
            "Walking route: %d stops, %.0fm, %.0fs", len(stops), route["distance"], route["duration"]
        )
        return RouteResponse(**route, stops=stops)

    # ── Saved journeys ────────────────────────────────────────────────────

    async def save(
        self,
        db: AsyncSession,
        user: User,
        stop_ids: Sequence[uuid.UUID],
        name: Optional[str] = None,
    ) -> SavedJourneyResponse:
        stops, _ = await self._load_stops(db, stop_ids)
        if not stops:
            raise ValidationError(message="A journey needs at least one stop", field="stop_ids")
        _fill_leg_distances(stops, None)

        journey = SavedJourney(
            user_id=user.id,
            name=(name or "").strip() or default_journey_name(utcnow()),
            stops=[stop.model_dump(mode="json") for stop in stops],
        )
        db.add(journey)
        await db.flush()
        await db.refresh(journey)
        logger.info("Journey saved: %s (%d stops)", journey.id, len(stops))
        return SavedJourneyResponse.model_validate(journey)

    async def list_saved(self, db: AsyncSession, user: User) -> List[SavedJourneyResponse]:
        result = await db.execute(
            select(SavedJourney)
            .where(SavedJourney.user_id == user.id)
            .order_by(SavedJourney.created_at.desc())
        )
        return [SavedJourneyResponse.model_validate(j) for j in result.scalars().all()]

    async def get_saved(
        self, db: AsyncSession, user: User, journey_id: uuid.UUID
    ) -> SavedJourneyResponse:
        return SavedJourneyResponse.model_validate(await self._owned(db, user, journey_id))

    async def delete_saved(self, db: AsyncSession, user: User, journey_id: uuid.UUID) -> None:
        journey = await self._owned(db, user, journey_id)
        await db.delete(journey)
        await db.flush()

    async def share(self, db: AsyncSession, stop_ids: Sequence[uuid.UUID]) -> ShareTextResponse:
        stops, _ = await self._load_stops(db, stop_ids, require_coordinates=False)
        return ShareTextResponse(text=share_text([stop.name for stop in stops]))

    # ── Internals ─────────────────────────────────────────────────────────

    async def _owned(self, db: AsyncSession, user: User, journey_id: uuid.UUID) -> SavedJourney:
        journey = await db.get(SavedJourney, journey_id)
        if journey is None or journey.user_id != user.id:
            raise NotFoundError(resource="journey", resource_id=str(journey_id))
        return journey

    async def _load_stops(
        self,
        db: AsyncSession,
        stop_ids: Sequence[uuid.UUID],
        require_coordinates: bool = True,
    ) -> Tuple[List[JourneyStop], List[uuid.UUID]]:
        """Shops in request order; duplicates collapse to the first occurrence."""
        shops = await shop_service.get_many(db, stop_ids)
        stops: List[JourneyStop] = []
        skipped: List[uuid.UUID] = []
        seen = set()
        for shop_id in stop_ids:
            if shop_id in seen:
                continue
            seen.add(shop_id)
            shop = shops.get(shop_id)
            if shop is None or not shop.is_active:
                skipped.append(shop_id)
                continue
            if require_coordinates and not shop.has_coordinates:
                skipped.append(shop_id)
                continue
            stops.append(
                JourneyStop(
                    id=shop.id,
                    name=shop.name,
                    address=shop.address,
                    city=shop.city,
                    latitude=shop.latitude if shop.latitude is not None else 0.0,
                    longitude=shop.longitude if shop.longitude is not None else 0.0,
                )
            )
        return stops, skipped


def _fill_leg_distances(stops: List[JourneyStop], origin: Optional[Coordinates]) -> float:
    """Set distance_from_previous_km on each stop; returns the total."""
    total = 0.0
    previous = (origin.latitude, origin.longitude) if origin else None
    for stop in stops:
        here = (stop.latitude, stop.longitude)
        if previous is not None:
            leg = haversine_km(previous, here)
            stop.distance_from_previous_km = round(leg, 3)
            total += leg
        previous = here
    return total


journey_service = JourneyService()
