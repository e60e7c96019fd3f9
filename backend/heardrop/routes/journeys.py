"""
HEARDROP Backend — Journey Planner Route Handlers
===================================================

What:  Plan a shop-hopping walk, fetch the Mapbox walking route, save,
       list and delete journeys, and build share text.
Who:   The Journey screen.

Planning and sharing work anonymously; saved journeys belong to a user.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.dependencies import get_current_user
from heardrop.models.user import User
from heardrop.schemas.common import ErrorResponse
from heardrop.schemas.journey import (
    JourneyPlanRequest,
    JourneyPlanResponse,
    RouteRequest,
    RouteResponse,
    SavedJourneyResponse,
    SaveJourneyRequest,
    ShareTextRequest,
    ShareTextResponse,
)
from heardrop.services.journey_service import journey_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/journeys", tags=["Journeys"])


@router.post(
    "/plan",
    response_model=JourneyPlanResponse,
    summary="Order stops and compute straight-line legs",
)
async def plan(
    payload: JourneyPlanRequest,
    db: AsyncSession = Depends(get_db_session),
) -> JourneyPlanResponse:
    return await journey_service.plan(
        db, payload.stop_ids, origin=payload.origin, sort_by_distance=payload.sort_by_distance
    )


@router.post(
    "/route",
    response_model=RouteResponse,
    responses={
        400: {"description": "No routable stops", "model": ErrorResponse},
        503: {"description": "Mapbox unavailable", "model": ErrorResponse},
    },
    summary="Walking route through the stops",
)
async def route(
    payload: RouteRequest,
    db: AsyncSession = Depends(get_db_session),
) -> RouteResponse:
    return await journey_service.route(db, payload.stop_ids, payload.origin)


@router.post("/share", response_model=ShareTextResponse, summary="Shareable route text")
async def share(
    payload: ShareTextRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ShareTextResponse:
    return await journey_service.share(db, payload.stop_ids)


@router.post(
    "",
    response_model=SavedJourneyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a journey",
)
async def save(
    payload: SaveJourneyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SavedJourneyResponse:
    return await journey_service.save(db, user, payload.stop_ids, name=payload.name)


@router.get("", response_model=List[SavedJourneyResponse], summary="Your saved journeys")
async def list_saved(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[SavedJourneyResponse]:
    return await journey_service.list_saved(db, user)


@router.get(
    "/{journey_id}",
    response_model=SavedJourneyResponse,
    responses={404: {"description": "Journey not found", "model": ErrorResponse}},
    summary="One saved journey",
)
async def get_saved(
    journey_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SavedJourneyResponse:
    return await journey_service.get_saved(db, user, journey_id)


@router.delete("/{journey_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a journey")
async def delete_saved(
    journey_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await journey_service.delete_saved(db, user, journey_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
