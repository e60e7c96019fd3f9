"""
HEARDROP Backend — Journey Planner Schemas
============================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class JourneyPlanRequest(BaseModel):
    stop_ids: List[uuid.UUID] = Field(min_length=1, max_length=24)
    origin: Optional[Coordinates] = None
    sort_by_distance: bool = False


class JourneyStop(BaseModel):
    id: uuid.UUID
    name: str
    address: str
    city: str
    latitude: float
    longitude: float
    distance_from_previous_km: Optional[float] = Field(
        default=None, description="Straight-line distance from the previous stop (or origin)"
    )


class JourneyPlanResponse(BaseModel):
    stops: List[JourneyStop]
    skipped: List[uuid.UUID] = Field(
        default_factory=list, description="Unknown, inactive or unlocated shops left out"
    )
    total_distance_km: float = 0.0


class RouteRequest(BaseModel):
    stop_ids: List[uuid.UUID] = Field(min_length=1, max_length=24)
    origin: Coordinates


class RouteStep(BaseModel):
    leg: int
    instruction: str
    name: str = ""
    distance: float
    duration: float


class RouteLeg(BaseModel):
    distance: float
    duration: float
    summary: str = ""


class RouteResponse(BaseModel):
    """distance in metres, duration in seconds, geometry as GeoJSON LineString."""
    distance: float
    duration: float
    geometry: Dict[str, Any]
    steps: List[RouteStep]
    legs: List[RouteLeg]
    bounds: List[List[float]]
    stops: List[JourneyStop]


class SaveJourneyRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    stop_ids: List[uuid.UUID] = Field(min_length=1, max_length=24)


class SavedJourneyResponse(BaseModel):
    id: uuid.UUID
    name: str
    stops: List[JourneyStop]
    created_at: datetime

    model_config = {"from_attributes": True}


class ShareTextRequest(BaseModel):
    stop_ids: List[uuid.UUID] = Field(min_length=1, max_length=24)


class ShareTextResponse(BaseModel):
    text: str
