"""
HEARDROP Backend — Shop Schemas
=================================

Public responses never include a shop's e-mail or phone number; those
are only on `ShopAdminResponse`.
"""

import uuid
from datetime import datetime
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, Field

from heardrop.models.brand import CATEGORIES


def _validate_category(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    lowered = value.lower()
    if lowered not in CATEGORIES:
        raise ValueError(f"Unknown category '{value}'. Must be one of: {', '.join(CATEGORIES)}")
    return lowered


Category = Annotated[Optional[str], AfterValidator(_validate_category)]


class ShopCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, max_length=220)
    brand_id: Optional[uuid.UUID] = None
    category: Category = None
    address: str = Field(min_length=1, max_length=300)
    city: str = Field(min_length=1, max_length=120)
    country: str = Field(min_length=1, max_length=120)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    description: Optional[str] = None
    image_url: Optional[str] = None
    official_site: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[Dict[str, str]] = None
    is_unique_shop: bool = False
    is_active: bool = True


class ShopUpdate(BaseModel):
    """Partial update: only fields present in the request body are applied."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, max_length=220)
    brand_id: Optional[uuid.UUID] = None
    category: Category = None
    address: Optional[str] = Field(default=None, min_length=1, max_length=300)
    city: Optional[str] = Field(default=None, min_length=1, max_length=120)
    country: Optional[str] = Field(default=None, min_length=1, max_length=120)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    description: Optional[str] = None
    image_url: Optional[str] = None
    official_site: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[Dict[str, str]] = None
    is_unique_shop: Optional[bool] = None
    is_active: Optional[bool] = None


class ShopResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    brand_id: Optional[uuid.UUID] = None
    brand_name: Optional[str] = None
    category: Optional[str] = None
    address: str
    city: str
    country: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    official_site: Optional[str] = None
    opening_hours: Optional[Dict[str, str]] = None
    is_unique_shop: bool = False
    is_active: bool = True
    distance_km: Optional[float] = Field(
        default=None, description="Great-circle distance from the requested point"
    )

    model_config = {"from_attributes": True}


class ShopAdminResponse(ShopResponse):
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ShopCluster(BaseModel):
    """
    One grid cell of the map at a given zoom.

    shop_ids is only filled for single-shop cells so the client can render
    a pin instead of a bubble.
    """
    latitude: float
    longitude: float
    count: int
    shop_ids: List[uuid.UUID] = Field(default_factory=list)


class ShopClusterResponse(BaseModel):
    zoom: int
    cell_size: float
    clusters: List[ShopCluster]


class FacetCount(BaseModel):
    value: str
    count: int


class FailedGeocode(BaseModel):
    id: uuid.UUID
    name: str
    reason: str


class GeocodeReport(BaseModel):
    message: str
    total: int
    updated: int
    failed: int
    failed_shops: List[FailedGeocode] = Field(default_factory=list)
