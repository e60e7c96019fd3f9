"""
HEARDROP Backend — Brand Schemas
==================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from heardrop.schemas.drop import DropResponse
from heardrop.schemas.shop import Category, ShopResponse


class BrandCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, max_length=220)
    category: Category = None
    country: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    history: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    official_website: Optional[str] = None
    instagram_url: Optional[str] = None
    tiktok_url: Optional[str] = None
    is_active: bool = True


class BrandUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, max_length=220)
    category: Category = None
    country: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    history: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    official_website: Optional[str] = None
    instagram_url: Optional[str] = None
    tiktok_url: Optional[str] = None
    is_active: Optional[bool] = None


class BrandResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    category: Optional[str] = None
    country: Optional[str] = None
    description: Optional[str] = None
    history: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    official_website: Optional[str] = None
    instagram_url: Optional[str] = None
    tiktok_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BrandDetailResponse(BrandResponse):
    """Brand page: the brand plus its shops, next drops and follower count."""
    shops: List[ShopResponse] = Field(default_factory=list)
    upcoming_drops: List[DropResponse] = Field(default_factory=list)
    favorite_count: int = 0


class BrandArtworkResponse(BaseModel):
    brand_id: uuid.UUID
    logo_url: str
    banner_url: str
