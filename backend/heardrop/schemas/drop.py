"""
HEARDROP Backend — Drop Schemas
=================================
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

DropStatus = Literal["upcoming", "live", "ended"]


class DropCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, max_length=220)
    brand_id: Optional[uuid.UUID] = None
    shop_id: Optional[uuid.UUID] = None
    release_date: datetime
    status: DropStatus = "upcoming"
    description: Optional[str] = None
    image_url: Optional[str] = None
    product_images: List[str] = Field(default_factory=list)
    video_url: Optional[str] = None
    affiliate_link: Optional[str] = None
    discount_code: Optional[str] = Field(default=None, max_length=100)
    is_featured: bool = False
    is_pro_exclusive: bool = False


class DropUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, max_length=220)
    brand_id: Optional[uuid.UUID] = None
    shop_id: Optional[uuid.UUID] = None
    release_date: Optional[datetime] = None
    status: Optional[DropStatus] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    product_images: Optional[List[str]] = None
    video_url: Optional[str] = None
    affiliate_link: Optional[str] = None
    discount_code: Optional[str] = Field(default=None, max_length=100)
    is_featured: Optional[bool] = None
    is_pro_exclusive: Optional[bool] = None


class DropResponse(BaseModel):
    """
    `locked` is true when the drop is Pro-exclusive and the viewer has no
    active Pro; affiliate_link and discount_code are then withheld.
    """
    id: uuid.UUID
    title: str
    slug: str
    brand_id: Optional[uuid.UUID] = None
    brand_name: Optional[str] = None
    shop_id: Optional[uuid.UUID] = None
    release_date: datetime
    status: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    product_images: List[str] = Field(default_factory=list)
    video_url: Optional[str] = None
    affiliate_link: Optional[str] = None
    discount_code: Optional[str] = None
    is_featured: bool = False
    is_pro_exclusive: bool = False
    locked: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CalendarDay(BaseModel):
    date: str = Field(description="ISO date, YYYY-MM-DD (UTC)")
    drops: List[DropResponse]


class DropCalendarResponse(BaseModel):
    year: int
    month: int
    days: List[CalendarDay]


class StatusRefreshReport(BaseModel):
    went_live: int
    ended: int


class AffiliateEventRequest(BaseModel):
    drop_id: uuid.UUID
    event_type: Literal["affiliate_click", "discount_code_copy"]
    referrer: Optional[str] = Field(default=None, max_length=500)


class AffiliateSummary(BaseModel):
    drop_id: uuid.UUID
    title: str
    clicks: int
    copies: int
    total: int
    last_event_at: Optional[datetime] = None
