"""
HEARDROP Backend — Notification, Favorites and Reminder Schemas
=================================================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from heardrop.schemas.brand import BrandResponse
from heardrop.schemas.drop import DropResponse
from heardrop.schemas.shop import ShopResponse


class NotificationResponse(BaseModel):
    id: uuid.UUID
    notification_type: str
    title: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="payload")
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class DispatchReport(BaseModel):
    processed: int
    skipped: int


class FavoriteIdsResponse(BaseModel):
    brand_ids: List[uuid.UUID]
    shop_ids: List[uuid.UUID]


class FavoritesResponse(BaseModel):
    brands: List[BrandResponse]
    shops: List[ShopResponse]


class FavoriteToggleResponse(BaseModel):
    favorited: bool


class ReminderResponse(BaseModel):
    drop_id: uuid.UUID
    is_notified: bool
    created_at: datetime
    drop: DropResponse
