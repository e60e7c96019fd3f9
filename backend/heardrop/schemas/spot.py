"""
HEARDROP Backend — Street Spotted Schemas
===========================================
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class SpotPostResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    author_name: Optional[str] = None
    image_url: str
    caption: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    style_tags: List[str] = Field(default_factory=list)
    status: str
    brand_ids: List[uuid.UUID] = Field(default_factory=list)
    like_count: int = 0
    user_liked: bool = False
    created_at: datetime


class SpotFeedResponse(BaseModel):
    posts: List[SpotPostResponse]


class SpotLikeResponse(BaseModel):
    post_id: uuid.UUID
    liked: bool
    like_count: int


class ModerationRequest(BaseModel):
    status: Literal["approved", "rejected"]
