"""
HEARDROP Backend — Back-office Schemas
========================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AuditLogEntry(BaseModel):
    id: uuid.UUID
    event_type: str
    user_id: Optional[uuid.UUID] = None
    user_email: Optional[str] = None
    ip_address: Optional[str] = None
    event_data: Dict[str, Any] = Field(default_factory=dict)
    performed_by: Optional[uuid.UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditLogPage(BaseModel):
    entries: List[AuditLogEntry]
    total: int
    limit: int
    offset: int


class LockedAccount(BaseModel):
    id: uuid.UUID
    email: str
    attempts: int
    last_attempt: datetime
    locked_until: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LockedIp(BaseModel):
    id: uuid.UUID
    ip_address: str
    attempts: int
    last_attempt: datetime
    locked_until: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DashboardStats(BaseModel):
    brands: int
    active_brands: int
    shops: int
    shops_missing_coordinates: int
    drops_by_status: Dict[str, int]
    users: int
    pending_spots: int
    unresolved_contact: int
    security_events_24h: int


class ImportRowResult(BaseModel):
    """One parsed CSV row. `row` is the 1-based data row number (header excluded)."""
    row: int
    valid: bool
    errors: List[str] = Field(default_factory=list)
    data: Dict[str, str] = Field(default_factory=dict)
    slug: Optional[str] = None
    brand_match: Optional[str] = Field(
        default=None, description="Name of the existing brand the row links to, if any"
    )


class ImportPreview(BaseModel):
    rows: List[ImportRowResult]
    valid_count: int
    invalid_count: int


class ImportReport(BaseModel):
    imported: int
    failed: int
    skipped_invalid: int
    brands_created: int = 0
    errors: List[str] = Field(default_factory=list)
