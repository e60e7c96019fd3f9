"""
HEARDROP Backend — Back-office Route Handlers
===============================================

What:  Admin-only endpoints: dashboard, security audit log, lockouts,
       the contact inbox, CSV imports and exports, job triggers, brand
       artwork and storage housekeeping.
Who:   The admin back-office.

Every route requires the `admin` role (router-level dependency).

Import Flow:
    POST /api/admin/import/{kind}/preview   parse + validate, nothing written
    POST /api/admin/import/{kind}           insert the valid rows
    kind = shops | brands | drops; the CSV is sent as a multipart `file`.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session, utcnow
from heardrop.dependencies import get_current_user, require_role
from heardrop.exceptions import ValidationError
from heardrop.models.user import User
from heardrop.schemas.admin import (
    AuditLogPage,
    DashboardStats,
    ImportPreview,
    ImportReport,
    LockedAccount,
    LockedIp,
)
from heardrop.schemas.brand import BrandArtworkResponse
from heardrop.schemas.common import ErrorResponse, MessageResponse
from heardrop.schemas.contact import ContactResolveUpdate, ContactSubmissionResponse, InquiryType
from heardrop.schemas.drop import AffiliateSummary
from heardrop.services.admin_service import admin_service
from heardrop.services.audit_service import audit_service
from heardrop.services.auth_service import auth_service
from heardrop.services.brand_service import brand_service
from heardrop.services.contact_service import contact_service
from heardrop.services.drop_service import drop_service
from heardrop.services.import_service import import_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_role("admin"))],
    responses={
        401: {"description": "Not signed in", "model": ErrorResponse},
        403: {"description": "Admin role required", "model": ErrorResponse},
    },
)

ImportKind = Literal["shops", "brands", "drops"]
MAX_CSV_BYTES = 2 * 1024 * 1024


def _attachment(body: str, media_type: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _read_csv(file: UploadFile) -> str:
    try:
        raw = await file.read()
    finally:
        await file.close()
    if len(raw) > MAX_CSV_BYTES:
        raise ValidationError(message="CSV file must be 2MB or smaller", field="file")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError(message="CSV file must be UTF-8 encoded", field="file")


# ── Dashboard ─────────────────────────────────────────────────────────────

@router.get("/stats", response_model=DashboardStats, summary="Back-office counters")
async def stats(db: AsyncSession = Depends(get_db_session)) -> DashboardStats:
    return await admin_service.dashboard(db)


# ── Security audit log ────────────────────────────────────────────────────

@router.get("/audit-log", response_model=AuditLogPage, summary="Security events, newest first")
async def audit_log(
    response: Response,
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    event_type: Optional[str] = Query(default=None),
    user_email: Optional[str] = Query(default=None, description="Substring match"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
) -> AuditLogPage:
    page = await audit_service.list_events(
        db,
        start_date=start_date,
        end_date=end_date,
        event_type=event_type,
        user_email=user_email,
        limit=limit,
        offset=offset,
    )
    response.headers["X-Total-Count"] = str(page.total)
    return page


@router.get(
    "/audit-log/export",
    response_class=Response,
    summary="Download the audit log as CSV or JSON",
)
async def export_audit_log(
    export_format: Literal["csv", "json"] = Query(default="csv", alias="format"),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    event_type: Optional[str] = Query(default=None),
    user_email: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    body, media_type = await audit_service.export_events(
        db,
        export_format=export_format,
        start_date=start_date,
        end_date=end_date,
        event_type=event_type,
        user_email=user_email,
    )
    filename = f"security-audit-log-{utcnow().date().isoformat()}.{export_format}"
    return _attachment(body, media_type, filename)


# ── Lockouts ──────────────────────────────────────────────────────────────

@router.get("/locks/accounts", response_model=List[LockedAccount], summary="Currently locked accounts")
async def locked_accounts(db: AsyncSession = Depends(get_db_session)) -> List[LockedAccount]:
    return await auth_service.list_locked_accounts(db)


@router.get("/locks/ips", response_model=List[LockedIp], summary="Currently locked IPs")
async def locked_ips(db: AsyncSession = Depends(get_db_session)) -> List[LockedIp]:
    return await auth_service.list_locked_ips(db)


@router.delete("/locks/accounts/{attempt_id}", response_model=MessageResponse, summary="Unlock an account")
async def unlock_account(
    attempt_id: UUID,
    admin: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.unlock_account(db, attempt_id, admin)
    return MessageResponse(message="Account unlocked")


@router.delete("/locks/ips/{attempt_id}", response_model=MessageResponse, summary="Unlock an IP")
async def unlock_ip(
    attempt_id: UUID,
    admin: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.unlock_ip(db, attempt_id, admin)
    return MessageResponse(message="IP unlocked")


# ── Contact inbox ─────────────────────────────────────────────────────────

@router.get(
    "/contact",
    response_model=List[ContactSubmissionResponse],
    summary="Contact-form messages, newest first",
)
async def contact_inbox(
    resolved: Optional[bool] = Query(default=None),
    inquiry_type: Optional[InquiryType] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db_session),
) -> List[ContactSubmissionResponse]:
    return await contact_service.list_submissions(
        db, resolved=resolved, inquiry_type=inquiry_type, limit=limit
    )


@router.patch(
    "/contact/{submission_id}",
    response_model=ContactSubmissionResponse,
    responses={404: {"description": "Submission not found", "model": ErrorResponse}},
    summary="Mark a contact message resolved or open",
)
async def resolve_contact(
    submission_id: UUID,
    payload: ContactResolveUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> ContactSubmissionResponse:
    return await contact_service.set_resolved(db, submission_id, payload.is_resolved)


@router.put(
    "/users/{user_id}/roles/{role}",
    response_model=MessageResponse,
    summary="Grant a role to a user",
)
async def grant_role(
    user_id: UUID,
    role: str,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.grant_role(db, user_id, role)
    return MessageResponse(message=f"Role '{role}' granted")


# ── Imports ───────────────────────────────────────────────────────────────

@router.post(
    "/import/{kind}/preview",
    response_model=ImportPreview,
    summary="Validate a CSV without writing anything",
)
async def preview_import(
    kind: ImportKind,
    file: UploadFile = File(..., description="UTF-8 CSV with a header row"),
    db: AsyncSession = Depends(get_db_session),
) -> ImportPreview:
    text = await _read_csv(file)
    preview = getattr(import_service, f"preview_{kind}")
    return await preview(db, text)


@router.post("/import/{kind}", response_model=ImportReport, summary="Import the valid CSV rows")
async def run_import(
    kind: ImportKind,
    file: UploadFile = File(..., description="UTF-8 CSV with a header row"),
    db: AsyncSession = Depends(get_db_session),
) -> ImportReport:
    text = await _read_csv(file)
    importer = getattr(import_service, f"import_{kind}")
    return await importer(db, text)


# ── Exports ───────────────────────────────────────────────────────────────

@router.get("/exports/brands", response_class=Response, summary="Active brands as CSV")
async def export_brands(db: AsyncSession = Depends(get_db_session)) -> Response:
    body = await admin_service.export_brands_csv(db)
    return _attachment(body, "text/csv", f"heardrop-brands-{utcnow().date().isoformat()}.csv")


@router.get("/exports/shops", response_class=Response, summary="Active shops as CSV")
async def export_shops(db: AsyncSession = Depends(get_db_session)) -> Response:
    body = await admin_service.export_shops_csv(db)
    return _attachment(body, "text/csv", f"heardrop-shops-{utcnow().date().isoformat()}.csv")


@router.get(
    "/affiliate-summary",
    response_model=List[AffiliateSummary],
    summary="Affiliate clicks and code copies per drop",
)
async def affiliate_summary(
    since: Optional[datetime] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> List[AffiliateSummary]:
    return await drop_service.affiliate_summary(db, since=since)


# ── Jobs & maintenance ────────────────────────────────────────────────────

@router.post(
    "/jobs/{name}",
    response_model=Dict[str, Any],
    responses={400: {"description": "Unknown job", "model": ErrorResponse}},
    summary="Run a scheduled job now",
    description=(
        "Jobs: refresh_drop_statuses, dispatch_drop_reminders, "
        "dispatch_favorite_brand_drops, geocode_shops."
    ),
)
async def run_job(name: str, db: AsyncSession = Depends(get_db_session)) -> Dict[str, Any]:
    report = await admin_service.run_job(db, name)
    return report.model_dump(mode="json")


@router.post(
    "/brands/{brand_id}/artwork",
    response_model=BrandArtworkResponse,
    responses={503: {"description": "Image generator unavailable", "model": ErrorResponse}},
    summary="Generate a logo and banner for a brand",
)
async def generate_artwork(
    brand_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> BrandArtworkResponse:
    return await brand_service.generate_artwork(db, brand_id)


@router.post(
    "/maintenance/cleanup-files",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete stored files nothing references",
)
async def cleanup_files(db: AsyncSession = Depends(get_db_session)) -> MessageResponse:
    removed = await admin_service.cleanup_orphaned_files(db)
    return MessageResponse(message=f"Removed {len(removed)} orphaned files")
