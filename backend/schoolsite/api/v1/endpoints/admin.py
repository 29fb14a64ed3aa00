from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsite.core.database import get_db
from schoolsite.models.user import User
from schoolsite.modules.auth.dependencies import get_optional_user, get_current_admin
from schoolsite.schemas.admin import AdminStatusResponse, GrantAdminRequest, AuditLogResponse
from schoolsite.schemas.storage import SweepResult
from schoolsite.services.admin_service import grant_admin, is_current_user_admin
from schoolsite.services.audit_service import list_audit_logs
from schoolsite.services.maintenance_service import sweep_orphans_as_admin
from schoolsite.services.storage_service import ObjectStorage, get_object_storage

router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.get("/status", response_model=AdminStatusResponse)
async def admin_status(current_user: Optional[User] = Depends(get_optional_user)):
    """Whether the caller is an admin. Never fails; signed-out callers get false."""
    return AdminStatusResponse(is_admin=is_current_user_admin(current_user))


@router.post("/grant", status_code=status.HTTP_204_NO_CONTENT)
async def grant(
    body: GrantAdminRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Make a user an admin (or claim the bootstrap admin account)"""
    await grant_admin(db, current_user, body.email, ip_address=_client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def audit_logs(
    limit: int = Query(50, ge=1, le=500),
    current_admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Most recent admin actions"""
    return await list_audit_logs(db, limit=limit)


@router.post("/storage/sweep", response_model=SweepResult)
async def sweep_storage(
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Delete images no record references"""
    deleted = await sweep_orphans_as_admin(db, current_user, storage, ip_address=_client_ip(request))
    return SweepResult(deleted=deleted)
