"""Audit trail for admin mutations"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsite.core.logging_config import logger
from schoolsite.models.audit_log import AuditLog


def record_admin_action(
    db: AsyncSession,
    admin_id: Optional[str],
    action: str,
    target_type: str,
    target_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """Stage an audit entry in the caller's transaction"""
    entry = AuditLog(
        admin_id=admin_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
        ip_address=ip_address,
    )
    db.add(entry)
    logger.log_admin_action(admin_id or "system", action, target_type, target_id)
    return entry


async def list_audit_logs(db: AsyncSession, limit: int = 50) -> List[AuditLog]:
    result = await db.execute(
        select(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())
