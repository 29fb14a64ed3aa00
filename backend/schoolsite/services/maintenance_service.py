"""
Storage maintenance.

A record delete and its blob delete are not one transaction, and uploaded
images may never be attached to a record. sweep_orphans removes blobs that
no record references once they are older than the grace period.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from schoolsite.core.config import settings
from schoolsite.core.logging_config import logger
from schoolsite.models.user import User
from schoolsite.modules.auth.guard import require_admin
from schoolsite.services.audit_service import record_admin_action
from schoolsite.services.content_service import referenced_image_ids
from schoolsite.services.storage_service import ObjectStorage


async def sweep_orphans(
    db: AsyncSession,
    storage: ObjectStorage,
    grace_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[str]:
    """Delete unreferenced blobs older than the grace period; returns their ids"""
    if grace_minutes is None:
        grace_minutes = settings.ORPHAN_GRACE_MINUTES
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=grace_minutes)

    referenced = await referenced_image_ids(db)
    deleted = []
    for stored in await storage.list_objects():
        if stored.storage_id in referenced or stored.last_modified > cutoff:
            continue
        await storage.delete(stored.storage_id)
        deleted.append(stored.storage_id)

    logger.info(f"[Sweep] Deleted {len(deleted)} orphaned images")
    return deleted


async def sweep_orphans_as_admin(
    db: AsyncSession,
    caller: Optional[User],
    storage: ObjectStorage,
    ip_address: Optional[str] = None,
) -> List[str]:
    admin = require_admin(caller)
    deleted = await sweep_orphans(db, storage)
    record_admin_action(
        db, str(admin.id), "sweep_orphans", "storage",
        details={"deleted": deleted}, ip_address=ip_address,
    )
    await db.commit()
    return deleted
