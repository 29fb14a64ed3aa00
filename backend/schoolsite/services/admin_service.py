"""
Admin Service

Granting admin rights, including the first-run bootstrap grant.

The bootstrap grant promotes the user whose email matches
BOOTSTRAP_ADMIN_EMAIL without an admin check, but only while no admin
exists. Once any user is an admin it can never be used again.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsite.core.config import settings
from schoolsite.core.exceptions import ConflictError, UserNotFoundError
from schoolsite.core.logging_config import logger
from schoolsite.models.user import User
from schoolsite.modules.auth.guard import require_admin, is_admin
from schoolsite.services.audit_service import record_admin_action


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(
        select(User).where(User.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def any_admin_exists(db: AsyncSession) -> bool:
    result = await db.execute(
        select(User.id).where(User.is_admin.is_(True)).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _promote(
    db: AsyncSession,
    user: User,
    granted_by: Optional[str],
    bootstrap: bool,
    ip_address: Optional[str] = None,
) -> User:
    user.is_admin = True
    record_admin_action(
        db, granted_by, "grant_admin", "user", str(user.id),
        details={"email": user.email, "bootstrap": bootstrap},
        ip_address=ip_address,
    )
    await db.commit()
    return user


async def grant_admin(
    db: AsyncSession,
    caller: Optional[User],
    email: str,
    ip_address: Optional[str] = None,
) -> User:
    """Make the user with this email an admin"""
    email = normalize_email(email)
    bootstrap_email = settings.bootstrap_admin_email

    if bootstrap_email and email == bootstrap_email and not await any_admin_exists(db):
        user = await get_user_by_email(db, email)
        if user is not None:
            logger.warning(f"[Admin] Bootstrap admin grant used for {email}")
            return await _promote(db, user, str(caller.id) if caller else None, True, ip_address)

    admin = require_admin(caller)
    user = await get_user_by_email(db, email)
    if user is None:
        raise UserNotFoundError(email)
    return await _promote(db, user, str(admin.id), False, ip_address)


async def provision_admin(db: AsyncSession, email: str) -> User:
    """
    First-run provisioning step: promote a user while no admin exists.

    Used by `schoolsite-admin provision-admin`.
    """
    if await any_admin_exists(db):
        raise ConflictError("An admin already exists; use grant-admin from an admin account")
    user = await get_user_by_email(db, email)
    if user is None:
        raise UserNotFoundError(normalize_email(email))
    logger.info(f"[Admin] Provisioning first admin {user.email}")
    return await _promote(db, user, None, True)


def is_current_user_admin(caller: Optional[User]) -> bool:
    return is_admin(caller)
