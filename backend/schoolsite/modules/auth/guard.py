"""
Authorization guard.

Every mutating operation calls require_admin before touching the record
store or object storage.
"""

from typing import Optional

from schoolsite.core.exceptions import AuthenticationError, AuthorizationError
from schoolsite.models.user import User, AdminStatus


def require_admin(caller: Optional[User]) -> User:
    """Return the caller if it is an admin, otherwise fail"""
    if caller is None:
        raise AuthenticationError()
    if caller.admin_status is not AdminStatus.ADMIN:
        raise AuthorizationError()
    return caller


def is_admin(caller: Optional[User]) -> bool:
    return caller is not None and caller.admin_status is AdminStatus.ADMIN
