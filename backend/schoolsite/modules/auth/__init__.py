# Authentication module

from schoolsite.modules.auth.guard import require_admin, is_admin
from schoolsite.modules.auth.dependencies import (
    get_current_user,
    get_current_admin,
    get_optional_user,
    resolve_user,
)

__all__ = [
    "require_admin",
    "is_admin",
    "get_current_user",
    "get_current_admin",
    "get_optional_user",
    "resolve_user",
]
