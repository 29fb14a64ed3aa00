# Re-export all models for convenient imports
from schoolsite.models.user import User, AdminStatus
from schoolsite.models.content import Announcement, Event, Facility, Achievement
from schoolsite.models.audit_log import AuditLog

__all__ = [
    # User
    "User",
    "AdminStatus",
    # Content
    "Announcement",
    "Event",
    "Facility",
    "Achievement",
    # Audit
    "AuditLog",
]
