from sqlalchemy import Column, String, DateTime, JSON
from datetime import datetime

from schoolsite.core.database import Base
from schoolsite.core.types import GUID, generate_uuid


class AuditLog(Base):
    """Record of an admin mutation"""
    __tablename__ = "audit_logs"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    admin_id = Column(GUID, nullable=True, index=True)  # NULL for CLI provisioning
    action = Column(String(50), nullable=False)
    target_type = Column(String(50), nullable=False)
    target_id = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} {self.target_type}>"
