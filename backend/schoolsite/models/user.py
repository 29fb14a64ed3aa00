from sqlalchemy import Column, String, Boolean, DateTime, BigInteger, Text
from datetime import datetime
import enum

from schoolsite.core.database import Base
from schoolsite.core.types import GUID, generate_uuid


class AdminStatus(str, enum.Enum):
    """Admin status derived from the stored flag"""
    ADMIN = "admin"
    NON_ADMIN = "non_admin"


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    phone = Column(String(20), nullable=True)
    image = Column(Text, nullable=True)
    hashed_password = Column(String(255), nullable=True)

    email_verification_time = Column(BigInteger, nullable=True)
    phone_verification_time = Column(BigInteger, nullable=True)

    is_anonymous = Column(Boolean, default=False, nullable=False)
    # NULL and False both mean "not an admin"; read through admin_status
    is_admin = Column(Boolean, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)

    @property
    def admin_status(self) -> AdminStatus:
        return AdminStatus.ADMIN if self.is_admin is True else AdminStatus.NON_ADMIN

    def __repr__(self):
        return f"<User {self.email or self.id}>"
