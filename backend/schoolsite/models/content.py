"""
Content Models
- Announcements, Events, Facilities, Achievements
- Each record may own one stored image (image_id)
"""

from sqlalchemy import Column, String, Boolean, DateTime, BigInteger, Text
from datetime import datetime

from schoolsite.core.database import Base
from schoolsite.core.types import GUID, generate_uuid


class ContentMixin:
    """Columns shared by every content table"""

    id = Column(GUID, primary_key=True, default=generate_uuid)
    # Milliseconds since epoch: creation time, or the event date for events
    date = Column(BigInteger, nullable=False, index=True)
    # Unique per table; NULLs do not collide
    image_id = Column(String(64), nullable=True, unique=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Announcement(ContentMixin, Base):
    """School announcement"""
    __tablename__ = "announcements"

    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    important = Column(Boolean, nullable=True)

    def __repr__(self):
        return f"<Announcement {self.title}>"


class Event(ContentMixin, Base):
    """Upcoming or past event"""
    __tablename__ = "events"

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    venue = Column(String(255), nullable=False)

    def __repr__(self):
        return f"<Event {self.title}>"


class Facility(ContentMixin, Base):
    """Campus facility"""
    __tablename__ = "facilities"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

    def __repr__(self):
        return f"<Facility {self.name}>"


class Achievement(ContentMixin, Base):
    """Student or school achievement"""
    __tablename__ = "achievements"

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)

    def __repr__(self):
        return f"<Achievement {self.title}>"
