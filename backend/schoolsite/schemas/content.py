from pydantic import BaseModel, Field, ConfigDict
from typing import Optional

STORAGE_ID_PATTERN = r"^[0-9a-f]{32}$"
# 9999-12-31T23:59:59.999Z, the last instant an ISO calendar date can name
MAX_DATE_MS = 253402300799999


class ContentFields(BaseModel):
    """Fields accepted by every content kind"""
    image_id: Optional[str] = Field(None, pattern=STORAGE_ID_PATTERN)


class ContentResponse(BaseModel):
    """Fields returned for every content kind"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    date: int
    image_id: Optional[str] = None
    # Resolved on every read, never stored
    image_url: Optional[str] = None


# ============================================
# Announcements
# ============================================

class AnnouncementCreate(ContentFields):
    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    important: Optional[bool] = None


class AnnouncementUpdate(AnnouncementCreate):
    pass


class AnnouncementResponse(ContentResponse):
    title: str
    content: str
    important: Optional[bool] = None


# ============================================
# Events
# ============================================

class EventCreate(ContentFields):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)
    venue: str = Field(..., min_length=1, max_length=255)
    date: int = Field(..., ge=0, le=MAX_DATE_MS, description="Event date in milliseconds since epoch")


class EventUpdate(EventCreate):
    pass


class EventResponse(ContentResponse):
    title: str
    description: str
    venue: str


# ============================================
# Facilities
# ============================================

class FacilityCreate(ContentFields):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)


class FacilityUpdate(FacilityCreate):
    pass


class FacilityResponse(ContentResponse):
    name: str
    description: str


# ============================================
# Achievements
# ============================================

class AchievementCreate(ContentFields):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)


class AchievementUpdate(AchievementCreate):
    pass


class AchievementResponse(ContentResponse):
    title: str
    description: str
