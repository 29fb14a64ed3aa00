"""
Content Service

One generic service for every content kind. A ContentKind descriptor holds
what differs between kinds (table, schemas, page size, searchable fields,
who supplies the timestamp); ContentService implements list, search,
create, update and delete once, including the image attachment lifecycle.

Usage:
    service = ContentService(CONTENT_KINDS["announcements"], db, storage)
    items = await service.list()
    await service.create(current_user, AnnouncementCreate(title="...", content="..."))
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type

from pydantic import BaseModel
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsite.core.exceptions import (
    ContentNotFoundError,
    ImageInUseError,
    ImageNotFoundError,
    StorageError,
)
from schoolsite.core.logging_config import logger
from schoolsite.core.types import now_ms
from schoolsite.models.content import Announcement, Event, Facility, Achievement
from schoolsite.models.user import User
from schoolsite.modules.auth.guard import require_admin
from schoolsite.schemas.content import (
    AnnouncementCreate, AnnouncementUpdate, AnnouncementResponse,
    EventCreate, EventUpdate, EventResponse,
    FacilityCreate, FacilityUpdate, FacilityResponse,
    AchievementCreate, AchievementUpdate, AchievementResponse,
    ContentResponse,
)
from schoolsite.services.audit_service import record_admin_action
from schoolsite.services.storage_service import ObjectStorage, validate_storage_id


@dataclass(frozen=True)
class ContentKind:
    """Everything that differs between content kinds"""
    name: str
    plural: str
    model: type
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]
    response_schema: Type[ContentResponse]
    page_size: Optional[int]  # None = unbounded
    search_fields: Tuple[str, ...]
    server_timestamp: bool  # False when the caller supplies `date`


ANNOUNCEMENTS = ContentKind(
    name="announcement",
    plural="announcements",
    model=Announcement,
    create_schema=AnnouncementCreate,
    update_schema=AnnouncementUpdate,
    response_schema=AnnouncementResponse,
    page_size=5,
    search_fields=("title", "content"),
    server_timestamp=True,
)

EVENTS = ContentKind(
    name="event",
    plural="events",
    model=Event,
    create_schema=EventCreate,
    update_schema=EventUpdate,
    response_schema=EventResponse,
    page_size=3,
    search_fields=("title", "description"),
    server_timestamp=False,
)

FACILITIES = ContentKind(
    name="facility",
    plural="facilities",
    model=Facility,
    create_schema=FacilityCreate,
    update_schema=FacilityUpdate,
    response_schema=FacilityResponse,
    page_size=None,
    search_fields=("name", "description"),
    server_timestamp=True,
)

ACHIEVEMENTS = ContentKind(
    name="achievement",
    plural="achievements",
    model=Achievement,
    create_schema=AchievementCreate,
    update_schema=AchievementUpdate,
    response_schema=AchievementResponse,
    page_size=4,
    search_fields=("title", "description"),
    server_timestamp=True,
)

CONTENT_KINDS: Dict[str, ContentKind] = {
    kind.plural: kind for kind in (ANNOUNCEMENTS, EVENTS, FACILITIES, ACHIEVEMENTS)
}

SEARCH_LIMIT_PER_FIELD = 5


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def find_image_owner(db: AsyncSession, image_id: str) -> Optional[Tuple[ContentKind, str]]:
    """Return (kind, record id) of the record that owns an image, if any"""
    for kind in CONTENT_KINDS.values():
        result = await db.execute(
            select(kind.model.id).where(kind.model.image_id == image_id).limit(1)
        )
        owner_id = result.scalar_one_or_none()
        if owner_id is not None:
            return kind, owner_id
    return None


async def referenced_image_ids(db: AsyncSession) -> set:
    """All image ids currently attached to any record"""
    referenced = set()
    for kind in CONTENT_KINDS.values():
        result = await db.execute(
            select(kind.model.image_id).where(kind.model.image_id.is_not(None))
        )
        referenced.update(result.scalars().all())
    return referenced


class ContentService:
    """CRUD, search and image lifecycle for one content kind"""

    def __init__(
        self,
        kind: ContentKind,
        db: AsyncSession,
        storage: ObjectStorage,
        client_ip: Optional[str] = None,
    ):
        self.kind = kind
        self.db = db
        self.storage = storage
        self.client_ip = client_ip

    @property
    def model(self):
        return self.kind.model

    def _newest_first(self, stmt):
        return stmt.order_by(self.model.date.desc(), self.model.created_at.desc())

    async def _to_response(self, record) -> ContentResponse:
        data = {
            name: getattr(record, name)
            for name in self.kind.response_schema.model_fields
            if name != "image_url"
        }
        data["image_url"] = await self.storage.resolve_url(record.image_id)
        return self.kind.response_schema.model_validate(data)

    async def _to_responses(self, records) -> List[ContentResponse]:
        return [await self._to_response(record) for record in records]

    async def _get_or_404(self, record_id: str):
        record = await self.db.get(self.model, record_id)
        if record is None:
            raise ContentNotFoundError(self.kind.name, record_id)
        return record

    async def _check_image_available(self, image_id: str, record_id: Optional[str] = None) -> None:
        """The image must exist and must not belong to another record"""
        validate_storage_id(image_id)
        if not await self.storage.exists(image_id):
            raise ImageNotFoundError(image_id)

        owner = await find_image_owner(self.db, image_id)
        if owner is not None:
            owner_kind, owner_id = owner
            if not (owner_kind is self.kind and owner_id == record_id):
                raise ImageInUseError(image_id, owner_kind.name, owner_id)

    async def _flush_claiming_image(self, image_id: Optional[str]) -> None:
        """Flush a row holding image_id; a concurrent claim in the same table hits the unique index"""
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            owner = await find_image_owner(self.db, image_id) if image_id else None
            if owner is None:
                raise
            logger.warning(f"[Content] Image {image_id} claimed concurrently by {owner[0].name} '{owner[1]}'")
            raise ImageInUseError(image_id, owner[0].name, owner[1])

    async def _delete_blob_or_rollback(self, image_id: str) -> None:
        """Delete a blob inside the open transaction; undo the row change on failure"""
        try:
            await self.storage.delete(image_id)
        except StorageError:
            await self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self) -> List[ContentResponse]:
        """Most recent records, newest first, bounded by the kind's page size"""
        stmt = self._newest_first(select(self.model))
        if self.kind.page_size is not None:
            stmt = stmt.limit(self.kind.page_size)
        result = await self.db.execute(stmt)
        return await self._to_responses(result.scalars().all())

    async def search(self, query: str) -> List[ContentResponse]:
        """
        Match every query term against each searchable field separately,
        then union the per-field results keeping the first occurrence.
        """
        terms = query.split() if query else []
        if not terms:
            return []

        seen = set()
        matches = []
        for field in self.kind.search_fields:
            column = getattr(self.model, field)
            conditions = [column.ilike(f"%{_escape_like(term)}%", escape="\\") for term in terms]
            stmt = self._newest_first(select(self.model).where(and_(*conditions))).limit(SEARCH_LIMIT_PER_FIELD)
            result = await self.db.execute(stmt)
            for record in result.scalars().all():
                if record.id in seen:
                    continue
                seen.add(record.id)
                matches.append(record)

        logger.debug(f"[Search] {self.kind.plural} '{query}' -> {len(matches)} results")
        return await self._to_responses(matches)

    # ------------------------------------------------------------------
    # Mutations (admin only)
    # ------------------------------------------------------------------

    async def create(self, caller: Optional[User], data: BaseModel) -> ContentResponse:
        admin = require_admin(caller)

        fields = data.model_dump()
        if fields.get("image_id"):
            await self._check_image_available(fields["image_id"])
        if self.kind.server_timestamp:
            fields["date"] = now_ms()

        record = self.model(**fields)
        self.db.add(record)
        await self._flush_claiming_image(fields.get("image_id"))

        record_admin_action(
            self.db, str(admin.id), "create", self.kind.name, str(record.id),
            details={"image_id": record.image_id}, ip_address=self.client_ip,
        )
        await self.db.commit()
        return await self._to_response(record)

    async def update(self, caller: Optional[User], record_id: str, data: BaseModel) -> ContentResponse:
        """
        Replace the mutable fields of a record.

        A missing image_id clears the image. When the stored image is cleared
        or replaced, its blob is deleted.
        """
        admin = require_admin(caller)
        record = await self._get_or_404(record_id)

        fields = data.model_dump()
        old_image_id = record.image_id
        new_image_id = fields.get("image_id")
        if new_image_id and new_image_id != old_image_id:
            await self._check_image_available(new_image_id, record_id=record.id)

        for name, value in fields.items():
            setattr(record, name, value)
        await self._flush_claiming_image(new_image_id)

        if old_image_id and old_image_id != new_image_id:
            await self._delete_blob_or_rollback(old_image_id)

        record_admin_action(
            self.db, str(admin.id), "update", self.kind.name, str(record.id),
            details={"image_id": new_image_id, "replaced_image_id": old_image_id if old_image_id != new_image_id else None},
            ip_address=self.client_ip,
        )
        await self.db.commit()
        return await self._to_response(record)

    async def delete(self, caller: Optional[User], record_id: str) -> None:
        """
        Delete a record and its image.

        The row delete is flushed first, then the blob is deleted, then the
        transaction commits. A failing blob delete rolls the row back.
        """
        admin = require_admin(caller)
        record = await self._get_or_404(record_id)
        image_id = record.image_id

        await self.db.delete(record)
        await self.db.flush()

        if image_id:
            await self._delete_blob_or_rollback(image_id)

        record_admin_action(
            self.db, str(admin.id), "delete", self.kind.name, record_id,
            details={"image_id": image_id}, ip_address=self.client_ip,
        )
        await self.db.commit()
