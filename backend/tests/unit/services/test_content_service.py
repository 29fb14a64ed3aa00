"""
Unit Tests for ContentService
Tests for: listing bounds and order, search, admin checks, image lifecycle
"""
import pytest
from sqlalchemy import select, func

from schoolsite.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ContentNotFoundError,
    ImageInUseError,
    ImageNotFoundError,
    StorageError,
)
from schoolsite.models.audit_log import AuditLog
from schoolsite.models.content import Announcement, Event, Facility, Achievement
from schoolsite.schemas.content import (
    AnnouncementCreate, AnnouncementUpdate,
    EventCreate,
    FacilityCreate, FacilityUpdate,
    AchievementCreate,
)
from schoolsite.services.content_service import (
    ANNOUNCEMENTS, EVENTS, FACILITIES, ACHIEVEMENTS, CONTENT_KINDS,
    ContentService, find_image_owner, referenced_image_ids,
)
from schoolsite.services.storage_service import LocalObjectStorage, new_storage_id


class FailingDeleteStorage(LocalObjectStorage):
    """Local storage whose deletes always fail"""

    async def delete(self, storage_id: str) -> None:
        raise StorageError("backend unavailable", storage_id=storage_id)


class UnreadableStorage(LocalObjectStorage):
    """Local storage whose metadata lookups always fail"""

    async def exists(self, storage_id: str) -> bool:
        raise StorageError("Could not read image metadata", storage_id=storage_id)


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _seed(db, model, count: int, **fields):
    """Insert records with increasing dates 1..count"""
    records = []
    for i in range(1, count + 1):
        values = {name: f"{value} {i}" for name, value in fields.items()}
        record = model(date=i, **values)
        db.add(record)
        records.append(record)
    await db.commit()
    return records


class TestContentKinds:

    def test_all_kinds_registered(self):
        assert set(CONTENT_KINDS) == {"announcements", "events", "facilities", "achievements"}

    def test_page_sizes(self):
        assert ANNOUNCEMENTS.page_size == 5
        assert EVENTS.page_size == 3
        assert ACHIEVEMENTS.page_size == 4
        assert FACILITIES.page_size is None

    def test_only_events_take_caller_dates(self):
        assert EVENTS.server_timestamp is False
        assert all(k.server_timestamp for k in (ANNOUNCEMENTS, FACILITIES, ACHIEVEMENTS))


class TestList:
    """Newest first, bounded by page size"""

    @pytest.mark.asyncio
    async def test_empty_list(self, db_session, storage):
        assert await ContentService(ANNOUNCEMENTS, db_session, storage).list() == []

    @pytest.mark.asyncio
    async def test_announcements_bounded_to_five_newest(self, db_session, storage):
        await _seed(db_session, Announcement, 7, title="Notice", content="Body")

        items = await ContentService(ANNOUNCEMENTS, db_session, storage).list()

        assert [item.date for item in items] == [7, 6, 5, 4, 3]

    @pytest.mark.asyncio
    async def test_events_bounded_to_three(self, db_session, storage):
        await _seed(db_session, Event, 5, title="Event", description="Desc", venue="Hall")

        items = await ContentService(EVENTS, db_session, storage).list()

        assert [item.date for item in items] == [5, 4, 3]

    @pytest.mark.asyncio
    async def test_achievements_bounded_to_four(self, db_session, storage):
        await _seed(db_session, Achievement, 6, title="Award", description="Desc")

        items = await ContentService(ACHIEVEMENTS, db_session, storage).list()

        assert len(items) == 4
        assert items[0].date == 6

    @pytest.mark.asyncio
    async def test_facilities_unbounded(self, db_session, storage):
        await _seed(db_session, Facility, 12, name="Lab", description="Desc")

        items = await ContentService(FACILITIES, db_session, storage).list()

        assert len(items) == 12
        assert items[0].date == 12

    @pytest.mark.asyncio
    async def test_unreadable_image_lists_without_url(self, db_session, storage):
        db_session.add(Announcement(date=1, title="Notice", content="Body", image_id=new_storage_id()))
        await db_session.commit()

        items = await ContentService(ANNOUNCEMENTS, db_session, UnreadableStorage(base_dir=storage.base_dir)).list()

        assert len(items) == 1
        assert items[0].image_url is None

    @pytest.mark.asyncio
    async def test_fewer_records_than_page_size(self, db_session, storage):
        await _seed(db_session, Announcement, 2, title="Notice", content="Body")

        items = await ContentService(ANNOUNCEMENTS, db_session, storage).list()

        assert [item.date for item in items] == [2, 1]


class TestSearch:

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self, db_session, storage):
        await _seed(db_session, Announcement, 2, title="Notice", content="Body")
        service = ContentService(ANNOUNCEMENTS, db_session, storage)

        assert await service.search("") == []
        assert await service.search("   ") == []

    @pytest.mark.asyncio
    async def test_match_in_either_field(self, db_session, storage):
        db_session.add_all([
            Announcement(date=1, title="Sports day", content="Field events"),
            Announcement(date=2, title="Exam schedule", content="Sports hall closed"),
            Announcement(date=3, title="Library", content="New books"),
        ])
        await db_session.commit()

        results = await ContentService(ANNOUNCEMENTS, db_session, storage).search("sports")

        assert [r.date for r in results] == [1, 2]

    @pytest.mark.asyncio
    async def test_record_matching_both_fields_appears_once(self, db_session, storage):
        db_session.add(Announcement(date=1, title="Holiday", content="Holiday on Friday"))
        await db_session.commit()

        results = await ContentService(ANNOUNCEMENTS, db_session, storage).search("holiday")

        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_title_matches_come_first(self, db_session, storage):
        db_session.add_all([
            Announcement(date=5, title="Other", content="annual day rehearsal"),
            Announcement(date=1, title="Annual day", content="Details"),
        ])
        await db_session.commit()

        results = await ContentService(ANNOUNCEMENTS, db_session, storage).search("annual")

        assert [r.title for r in results] == ["Annual day", "Other"]

    @pytest.mark.asyncio
    async def test_all_terms_must_match_within_a_field(self, db_session, storage):
        db_session.add_all([
            Event(date=1, title="Science fair", description="Projects", venue="Hall"),
            Event(date=2, title="Science quiz", description="Fair play", venue="Hall"),
        ])
        await db_session.commit()

        results = await ContentService(EVENTS, db_session, storage).search("science fair")

        assert [r.title for r in results] == ["Science fair"]

    @pytest.mark.asyncio
    async def test_case_insensitive(self, db_session, storage):
        db_session.add(Facility(date=1, name="Swimming Pool", description="Olympic size"))
        await db_session.commit()

        results = await ContentService(FACILITIES, db_session, storage).search("POOL")

        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, db_session, storage):
        db_session.add(Achievement(date=1, title="Top 10", description="District"))
        await db_session.commit()

        results = await ContentService(ACHIEVEMENTS, db_session, storage).search("%")

        assert results == []

    @pytest.mark.asyncio
    async def test_at_most_five_per_field(self, db_session, storage):
        await _seed(db_session, Achievement, 8, title="Medal", description="Medal won")

        results = await ContentService(ACHIEVEMENTS, db_session, storage).search("medal")

        # Same five newest records match both fields
        assert [r.date for r in results] == [8, 7, 6, 5, 4]


class TestMutationsRequireAdmin:

    @pytest.mark.asyncio
    async def test_signed_out_create_fails(self, db_session, storage):
        service = ContentService(ANNOUNCEMENTS, db_session, storage)

        with pytest.raises(AuthenticationError):
            await service.create(None, AnnouncementCreate(title="t", content="c"))

        assert await _count(db_session, Announcement) == 0

    @pytest.mark.asyncio
    async def test_non_admin_create_fails(self, db_session, storage, test_user):
        service = ContentService(EVENTS, db_session, storage)

        with pytest.raises(AuthorizationError):
            await service.create(test_user, EventCreate(title="t", description="d", venue="v", date=1))

        assert await _count(db_session, Event) == 0

    @pytest.mark.asyncio
    async def test_non_admin_update_fails(self, db_session, storage, test_user):
        (record,) = await _seed(db_session, Facility, 1, name="Lab", description="Desc")
        service = ContentService(FACILITIES, db_session, storage)

        with pytest.raises(AuthorizationError):
            await service.update(test_user, record.id, FacilityUpdate(name="X", description="Y"))

    @pytest.mark.asyncio
    async def test_non_admin_delete_fails(self, db_session, storage, anonymous_user):
        (record,) = await _seed(db_session, Facility, 1, name="Lab", description="Desc")
        service = ContentService(FACILITIES, db_session, storage)

        with pytest.raises(AuthorizationError):
            await service.delete(anonymous_user, record.id)

        assert await _count(db_session, Facility) == 1


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_without_image(self, db_session, storage, admin_user):
        service = ContentService(ANNOUNCEMENTS, db_session, storage)

        created = await service.create(admin_user, AnnouncementCreate(title="Holiday", content="School closed"))

        assert created.title == "Holiday"
        assert created.image_id is None
        assert created.image_url is None
        assert created.date > 0

    @pytest.mark.asyncio
    async def test_event_keeps_caller_date(self, db_session, storage, admin_user):
        service = ContentService(EVENTS, db_session, storage)

        created = await service.create(
            admin_user, EventCreate(title="Fete", description="Fun", venue="Ground", date=1735689600000)
        )

        assert created.date == 1735689600000

    @pytest.mark.asyncio
    async def test_create_with_image_resolves_url(self, db_session, storage, admin_user, upload_image):
        image_id = await upload_image()
        service = ContentService(FACILITIES, db_session, storage)

        created = await service.create(admin_user, FacilityCreate(name="Lab", description="Desc", image_id=image_id))

        assert created.image_id == image_id
        assert created.image_url is not None

    @pytest.mark.asyncio
    async def test_create_with_unknown_image_fails(self, db_session, storage, admin_user):
        service = ContentService(FACILITIES, db_session, storage)

        with pytest.raises(ImageNotFoundError):
            await service.create(admin_user, FacilityCreate(name="Lab", description="D", image_id=new_storage_id()))

        assert await _count(db_session, Facility) == 0

    @pytest.mark.asyncio
    async def test_image_cannot_be_shared_across_kinds(self, db_session, storage, admin_user, upload_image):
        image_id = await upload_image()
        await ContentService(FACILITIES, db_session, storage).create(
            admin_user, FacilityCreate(name="Lab", description="D", image_id=image_id)
        )

        with pytest.raises(ImageInUseError):
            await ContentService(ACHIEVEMENTS, db_session, storage).create(
                admin_user, AchievementCreate(title="Win", description="D", image_id=image_id)
            )

    @pytest.mark.asyncio
    async def test_same_table_claim_caught_by_unique_index(
        self, db_session, storage, admin_user, upload_image, monkeypatch
    ):
        """Two creates that both pass the ownership check; the second loses at flush"""
        image_id = await upload_image()
        service = ContentService(FACILITIES, db_session, storage)
        first = await service.create(admin_user, FacilityCreate(name="Lab", description="D", image_id=image_id))

        async def skip_check(self, image_id, record_id=None):
            return None

        monkeypatch.setattr(ContentService, "_check_image_available", skip_check)

        with pytest.raises(ImageInUseError) as exc_info:
            await service.create(admin_user, FacilityCreate(name="Library", description="D", image_id=image_id))

        assert exc_info.value.details["owner_id"] == first.id
        assert await _count(db_session, Facility) == 1

    @pytest.mark.asyncio
    async def test_create_writes_audit_entry(self, db_session, storage, admin_user):
        created = await ContentService(ANNOUNCEMENTS, db_session, storage).create(
            admin_user, AnnouncementCreate(title="t", content="c")
        )

        log = (await db_session.execute(select(AuditLog))).scalar_one()
        assert log.action == "create"
        assert log.target_type == "announcement"
        assert log.target_id == created.id
        assert log.admin_id == admin_user.id


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_missing_record(self, db_session, storage, admin_user):
        service = ContentService(ANNOUNCEMENTS, db_session, storage)

        with pytest.raises(ContentNotFoundError):
            await service.update(admin_user, "00000000-0000-0000-0000-000000000000",
                                 AnnouncementUpdate(title="t", content="c"))

    @pytest.mark.asyncio
    async def test_update_keeps_server_date(self, db_session, storage, admin_user):
        service = ContentService(ANNOUNCEMENTS, db_session, storage)
        created = await service.create(admin_user, AnnouncementCreate(title="Old", content="c"))

        updated = await service.update(admin_user, created.id, AnnouncementUpdate(title="New", content="c2"))

        assert updated.title == "New"
        assert updated.content == "c2"
        assert updated.date == created.date

    @pytest.mark.asyncio
    async def test_replacing_image_deletes_old_blob(self, db_session, storage, admin_user, upload_image):
        first, second = await upload_image(), await upload_image()
        service = ContentService(FACILITIES, db_session, storage)
        created = await service.create(admin_user, FacilityCreate(name="Lab", description="D", image_id=first))

        updated = await service.update(
            admin_user, created.id, FacilityUpdate(name="Lab", description="D", image_id=second)
        )

        assert updated.image_id == second
        assert not await storage.exists(first)
        assert await storage.exists(second)

    @pytest.mark.asyncio
    async def test_clearing_image_deletes_blob(self, db_session, storage, admin_user, upload_image):
        image_id = await upload_image()
        service = ContentService(FACILITIES, db_session, storage)
        created = await service.create(admin_user, FacilityCreate(name="Lab", description="D", image_id=image_id))

        updated = await service.update(admin_user, created.id, FacilityUpdate(name="Lab", description="D"))

        assert updated.image_id is None
        assert updated.image_url is None
        assert not await storage.exists(image_id)

    @pytest.mark.asyncio
    async def test_keeping_same_image(self, db_session, storage, admin_user, upload_image):
        image_id = await upload_image()
        service = ContentService(FACILITIES, db_session, storage)
        created = await service.create(admin_user, FacilityCreate(name="Lab", description="D", image_id=image_id))

        updated = await service.update(
            admin_user, created.id, FacilityUpdate(name="Lab 2", description="D", image_id=image_id)
        )

        assert updated.image_id == image_id
        assert await storage.exists(image_id)

    @pytest.mark.asyncio
    async def test_failed_blob_delete_rolls_back_update(self, db_session, storage, admin_user, upload_image):
        first, second = await upload_image(), await upload_image()
        created = await ContentService(FACILITIES, db_session, storage).create(
            admin_user, FacilityCreate(name="Lab", description="D", image_id=first)
        )
        failing = FailingDeleteStorage(base_dir=storage.base_dir)

        with pytest.raises(StorageError):
            await ContentService(FACILITIES, db_session, failing).update(
                admin_user, created.id, FacilityUpdate(name="Library", description="Books", image_id=second)
            )

        stored = await db_session.get(Facility, created.id)
        assert stored.image_id == first
        assert stored.name == "Lab"
        assert stored.description == "D"
        assert await storage.exists(first)


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_missing_record(self, db_session, storage, admin_user):
        service = ContentService(EVENTS, db_session, storage)

        with pytest.raises(ContentNotFoundError):
            await service.delete(admin_user, "00000000-0000-0000-0000-000000000000")

    @pytest.mark.asyncio
    async def test_delete_removes_record_and_blob(self, db_session, storage, admin_user, upload_image):
        image_id = await upload_image()
        service = ContentService(ACHIEVEMENTS, db_session, storage)
        created = await service.create(admin_user, AchievementCreate(title="Win", description="D", image_id=image_id))

        await service.delete(admin_user, created.id)

        assert await _count(db_session, Achievement) == 0
        assert not await storage.exists(image_id)
        assert await find_image_owner(db_session, image_id) is None

    @pytest.mark.asyncio
    async def test_failed_blob_delete_keeps_record(self, db_session, storage, admin_user, upload_image):
        image_id = await upload_image()
        created = await ContentService(FACILITIES, db_session, storage).create(
            admin_user, FacilityCreate(name="Lab", description="D", image_id=image_id)
        )
        failing = FailingDeleteStorage(base_dir=storage.base_dir)

        with pytest.raises(StorageError):
            await ContentService(FACILITIES, db_session, failing).delete(admin_user, created.id)

        assert await _count(db_session, Facility) == 1
        assert await storage.exists(image_id)


class TestImageReferences:

    @pytest.mark.asyncio
    async def test_referenced_image_ids_spans_kinds(self, db_session, storage, admin_user, upload_image):
        a, b = await upload_image(), await upload_image()
        await ContentService(FACILITIES, db_session, storage).create(
            admin_user, FacilityCreate(name="Lab", description="D", image_id=a)
        )
        await ContentService(ANNOUNCEMENTS, db_session, storage).create(
            admin_user, AnnouncementCreate(title="t", content="c", image_id=b)
        )

        assert await referenced_image_ids(db_session) == {a, b}
