"""
Content endpoints.

Every content kind gets the same five routes, built from its ContentKind:

    GET    /{kind}              newest records, bounded by the kind's page size
    GET    /{kind}/search?q=    keyword search
    POST   /{kind}              create (admin)
    PUT    /{kind}/{id}         update (admin)
    DELETE /{kind}/{id}         delete (admin)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsite.core.database import get_db
from schoolsite.models.user import User
from schoolsite.modules.auth.dependencies import get_optional_user
from schoolsite.services.content_service import ContentKind, ContentService
from schoolsite.services.storage_service import ObjectStorage, get_object_storage


def build_content_router(kind: ContentKind) -> APIRouter:
    router = APIRouter()
    response_model = kind.response_schema
    create_schema = kind.create_schema
    update_schema = kind.update_schema

    def _service(db: AsyncSession, storage: ObjectStorage, request: Optional[Request] = None) -> ContentService:
        client_ip = request.client.host if request is not None and request.client else None
        return ContentService(kind, db, storage, client_ip=client_ip)

    @router.get("", response_model=List[response_model], name=f"list_{kind.plural}")
    async def list_records(
        db: AsyncSession = Depends(get_db),
        storage: ObjectStorage = Depends(get_object_storage),
    ):
        return await _service(db, storage).list()

    @router.get("/search", response_model=List[response_model], name=f"search_{kind.plural}")
    async def search_records(
        q: str = Query("", max_length=200),
        db: AsyncSession = Depends(get_db),
        storage: ObjectStorage = Depends(get_object_storage),
    ):
        return await _service(db, storage).search(q)

    @router.post("", response_model=response_model, status_code=status.HTTP_201_CREATED, name=f"create_{kind.name}")
    async def create_record(
        request: Request,
        data: create_schema,
        current_user: Optional[User] = Depends(get_optional_user),
        db: AsyncSession = Depends(get_db),
        storage: ObjectStorage = Depends(get_object_storage),
    ):
        return await _service(db, storage, request).create(current_user, data)

    @router.put("/{record_id}", response_model=response_model, name=f"update_{kind.name}")
    async def update_record(
        record_id: str,
        request: Request,
        data: update_schema,
        current_user: Optional[User] = Depends(get_optional_user),
        db: AsyncSession = Depends(get_db),
        storage: ObjectStorage = Depends(get_object_storage),
    ):
        return await _service(db, storage, request).update(current_user, record_id, data)

    @router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT, name=f"delete_{kind.name}")
    async def delete_record(
        record_id: str,
        request: Request,
        current_user: Optional[User] = Depends(get_optional_user),
        db: AsyncSession = Depends(get_db),
        storage: ObjectStorage = Depends(get_object_storage),
    ):
        await _service(db, storage, request).delete(current_user, record_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router
