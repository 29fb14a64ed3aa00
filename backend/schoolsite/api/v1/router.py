from fastapi import APIRouter

from schoolsite.api.v1.endpoints import auth, storage, admin
from schoolsite.api.v1.endpoints.content import build_content_router
from schoolsite.services.content_service import CONTENT_KINDS

api_router = APIRouter()


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint for load balancer"""
    return {"status": "healthy", "service": "schoolsite-backend"}


api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])

for kind in CONTENT_KINDS.values():
    api_router.include_router(
        build_content_router(kind),
        prefix=f"/{kind.plural}",
        tags=[kind.plural.capitalize()],
    )

api_router.include_router(storage.router, prefix="/storage", tags=["Storage"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
