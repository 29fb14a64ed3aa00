"""
SchoolSite - Test Configuration and Fixtures
"""
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator, Awaitable, Callable, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from faker import Faker

_TEST_DIR = Path(tempfile.mkdtemp(prefix="schoolsite-tests-"))

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{_TEST_DIR / 'test.db'}"
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['STORAGE_MODE'] = 'local'
os.environ['LOCAL_STORAGE_PATH'] = str(_TEST_DIR / 'storage')
os.environ['PUBLIC_BASE_URL'] = 'http://test'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['BOOTSTRAP_ADMIN_EMAIL'] = 'principal@school.in'
os.environ['LOG_LEVEL'] = 'WARNING'

from schoolsite.main import app
from schoolsite.core.database import Base, get_db
from schoolsite.core.security import get_password_hash, create_access_token
from schoolsite.models.user import User
from schoolsite.services.storage_service import LocalObjectStorage, get_object_storage

fake = Faker()

# 1x1 transparent PNG
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c63000100000500010d0a2db40000000049454e44ae426082"
)

# Test database setup
TEST_DATABASE_URL = os.environ['DATABASE_URL']
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


def token_from_url(url: str) -> str:
    """The signed token is the last path segment of a local storage URL"""
    return url.rstrip("/").rsplit("/", 1)[-1]


def bearer(user: User) -> dict:
    token = create_access_token({'sub': str(user.id)})
    return {'Authorization': f'Bearer {token}'}


@pytest_asyncio.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def storage(tmp_path: Path) -> LocalObjectStorage:
    """An empty local image store per test"""
    return LocalObjectStorage(base_dir=tmp_path / "images")


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, storage: LocalObjectStorage) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and storage overrides"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_storage] = lambda: storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory for stored users"""
    async def _make_user(
        email: Optional[str] = None,
        password: str = 'testpassword123',
        is_admin: Optional[bool] = None,
        is_anonymous: bool = False,
    ) -> User:
        user = User(
            email=None if is_anonymous else (email or fake.unique.email()),
            name=None if is_anonymous else fake.name(),
            hashed_password=None if is_anonymous else get_password_hash(password),
            is_anonymous=is_anonymous,
            is_admin=is_admin,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    """Create a signed-up, non-admin user"""
    return await make_user()


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    """Create an admin user"""
    return await make_user(is_admin=True)


@pytest_asyncio.fixture
async def anonymous_user(make_user) -> User:
    """Create a guest user"""
    return await make_user(is_anonymous=True)


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Generate authentication headers for test user"""
    return bearer(test_user)


@pytest.fixture
def admin_auth_headers(admin_user: User) -> dict:
    """Generate authentication headers for admin user"""
    return bearer(admin_user)


@pytest.fixture
def upload_image(storage: LocalObjectStorage) -> Callable[..., Awaitable[str]]:
    """Store an image through a fresh upload target; returns its storage id"""
    async def _upload(content: bytes = PNG_BYTES, content_type: str = "image/png") -> str:
        target = await storage.generate_upload_target()
        return await storage.store(token_from_url(target.upload_url), content, content_type)

    return _upload
