from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Optional

from schoolsite.core.database import get_db
from schoolsite.core.exceptions import InvalidCredentialsError, ValidationError
from schoolsite.core.logging_config import logger, set_user_id
from schoolsite.core.rate_limiter import auth_rate_limit
from schoolsite.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    create_refresh_token,
)
from schoolsite.models.user import User
from schoolsite.modules.auth.dependencies import get_optional_user
from schoolsite.schemas.auth import UserSignUp, UserSignIn, UserResponse, LoginResponse
from schoolsite.services.admin_service import get_user_by_email, normalize_email

router = APIRouter()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _issue_tokens(user: User) -> LoginResponse:
    token_data = {"sub": str(user.id), "anon": bool(user.is_anonymous)}
    return LoginResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
        user=UserResponse.model_validate(user),
    )


@router.post("/signup", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
@auth_rate_limit()
async def signup(
    request: Request,
    user_data: UserSignUp,
    db: AsyncSession = Depends(get_db)
):
    """Create a password account and sign it in"""
    email = normalize_email(user_data.email)

    if await get_user_by_email(db, email):
        logger.log_auth_event(
            event="signup",
            success=False,
            user_email=email,
            reason="Email already registered",
            client_ip=_client_ip(request)
        )
        raise ValidationError("Email already registered", field="email")

    user = User(
        email=email,
        name=user_data.name,
        phone=user_data.phone,
        hashed_password=get_password_hash(user_data.password),
        is_anonymous=False,
        last_login=datetime.utcnow(),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    set_user_id(str(user.id))
    logger.log_auth_event(event="signup", success=True, user_email=email, client_ip=_client_ip(request))
    return _issue_tokens(user)


@router.post("/signin", response_model=LoginResponse)
@auth_rate_limit()
async def signin(
    request: Request,
    credentials: UserSignIn,
    db: AsyncSession = Depends(get_db)
):
    """Password sign-in"""
    email = normalize_email(credentials.email)
    user = await get_user_by_email(db, email)

    if not user or not user.hashed_password or not verify_password(credentials.password, user.hashed_password):
        logger.log_auth_event(
            event="signin",
            success=False,
            user_email=email,
            reason="Invalid credentials",
            client_ip=_client_ip(request)
        )
        raise InvalidCredentialsError()

    user.last_login = datetime.utcnow()
    await db.commit()

    set_user_id(str(user.id))
    logger.log_auth_event(event="signin", success=True, user_email=email, client_ip=_client_ip(request))
    return _issue_tokens(user)


@router.post("/anonymous", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
@auth_rate_limit()
async def signin_anonymous(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Guest sign-in: creates a fresh anonymous user"""
    user = User(is_anonymous=True, last_login=datetime.utcnow())
    db.add(user)
    await db.commit()
    await db.refresh(user)

    set_user_id(str(user.id))
    logger.log_auth_event(event="anonymous", success=True, client_ip=_client_ip(request))
    return _issue_tokens(user)


@router.get("/me", response_model=Optional[UserResponse])
async def get_me(current_user: Optional[User] = Depends(get_optional_user)):
    """The signed-in user, or null"""
    return current_user
