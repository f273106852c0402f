"""
Authentication service handling user registration, login and the bootstrap admin.
"""

from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from cinema_booking.models.user import User
from cinema_booking.schemas.user import UserCreate, UserLogin
from cinema_booking.core.config import get_settings
from cinema_booking.core.security import ROLE_ADMIN, ROLE_USER, hash_password, verify_password, create_access_token
from cinema_booking.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Register a new customer account.
    Raises 409 if email or username already exists.
    """
    email = (user_data.email or f"{user_data.username}@no-email.com").lower()

    result = await db.execute(select(User).where(func.lower(User.username) == user_data.username.lower()))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="username_exists", username=user_data.username)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already taken",
        )

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        email=email,
        username=user_data.username,
        phone=user_data.phone,
        hashed_password=hash_password(user_data.password),
        role=ROLE_USER,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    logger.info("user_registered", user_id=user.id, username=user.username)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> tuple[str, User]:
    """
    Authenticate by username or email and return (JWT, user).
    Raises 401 if credentials are invalid.
    """
    identifier = login_data.username.strip().lower()
    result = await db.execute(
        select(User).where(
            or_(func.lower(User.username) == identifier, User.email == identifier)
        )
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", username=login_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    logger.info("user_logged_in", user_id=user.id, role=user.role)
    return token, user


async def ensure_admin_user(db: AsyncSession) -> User | None:
    """Create the configured admin account if it does not exist yet."""
    if not settings.ADMIN_PASSWORD:
        return None

    result = await db.execute(select(User).where(User.username == settings.ADMIN_USERNAME))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        email=settings.ADMIN_EMAIL.lower(),
        username=settings.ADMIN_USERNAME,
        hashed_password=hash_password(settings.ADMIN_PASSWORD),
        role=ROLE_ADMIN,
    )
    db.add(user)
    await db.flush()
    logger.info("admin_user_created", username=user.username)
    return user
