"""User profile storage."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from claritycall.database import get_session
from claritycall.errors import NotFoundError, ValidationError
from claritycall.logging_config import get_logger
from claritycall.modules.users.models import User, UserCreate, UserPreferences

logger = get_logger(__name__)


class UserService:
    """Create, read and update users and their call preferences."""

    async def create_user(self, data: UserCreate) -> User:
        async with get_session() as session:
            existing = (await session.execute(
                select(User).where(User.email == data.email)
            )).scalar_one_or_none()
            if existing:
                raise ValidationError(f"A user with email {data.email} already exists")
            user = User(**data.model_dump())
            session.add(user)
        logger.info("user_created", user_id=user.id)
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        async with get_session() as session:
            return await session.get(User, user_id)

    async def require_user(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def update_preferences(self, user_id: str, prefs: UserPreferences) -> User:
        async with get_session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            for field, value in prefs.model_dump(exclude_none=True).items():
                setattr(user, field, value)
        logger.info("user_preferences_updated", user_id=user_id)
        return user

    async def list_recurring_call_users(self) -> list[User]:
        """Users who opted into the daily clarity call."""
        async with get_session() as session:
            result = await session.execute(
                select(User).where(User.wants_clarity_calls.is_(True))
            )
            return list(result.scalars().all())
