import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .models import User

logger = logging.getLogger(__name__)

class UserDAO:
    """
    Persistence helpers for users keyed by the identity provider's subject id.

    Methods flush but never commit; the caller owns the transaction.
    """

    @staticmethod
    async def get_user_by_external_id(db: AsyncSession, external_id: str) -> Optional[User]:
        query = select(User).where(User.external_id == external_id)
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def create_user(
        db: AsyncSession,
        external_id: str,
        email: Optional[str],
        name: Optional[str],
        avatar: Optional[str],
        role: str,
        provider: Optional[str] = None,
        last_event_at: Optional[datetime] = None,
    ) -> User:
        logger.info(f"Creating user for external_id: {external_id}")
        new_user = User(
            external_id=external_id,
            provider=provider,
            email=email or "",
            name=name or "Unknown User",
            avatar=avatar,
            role=role,
            archived=False,
            last_event_at=last_event_at,
        )
        db.add(new_user)
        await db.flush()
        return new_user

    @staticmethod
    async def update_user(
        db: AsyncSession,
        user: User,
        email: Optional[str] = None,
        name: Optional[str] = None,
        avatar: Optional[str] = None,
        role: Optional[str] = None,
        last_event_at: Optional[datetime] = None,
    ) -> User:
        """Overwrite the fields that were supplied and revive an archived user."""
        if email is not None:
            user.email = email
        if name is not None:
            user.name = name
        if avatar is not None:
            user.avatar = avatar
        if role is not None:
            user.role = role
        if user.archived:
            logger.info(f"Reviving archived user {user.id} ({user.external_id})")
            user.archived = False
            user.archived_at = None
        if last_event_at is not None:
            user.last_event_at = last_event_at
        await db.flush()
        return user

    @staticmethod
    async def archive_user(db: AsyncSession, user: User, last_event_at: Optional[datetime] = None) -> User:
        """Soft delete. The row stays so memberships keep pointing at it."""
        if not user.archived:
            user.archived = True
            user.archived_at = datetime.now(timezone.utc)
        if last_event_at is not None:
            user.last_event_at = last_event_at
        await db.flush()
        return user
