import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .models import FailedWebhookEvent
from .schemas import WebhookEvent

logger = logging.getLogger(__name__)


class FailedEventDAO:

    @staticmethod
    async def get_by_event_id(db: AsyncSession, event_id: str) -> Optional[FailedWebhookEvent]:
        result = await db.execute(select(FailedWebhookEvent).where(FailedWebhookEvent.event_id == event_id))
        return result.scalars().first()

    @staticmethod
    async def record_failure(db: AsyncSession, event: WebhookEvent, error: str) -> FailedWebhookEvent:
        """Insert or bump the dead letter for ``event``. Commits."""
        failed = await FailedEventDAO.get_by_event_id(db, event.id)
        if failed is None:
            failed = FailedWebhookEvent(
                event_id=event.id,
                provider=event.provider,
                event_type=event.type,
                payload=event.model_dump(mode="json"),
                error=error,
                attempts=1,
                resolved=False,
            )
            db.add(failed)
        else:
            failed.attempts = (failed.attempts or 0) + 1
            failed.error = error
            failed.resolved = False
            failed.resolved_at = None
        await db.commit()
        logger.warning(f"Dead-lettered webhook event {event.id} ({event.type}), attempts={failed.attempts}")
        return failed

    @staticmethod
    async def list_unresolved(db: AsyncSession, limit: int = 100) -> List[FailedWebhookEvent]:
        result = await db.execute(
            select(FailedWebhookEvent)
            .where(FailedWebhookEvent.resolved.is_(False))
            .order_by(FailedWebhookEvent.created_at, FailedWebhookEvent.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def mark_resolved(db: AsyncSession, failed: FailedWebhookEvent) -> FailedWebhookEvent:
        failed.resolved = True
        failed.resolved_at = datetime.now(timezone.utc)
        await db.commit()
        return failed

    @staticmethod
    async def mark_discarded(db: AsyncSession, failed: FailedWebhookEvent, error: str) -> FailedWebhookEvent:
        """Close a dead letter that can never be applied so the sweep stops replaying it."""
        await db.refresh(failed)
        failed.attempts = (failed.attempts or 0) + 1
        failed.error = f"Discarded: {error}"
        failed.resolved = True
        failed.resolved_at = datetime.now(timezone.utc)
        await db.commit()
        logger.warning(f"Discarded dead letter {failed.event_id}: {error}")
        return failed

    @staticmethod
    async def mark_retry_failed(db: AsyncSession, failed: FailedWebhookEvent, error: str) -> FailedWebhookEvent:
        await db.refresh(failed)
        failed.attempts = (failed.attempts or 0) + 1
        failed.error = error
        await db.commit()
        return failed
