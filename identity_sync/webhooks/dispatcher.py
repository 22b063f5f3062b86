"""Routes canonical webhook events to the identity synchronizer.

Routing is an exact match on ``event.type`` against a fixed table. Unknown
types are acknowledged without touching the database. A handler failure is
caught here: the transaction is rolled back, the event is dead-lettered for
the reconciliation sweep, and the caller still gets a result it can turn into
a 200 for the provider. Events whose data can never be applied
(InvalidPayload) are logged and dropped instead of dead-lettered.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .crud import FailedEventDAO
from .exceptions import InvalidPayload, UnknownEventType, WebhookException
from .schemas import WebhookEvent
from .sync import IdentitySynchronizer

logger = logging.getLogger(__name__)

# event type -> IdentitySynchronizer method
EVENT_HANDLERS = {
    "user.created": "upsert_user",
    "user.updated": "upsert_user",
    "user.deleted": "archive_user",
    "organization.created": "create_organization",
    "organization.updated": "update_organization",
    "organization.deleted": "archive_organization",
    "organization_membership.created": "upsert_membership",
    "organization_membership.updated": "upsert_membership",
    "organization_membership.deleted": "deactivate_membership",
}


class DispatchStatus(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class DispatchResult:
    event_id: str
    event_type: str
    status: DispatchStatus
    error: Optional[str] = None
    # False when replaying the same event can never succeed
    retryable: bool = True

    @property
    def success(self) -> bool:
        return self.status != DispatchStatus.FAILED


class WebhookDispatcher:

    def __init__(self, db: AsyncSession, synchronizer: Optional[IdentitySynchronizer] = None, dead_letter: bool = True):
        self.db = db
        self.synchronizer = synchronizer or IdentitySynchronizer(db)
        self.dead_letter = dead_letter

    def resolve_handler(self, event_type: str):
        method_name = EVENT_HANDLERS.get(event_type)
        if method_name is None:
            raise UnknownEventType(event_type)
        return getattr(self.synchronizer, method_name)

    async def dispatch(self, event: WebhookEvent) -> DispatchResult:
        logger.info(f"Processing webhook event: {event.type} ({event.id}) from {event.provider}")

        try:
            handler = self.resolve_handler(event.type)
        except UnknownEventType as e:
            logger.info(str(e))
            return DispatchResult(event.id, event.type, DispatchStatus.IGNORED)

        try:
            await handler(event)
        except InvalidPayload as e:
            logger.error(f"Discarding webhook event {event.type} ({event.id}): {e}")
            await self.db.rollback()
            return DispatchResult(event.id, event.type, DispatchStatus.FAILED, error=str(e), retryable=False)
        except Exception as e:
            # Broad on purpose: nothing past verification may fail the delivery.
            if isinstance(e, WebhookException):
                logger.error(f"Error processing webhook event {event.type} ({event.id}): {e}")
            else:
                logger.exception(f"Unexpected error processing webhook event {event.type} ({event.id})")
            await self.db.rollback()
            if self.dead_letter:
                await self._record_failure(event, str(e))
            return DispatchResult(event.id, event.type, DispatchStatus.FAILED, error=str(e))

        return DispatchResult(event.id, event.type, DispatchStatus.PROCESSED)

    async def _record_failure(self, event: WebhookEvent, error: str) -> None:
        try:
            await FailedEventDAO.record_failure(self.db, event, error)
        except Exception:
            await self.db.rollback()
            logger.exception(f"Could not dead-letter webhook event {event.id}; the failure is only in this log")
