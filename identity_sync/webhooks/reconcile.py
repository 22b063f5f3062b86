"""
Out-of-band sweep over dead-lettered webhook events.

Run with ``python -m identity_sync.webhooks.reconcile [--limit N]``.
"""
import argparse
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from .crud import FailedEventDAO
from .dispatcher import DispatchStatus, WebhookDispatcher
from .schemas import WebhookEvent

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    resolved: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    discarded: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.resolved) + len(self.failed) + len(self.discarded)


async def reconcile_failed_events(db: AsyncSession, limit: int = 100) -> ReconcileReport:
    """Re-apply unresolved dead letters, oldest first."""
    report = ReconcileReport()
    # The sweep keeps its own bookkeeping, so the dispatcher must not dead-letter again.
    dispatcher = WebhookDispatcher(db, dead_letter=False)

    for failed in await FailedEventDAO.list_unresolved(db, limit=limit):
        # An earlier failed replay rolled back the session and expired this row
        await db.refresh(failed)
        event_id = failed.event_id
        try:
            event = WebhookEvent.model_validate(failed.payload)
        except ValidationError as e:
            logger.error(f"Dead letter {event_id} holds an unreadable payload: {e}")
            await FailedEventDAO.mark_discarded(db, failed, f"Unreadable payload: {e}")
            report.discarded.append(event_id)
            continue

        result = await dispatcher.dispatch(event)
        if result.status == DispatchStatus.FAILED and not result.retryable:
            await FailedEventDAO.mark_discarded(db, failed, result.error or "invalid payload")
            report.discarded.append(event_id)
        elif result.status == DispatchStatus.FAILED:
            await FailedEventDAO.mark_retry_failed(db, failed, result.error or "unknown error")
            report.failed.append(event_id)
        else:
            await FailedEventDAO.mark_resolved(db, failed)
            report.resolved.append(event_id)
            logger.info(f"Reconciled dead letter {event_id} ({failed.event_type})")

    logger.info(
        f"Reconcile sweep finished: {len(report.resolved)} resolved, "
        f"{len(report.failed)} still failing, {len(report.discarded)} discarded"
    )
    return report


async def _run(limit: int) -> ReconcileReport:
    from ..database import close_db, session_scope

    try:
        async with session_scope() as db:
            return await reconcile_failed_events(db, limit=limit)
    finally:
        await close_db()


def main() -> None:
    from ..config import settings

    parser = argparse.ArgumentParser(description="Replay dead-lettered identity webhook events.")
    parser.add_argument("--limit", type=int, default=100, help="maximum number of events to replay")
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    report = asyncio.run(_run(args.limit))
    print(f"resolved={len(report.resolved)} failed={len(report.failed)} discarded={len(report.discarded)}")


if __name__ == "__main__":
    main()
