import logging
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_async_db
from .dispatcher import DispatchStatus, WebhookDispatcher
from .exceptions import InvalidPayload, MalformedSignature, SignatureInvalid
from .parser import parse_event
from .schemas import WebhookHealthResponse, WebhookResponse
from .signature import verify_signature, verify_svix

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


def _reject(provider: str, error: Exception) -> HTTPException:
    logger.error(f"{provider} webhook signature verification failed: {error}")
    return HTTPException(status_code=401, detail=f"Invalid signature: {error}")


async def _process(body: bytes, provider: str, db: AsyncSession, fallback_id: Optional[str] = None) -> WebhookResponse:
    """Everything after verification: always acknowledged, failures only logged."""
    try:
        event = parse_event(body, provider, fallback_id=fallback_id)
    except InvalidPayload as e:
        logger.error(f"Rejected {provider} webhook payload: {e}")
        return WebhookResponse(success=False, message=f"Invalid payload: {e}", eventId=fallback_id)

    logger.info(f"Received {provider} webhook: {event.type} ({event.id})")
    result = await WebhookDispatcher(db).dispatch(event)

    if result.status == DispatchStatus.FAILED:
        return WebhookResponse(success=False, message="Webhook processing failed", eventId=event.id)
    if result.status == DispatchStatus.IGNORED:
        return WebhookResponse(success=True, message="Webhook received but no action taken.", eventId=event.id)
    return WebhookResponse(success=True, message="Webhook processed successfully", eventId=event.id)


@router.post("/workos", response_model=WebhookResponse)
async def handle_workos_webhook(
    request: Request,
    workos_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_async_db),
):
    if not settings.workos_webhook_secret:
        logger.error("Missing WORKOS_WEBHOOK_SECRET environment variable")
        raise HTTPException(status_code=500, detail="Webhook secret is not configured.")

    # Raw bytes; the signature covers the exact payload
    payload = await request.body()

    try:
        verify_signature(
            payload,
            workos_signature,
            settings.workos_webhook_secret,
            tolerance=settings.workos_webhook_tolerance_seconds,
        )
    except (MalformedSignature, SignatureInvalid) as e:
        raise _reject("WorkOS", e)

    return await _process(payload, "workos", db)


@router.post("/clerk", response_model=WebhookResponse)
async def handle_clerk_webhook(
    request: Request,
    svix_id: Optional[str] = Header(None),
    svix_timestamp: Optional[str] = Header(None),
    svix_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_async_db),
):
    if not settings.clerk_webhook_secret:
        logger.error("Missing CLERK_WEBHOOK_SECRET environment variable")
        raise HTTPException(status_code=500, detail="Webhook secret is not configured.")

    headers = {
        "svix-id": svix_id,
        "svix-timestamp": svix_timestamp,
        "svix-signature": svix_signature,
    }

    payload = await request.body()

    try:
        verify_svix(payload, headers, settings.clerk_webhook_secret)
    except (MalformedSignature, SignatureInvalid) as e:
        raise _reject("Clerk", e)

    return await _process(payload, "clerk", db, fallback_id=svix_id)


@router.get("/{provider}", response_model=WebhookHealthResponse)
async def webhook_health(provider: Literal["workos", "clerk"]):
    """Liveness probe for the webhook routes; touches nothing."""
    return WebhookHealthResponse(status="healthy", timestamp=datetime.now(timezone.utc))
