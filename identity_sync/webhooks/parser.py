import json
import logging
from typing import Optional, Union

from pydantic import ValidationError

from .exceptions import InvalidPayload
from .schemas import WebhookEvent

logger = logging.getLogger(__name__)


def parse_event(body: Union[bytes, str], provider: str, fallback_id: Optional[str] = None) -> WebhookEvent:
    """
    Deserialize an already verified body into a WebhookEvent.

    Provider field names are mapped onto the canonical ones: ``event`` becomes
    ``type`` and ``created_at``/``createdAt``/``timestamp`` become
    ``created_at``. Clerk bodies carry no id, so the svix-id header is passed
    in as ``fallback_id``.
    """
    try:
        payload = json.loads(body)
    except (TypeError, ValueError) as e:
        raise InvalidPayload(f"Body is not valid JSON: {e}")

    if not isinstance(payload, dict):
        raise InvalidPayload("Body must be a JSON object")

    event_id = payload.get("id") or fallback_id
    event_type = payload.get("type") or payload.get("event")
    if not event_id:
        raise InvalidPayload("Missing required field: id")
    if not event_type:
        raise InvalidPayload("Missing required field: type")

    data = payload.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidPayload("Field 'data' must be an object")

    created_at = payload.get("created_at") or payload.get("createdAt") or payload.get("timestamp")

    try:
        return WebhookEvent(
            id=str(event_id),
            type=str(event_type),
            data=data,
            created_at=created_at,
            provider=provider,
        )
    except ValidationError as e:
        raise InvalidPayload(f"Malformed event: {e.errors()}")
    except (OverflowError, OSError) as e:
        raise InvalidPayload(f"Malformed event timestamp: {e}")
