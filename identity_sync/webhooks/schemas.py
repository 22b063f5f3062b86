from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WebhookEvent(BaseModel):
    """Provider-agnostic event. Immutable once parsed."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    provider: str = "unknown"

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, value: Any) -> Any:
        # Unix seconds or milliseconds; strings are left to pydantic
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            try:
                if value > 10 ** 12:
                    value = value / 1000
                return datetime.fromtimestamp(value, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                raise ValueError(f"timestamp out of range: {value}")
        return value

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class WebhookResponse(BaseModel):
    success: bool
    message: str
    eventId: Optional[str] = None


class WebhookHealthResponse(BaseModel):
    status: str
    timestamp: datetime
    service: str = "webhook-handler"
