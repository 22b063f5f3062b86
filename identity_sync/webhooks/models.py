from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, JSON
from sqlalchemy.sql import func

from ..database import Base


class FailedWebhookEvent(Base):
    """Dead-letter row for an event that verified but could not be applied."""
    __tablename__ = "failed_webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(255), unique=True, index=True, nullable=False)
    provider = Column(String(32), nullable=False)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)  # canonical WebhookEvent, JSON mode
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    resolved = Column(Boolean, nullable=False, default=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
