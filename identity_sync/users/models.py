from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(255), unique=True, index=True, nullable=False)  # Identity provider subject id
    provider = Column(String(32), nullable=True)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    avatar = Column(String, nullable=True)
    role = Column(String(32), nullable=False, default="student")
    archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    # Provider-side time of the last event applied to this row
    last_event_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    memberships = relationship(
        "OrganizationMembership",
        back_populates="user",
        passive_deletes=True
    )
