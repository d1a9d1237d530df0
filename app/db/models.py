"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CallRecord(Base):
    """Outbound campaign call metadata."""

    __tablename__ = "call_records"

    id = Column(Integer, primary_key=True, index=True)
    call_sid = Column(String, unique=True, index=True, nullable=False)
    prospect_id = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    manager_name = Column(String, nullable=True)
    hotel_name = Column(String, nullable=True)
    recommended_product = Column(String, nullable=True)
    last_product = Column(String, nullable=True)
    status = Column(String, default="queued", nullable=False)  # queued, ringing, in-progress, completed, failed, ...
    duration_seconds = Column(Integer, nullable=True)
    from_number = Column(String, nullable=True)
    to_number = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
