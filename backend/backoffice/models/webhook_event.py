"""Append-only audit log of inbound parser callbacks."""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Index

from backoffice.db.base import Base, utcnow
from backoffice.models.intake import JSONType


class IntakeWebhookEvent(Base):
    """
    One row per inbound webhook delivery, whether or not it was applied.

    job_id is nullable so malformed deliveries are still recorded.
    """
    __tablename__ = "intake_webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Text)
    event_type = Column(String(64), nullable=False)
    payload = Column(JSONType)
    signature_valid = Column(Boolean, nullable=False, default=False)
    received_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_intake_webhook_events_job_id", "job_id"),
    )
