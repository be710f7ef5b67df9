"""Intake run, parser job and extraction result models."""
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB

from backoffice.db.base import Base, utcnow

# JSONB on PostgreSQL, generic JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class IntakeStatus(str, Enum):
    """Known run/job statuses. The parser may report others verbatim."""
    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({IntakeStatus.SUCCEEDED.value, IntakeStatus.FAILED.value})


class IntakeRun(Base):
    """
    One attempt to extract structured data from one uploaded file.

    Lifecycle: queued -> processing -> succeeded | failed.
    Terminal states are final.
    """
    __tablename__ = "object_intakes"

    id = Column(String(36), primary_key=True)
    object_id = Column(String(64), nullable=False, index=True)

    upload_storage_path = Column(String(500), nullable=False)
    filename = Column(String(255), nullable=False)

    status = Column(String(32), nullable=False, default=IntakeStatus.QUEUED.value)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    error_text = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    job = relationship("IntakeJob", back_populates="run", uselist=False)
    result = relationship("IntakeResult", back_populates="run", uselist=False)

    __table_args__ = (
        Index("ix_object_intakes_object_status", "object_id", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class IntakeJob(Base):
    """
    Dispatch unit sent to the external parser.

    Its status mirrors the run status; the webhook idempotency guard
    reads this row.
    """
    __tablename__ = "intake_jobs"

    id = Column(String(36), primary_key=True)
    intake_id = Column(String(36), ForeignKey("object_intakes.id"), nullable=False, unique=True)

    status = Column(String(32), nullable=False, default=IntakeStatus.QUEUED.value)
    webhook_target = Column(String(500), nullable=False)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    error_text = Column(Text)

    # Reported by the parser
    duration_ms = Column(Integer)
    parser_version = Column(String(50))

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    run = relationship("IntakeRun", back_populates="job")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class IntakeResult(Base):
    """Extracted raw fields for a succeeded run. One row per run."""
    __tablename__ = "intake_results"

    intake_id = Column(String(36), ForeignKey("object_intakes.id"), primary_key=True)
    data = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    run = relationship("IntakeRun", back_populates="result")
