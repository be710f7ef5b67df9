"""Manual correction layers: per-object overrides and per-run editor drafts."""
from sqlalchemy import Column, String, DateTime, ForeignKey

from backoffice.db.base import Base, utcnow
from backoffice.models.intake import JSONType


class ObjectIntakeOverride(Base):
    """
    Per-object override patch on top of the active intake run.

    - base_intake_id selects the active (authoritative) run
    - data only ever holds intake schema keys that diverge from raw
    """
    __tablename__ = "object_intake_overrides"

    object_id = Column(String(64), primary_key=True)
    base_intake_id = Column(String(36), ForeignKey("object_intakes.id"))
    data = Column(JSONType, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class IntakeEditDraft(Base):
    """Editing layer scoped to a single run, independent of object overrides."""
    __tablename__ = "intake_edit_drafts"

    intake_id = Column(String(36), ForeignKey("object_intakes.id"), primary_key=True)
    data = Column(JSONType, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
