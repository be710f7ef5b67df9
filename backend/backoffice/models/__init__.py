"""Database models for the property intake back office."""
from backoffice.models.intake import (
    IntakeRun,
    IntakeJob,
    IntakeResult,
    IntakeStatus,
    TERMINAL_STATUSES,
)
from backoffice.models.override import ObjectIntakeOverride, IntakeEditDraft
from backoffice.models.webhook_event import IntakeWebhookEvent

__all__ = [
    "IntakeRun",
    "IntakeJob",
    "IntakeResult",
    "IntakeStatus",
    "TERMINAL_STATUSES",
    "ObjectIntakeOverride",
    "IntakeEditDraft",
    "IntakeWebhookEvent",
]
