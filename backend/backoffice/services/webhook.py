"""
Webhook ingestion for parser callbacks.

Order of operations per delivery:
1. Verify the HMAC signature over the exact raw body
2. Record the delivery in the audit log (always, committed first)
3. Reject malformed bodies / unknown jobs
4. Idempotency guard: terminal jobs are acknowledged without changes
5. Apply the state transition

Signature validity is logged but only enforced when
WEBHOOK_ENFORCE_SIGNATURE is set.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from backoffice.core.config import Settings
from backoffice.core.errors import NotFoundError, SignatureError, ValidationError
from backoffice.db.base import commit_or_raise
from backoffice.models.intake import IntakeJob, IntakeStatus
from backoffice.models.webhook_event import IntakeWebhookEvent
from backoffice.services.intake_runs import IntakeRunService
from backoffice.services.signing import sign_payload, verify_signature

logger = logging.getLogger(__name__)

MAX_STATUS_LENGTH = 32


@dataclass
class WebhookOutcome:
    """Result reported back to the parser."""
    idempotent: bool = False

    def to_response(self) -> dict:
        if self.idempotent:
            return {"ok": True, "idempotent": True}
        return {"ok": True}


def decode_event(raw_body: bytes) -> Optional[dict]:
    """Parse a webhook body; None if it is not a JSON object."""
    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return event if isinstance(event, dict) else None


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


class WebhookIngestionService:
    """Applies signed parser callbacks to the intake state machine."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.runs = IntakeRunService(db)

    def ingest(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        signature_valid = verify_signature(
            raw_body, signature, self.settings.PARSER_WEBHOOK_SECRET
        )
        event = decode_event(raw_body)
        job_id = event.get("job_id") if event else None
        job_id = str(job_id) if job_id not in (None, "") else None

        self._record(job_id, event, raw_body, signature_valid)

        if not signature_valid:
            logger.warning("Invalid webhook signature for job %s", job_id)
            if self.settings.WEBHOOK_ENFORCE_SIGNATURE:
                raise SignatureError("invalid signature")

        if event is None:
            raise ValidationError("webhook body must be a JSON object")
        if not job_id:
            raise ValidationError("job_id missing")

        job = self.db.get(IntakeJob, job_id)
        if job is None:
            logger.warning("Webhook for unknown job %s", job_id)
            raise NotFoundError("job not found")

        if job.is_terminal:
            logger.info("Job %s already %s; webhook acknowledged idempotently", job_id, job.status)
            return WebhookOutcome(idempotent=True)

        status = event.get("status")
        status = str(status)[:MAX_STATUS_LENGTH] if status else IntakeStatus.PROCESSING.value

        data = event.get("data")
        if status == IntakeStatus.SUCCEEDED.value and data is not None and not isinstance(data, Mapping):
            raise ValidationError("data must be an object")

        error = event.get("error")
        self.runs.apply_event(
            job,
            status,
            data=data,
            error=str(error) if error is not None else None,
            duration_ms=_optional_int(event.get("duration_ms")),
            parser_version=str(event["parser_version"])[:50] if event.get("parser_version") else None,
        )
        return WebhookOutcome()

    def _record(
        self,
        job_id: Optional[str],
        event: Optional[dict],
        raw_body: bytes,
        signature_valid: bool,
    ) -> None:
        if event is None:
            event_type = "job.malformed"
            payload = {"raw": raw_body.decode("utf-8", errors="replace")}
        else:
            event_type = f"job.{event.get('status') or 'unknown'}"[:64]
            payload = event

        self.db.add(IntakeWebhookEvent(
            job_id=job_id,
            event_type=event_type,
            payload=payload,
            signature_valid=signature_valid,
        ))
        commit_or_raise(self.db, "record webhook event")


def build_simulated_event(
    job: IntakeJob,
    ok: bool,
    data: Optional[dict] = None,
    error: Optional[str] = None,
) -> dict:
    """Parser payload used by the development simulation paths."""
    if ok:
        return {
            "job_id": job.id,
            "intake_id": job.intake_id,
            "status": IntakeStatus.SUCCEEDED.value,
            "data": data if data is not None else {
                "schema_version": "v1",
                "address": "Musterstraße 12",
                "area": 120,
            },
            "duration_ms": 1234,
            "parser_version": "dev-sim",
        }
    return {
        "job_id": job.id,
        "intake_id": job.intake_id,
        "status": IntakeStatus.FAILED.value,
        "error": error or "Simulated failure: parser could not read PDF",
        "duration_ms": 1234,
        "parser_version": "dev-sim",
    }


def simulate_delivery(
    db: Session,
    settings: Settings,
    job: IntakeJob,
    ok: bool,
    data: Optional[dict] = None,
) -> WebhookOutcome:
    """
    Deliver a simulated parser callback through the regular ingestion path.

    The body is serialized and signed exactly like a real parser delivery.
    """
    raw_body = json.dumps(build_simulated_event(job, ok, data=data)).encode("utf-8")
    secret = settings.PARSER_WEBHOOK_SECRET
    signature = sign_payload(raw_body, secret) if secret else None
    logger.info("Simulating %s delivery for job %s", "success" if ok else "failure", job.id)
    return WebhookIngestionService(db, settings).ingest(raw_body, signature)
