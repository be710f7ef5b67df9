"""
Intake Run State Machine.

Transitions:
- create:   blob stored, run + job inserted as 'queued'
- dispatch: run + job move to 'processing' with started_at
- complete: webhook delivers 'succeeded' (result upserted) or 'failed'
- any other reported status is stored verbatim as an intermediate status

Terminal states ('succeeded', 'failed') are final.
"""
import logging
import uuid
from pathlib import PurePosixPath
from typing import Optional

from sqlalchemy.orm import Session

from backoffice.core.errors import NotFoundError, PersistenceError, StorageError, ValidationError
from backoffice.db.base import commit_or_raise, utcnow
from backoffice.models.intake import IntakeRun, IntakeJob, IntakeResult, IntakeStatus
from backoffice.services.sanitizer import sanitize
from backoffice.services.storage import BlobStore

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "upload.pdf"

# Demo datasets for seeding objects without a real parser run
DEMO_DATASETS = {
    "apartment": {
        "schema_version": "v1",
        "address": "Beispielweg 7, 80331 München",
        "area": 95,
        "rooms": 3,
        "year_built": 1992,
        "energy_rating": 85,
        "description": "Apartment (demo).",
    },
    "house": {
        "schema_version": "v1",
        "address": "Gartenstraße 5, 85221 Dachau",
        "area": 145,
        "rooms": 5,
        "year_built": 1978,
        "energy_rating": 112,
        "description": "Detached house (demo).",
    },
}


def clean_filename(filename: Optional[str]) -> str:
    """Strip directory components from a client-supplied filename."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    return name or DEFAULT_FILENAME


def run_summary(run: IntakeRun) -> dict:
    """Run DTO used by the upload and run-list endpoints."""
    return {
        "id": run.id,
        "filename": run.filename or DEFAULT_FILENAME,
        "uploadedAt": run.created_at,
        "status": run.status,
    }


class IntakeRunService:
    """Creates intake runs and applies parser events to run/job pairs."""

    def __init__(self, db: Session, store: Optional[BlobStore] = None):
        self.db = db
        self.store = store

    def create_run(
        self,
        object_id: str,
        filename: Optional[str],
        content: bytes,
        callback_url: str,
    ) -> tuple[IntakeRun, IntakeJob]:
        """
        Store the upload, then create the run/job pair and mark it processing.

        If the blob write fails nothing is persisted.
        """
        if not object_id:
            raise ValidationError("objectId missing")
        if not content:
            raise ValidationError("file is empty")
        if self.store is None:
            raise StorageError("no blob store configured")

        intake_id = str(uuid.uuid4())
        filename = clean_filename(filename)
        path = f"{object_id}/{intake_id}/{filename}"

        self.store.upload(path, content, content_type="application/pdf")

        run = IntakeRun(
            id=intake_id,
            object_id=object_id,
            upload_storage_path=path,
            filename=filename,
            status=IntakeStatus.QUEUED.value,
        )
        job = IntakeJob(
            id=str(uuid.uuid4()),
            intake_id=intake_id,
            status=IntakeStatus.QUEUED.value,
            webhook_target=callback_url,
        )
        self.db.add(run)
        self.db.add(job)
        try:
            commit_or_raise(self.db, "create intake run")
        except PersistenceError:
            self._discard_blob(path)
            raise

        self.mark_processing(run, job)
        logger.info("Created intake run %s (job %s) for object %s", run.id, job.id, object_id)
        return run, job

    def _discard_blob(self, path: str) -> None:
        try:
            self.store.remove(path)
        except StorageError as e:
            logger.warning("Could not remove orphaned upload %s: %s", path, e)

    def mark_processing(self, run: IntakeRun, job: IntakeJob) -> None:
        now = utcnow()
        for row in (job, run):
            row.status = IntakeStatus.PROCESSING.value
            row.started_at = now
        commit_or_raise(self.db, "mark intake processing")

    def get_run(self, intake_id: str) -> IntakeRun:
        run = self.db.get(IntakeRun, intake_id) if intake_id else None
        if run is None:
            raise NotFoundError("intake run not found")
        return run

    def get_job(self, job_id: str) -> Optional[IntakeJob]:
        return self.db.get(IntakeJob, job_id)

    def list_runs(self, object_id: str) -> list[IntakeRun]:
        """All runs for an object, newest first."""
        return self.db.query(IntakeRun).filter(
            IntakeRun.object_id == object_id
        ).order_by(IntakeRun.created_at.desc()).all()

    def apply_event(
        self,
        job: IntakeJob,
        status: str,
        data: Optional[dict] = None,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
        parser_version: Optional[str] = None,
    ) -> bool:
        """
        Apply one parser event to a job and its run.

        Returns False without side effects if the job is already terminal.
        """
        if job.is_terminal:
            return False

        run = job.run
        now = utcnow()

        if status == IntakeStatus.SUCCEEDED.value:
            raw = sanitize(data or {})
            result = self.db.get(IntakeResult, run.id)
            if result is None:
                self.db.add(IntakeResult(intake_id=run.id, data=raw, created_at=now))
            else:
                result.data = raw
                result.created_at = now
            for row in (job, run):
                row.status = status
                row.finished_at = now
        elif status == IntakeStatus.FAILED.value:
            for row in (job, run):
                row.status = status
                row.finished_at = now
                row.error_text = error or "unknown"
        else:
            for row in (job, run):
                row.status = status or IntakeStatus.PROCESSING.value

        if duration_ms is not None:
            job.duration_ms = duration_ms
        if parser_version:
            job.parser_version = parser_version

        commit_or_raise(self.db, "apply intake event")
        logger.info("Job %s / run %s -> %s", job.id, run.id, job.status)
        return True

    def create_demo_run(self, object_id: str, variant: str = "apartment") -> IntakeRun:
        """Insert an already-succeeded run with a demo dataset."""
        if not object_id:
            raise ValidationError("objectId missing")
        if variant not in DEMO_DATASETS:
            raise ValidationError(f"unknown demo variant: {variant}")
        raw = DEMO_DATASETS[variant]
        now = utcnow()
        intake_id = str(uuid.uuid4())

        run = IntakeRun(
            id=intake_id,
            object_id=object_id,
            upload_storage_path="dummy",
            filename=f"dummy_{int(now.timestamp() * 1000)}.pdf",
            status=IntakeStatus.SUCCEEDED.value,
            started_at=now,
            finished_at=now,
        )
        job = IntakeJob(
            id=str(uuid.uuid4()),
            intake_id=intake_id,
            status=IntakeStatus.SUCCEEDED.value,
            webhook_target="dummy",
            started_at=now,
            finished_at=now,
        )
        self.db.add(run)
        self.db.add(job)
        self.db.add(IntakeResult(intake_id=intake_id, data=dict(raw), created_at=now))
        commit_or_raise(self.db, "create demo run")
        logger.info("Created demo run %s (%s) for object %s", intake_id, variant, object_id)
        return run

    def file_url(self, intake_id: str, expires_in: int = 60) -> str:
        """Signed URL for a run's uploaded document."""
        run = self.get_run(intake_id)
        if self.store is None:
            raise StorageError("no blob store configured")
        return self.store.signed_url(run.upload_storage_path, expires_in=expires_in)
