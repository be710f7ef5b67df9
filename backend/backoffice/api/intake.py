"""Intake API routes: upload, run list, editor drafts and dev helpers."""
import logging
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, Request, UploadFile
from sqlalchemy.orm import Session

from backoffice.core.config import Settings, get_settings
from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.db.base import get_db
from backoffice.schemas.intake import (
    DemoRunRequest, EditorSaveRequest, RunListResponse, SimulateRequest, UploadResponse,
)
from backoffice.services.editor import EditorDraftService
from backoffice.services.intake_runs import IntakeRunService, run_summary
from backoffice.services.parser_client import DispatchRequest, dispatch_job
from backoffice.services.storage import BlobStore, get_blob_store
from backoffice.services.webhook import simulate_delivery

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/intake", tags=["intake"])


def callback_url(request: Request, settings: Settings) -> str:
    """Webhook target for the parser: configured URL or same-origin default."""
    if settings.PARSER_WEBHOOK_URL:
        return settings.PARSER_WEBHOOK_URL
    return f"{str(request.base_url).rstrip('/')}/webhooks/parser"


def require_dev_mode(settings: Settings = Depends(get_settings)) -> Settings:
    """Dev-only routes are hidden unless DEBUG or DEV_ROUTES_ENABLED is set."""
    if not settings.dev_mode:
        raise NotFoundError("not found")
    return settings


@router.post("/upload", response_model=UploadResponse)
def upload_intake(
    request: Request,
    background_tasks: BackgroundTasks,
    object_id: Optional[str] = Query(None, alias="objectId"),
    simulate: Optional[str] = Query(None),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_settings),
):
    """
    Upload a PDF for an object and start an intake run.

    - **objectId**: Property the document belongs to
    - **simulate**: `ok` or `fail` to simulate the parser callback (dev only)
    """
    if not object_id:
        raise ValidationError("objectId missing")
    if file is None:
        raise ValidationError("file missing")

    content = file.file.read()
    service = IntakeRunService(db, store)
    run, job = service.create_run(
        object_id, file.filename, content, callback_url(request, settings)
    )

    mode = settings.INTAKE_DEV_AUTOSIMULATE
    if simulate in ("ok", "fail"):
        if settings.dev_mode:
            mode = simulate
        else:
            logger.warning("Ignoring simulate=%s outside dev mode", simulate)

    if mode:
        simulate_delivery(db, settings, job, ok=(mode == "ok"))
        db.refresh(run)
    else:
        background_tasks.add_task(
            dispatch_job,
            settings,
            DispatchRequest(
                job_id=job.id,
                intake_id=run.id,
                file_path=run.upload_storage_path,
                bucket=settings.STORAGE_BUCKET,
                callback_url=job.webhook_target,
            ),
        )

    return {"run": run_summary(run)}


@router.get("/runs", response_model=RunListResponse)
def list_runs(
    object_id: Optional[str] = Query(None, alias="objectId"),
    db: Session = Depends(get_db),
):
    """List all intake runs for an object, newest first."""
    if not object_id:
        raise ValidationError("objectId missing")
    runs = IntakeRunService(db).list_runs(object_id)
    return {"runs": [run_summary(r) for r in runs]}


@router.get("/runs/{intake_id}/file")
def get_run_file(
    intake_id: str,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_settings),
):
    """Signed URL for the document uploaded with a run."""
    url = IntakeRunService(db, store).file_url(intake_id, expires_in=settings.SIGNED_URL_TTL)
    return {"url": url}


@router.get("/editor")
def get_editor_view(
    intake_id: Optional[str] = Query(None, alias="intakeId"),
    db: Session = Depends(get_db),
):
    """Raw extraction, draft and merged view for one run."""
    if not intake_id:
        raise ValidationError("intakeId missing")
    return EditorDraftService(db).get_view(intake_id)


@router.post("/editor/save")
def save_editor_patch(
    request: EditorSaveRequest,
    db: Session = Depends(get_db),
):
    """Merge a patch into the run's editor draft."""
    if not request.intake_id:
        raise ValidationError("intakeId missing")
    result = EditorDraftService(db).save_patch(request.intake_id, request.patch or {})
    return {"ok": True, **result}


@router.post("/simulate")
def simulate_callback(
    request: SimulateRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(require_dev_mode),
):
    """Deliver a simulated parser callback for an existing job."""
    if not request.job_id:
        raise ValidationError("jobId missing")
    job = IntakeRunService(db).get_job(request.job_id)
    if job is None:
        raise NotFoundError("job not found")
    outcome = simulate_delivery(db, settings, job, ok=request.ok, data=request.data)
    return outcome.to_response()


@router.post("/dev/create-dummy")
def create_dummy_run(
    request: DemoRunRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(require_dev_mode),
):
    """Create an already-succeeded run with demo data for an object."""
    run = IntakeRunService(db).create_demo_run(request.object_id, request.variant)
    return {"ok": True, "intakeId": run.id, "raw": run.result.data}
