"""Inbound webhook routes for the external parser."""
from typing import Optional
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from backoffice.core.config import Settings, get_settings
from backoffice.db.base import get_db
from backoffice.services.webhook import WebhookIngestionService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def raw_body(request: Request) -> bytes:
    """Unparsed request body; signatures are computed over these exact bytes."""
    return await request.body()


@router.post("/parser")
def parser_webhook(
    body: bytes = Depends(raw_body),
    x_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Parser callback for an intake job.

    Returns `{ok: true, idempotent: true}` for jobs that already reached a
    terminal state.
    """
    outcome = WebhookIngestionService(db, settings).ingest(body, x_signature)
    return outcome.to_response()
