"""Object intake routes: reconciliation state, overrides and active source."""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.errors import ValidationError
from backoffice.db.base import get_db
from backoffice.schemas.intake import OverridePatchRequest, SourceSelectRequest
from backoffice.services.reconciliation import ObjectIntakeService

router = APIRouter(prefix="/objects", tags=["objects"])


@router.get("/{object_id}/intake-state")
def get_intake_state(object_id: str, db: Session = Depends(get_db)):
    """
    Reconciliation snapshot for an object.

    Falls back to a placeholder dataset when no run has succeeded yet.
    """
    return ObjectIntakeService(db).get_state(object_id)


@router.post("/{object_id}/overrides")
def patch_overrides(
    object_id: str,
    request: OverridePatchRequest,
    db: Session = Depends(get_db),
):
    """Merge a sparse patch into the object's overrides."""
    result = ObjectIntakeService(db).apply_override_patch(object_id, request.patch or {})
    return {"ok": True, **result}


@router.delete("/{object_id}/overrides")
def reset_overrides(
    object_id: str,
    keys: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """
    Reset override fields.

    - **keys**: Comma-separated field names; all fields when omitted
    """
    key_list = [k.strip() for k in (keys or "").split(",") if k.strip()]
    result = ObjectIntakeService(db).reset_fields(object_id, key_list)
    return {"ok": True, **result}


@router.post("/{object_id}/intake-source")
def select_intake_source(
    object_id: str,
    request: SourceSelectRequest,
    db: Session = Depends(get_db),
):
    """Make a succeeded run the active source and rebase overrides."""
    if not request.intake_id:
        raise ValidationError("intakeId missing")
    result = ObjectIntakeService(db).select_source(object_id, request.intake_id)
    return {"ok": True, **result}
