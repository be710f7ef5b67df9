"""Editor draft layer: a patch scoped to one intake run, not the object."""
import logging

from sqlalchemy.orm import Session

from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.db.base import commit_or_raise, utcnow
from backoffice.models.intake import IntakeRun, IntakeResult
from backoffice.models.override import IntakeEditDraft
from backoffice.services.merge import deep_merge, merge_view
from backoffice.services.sanitizer import INTAKE_FIELDS, filter_known, parse_patch

logger = logging.getLogger(__name__)


class EditorDraftService:
    """
    Reads and writes per-run drafts.

    Drafts merge against the run's own extraction result and never touch
    the object-level overrides, also not when the run becomes active.
    """

    def __init__(self, db: Session):
        self.db = db

    def _require_run(self, intake_id: str) -> IntakeRun:
        if not intake_id:
            raise ValidationError("intakeId missing")
        run = self.db.get(IntakeRun, intake_id)
        if run is None:
            raise NotFoundError("intake run not found")
        return run

    def get_view(self, intake_id: str) -> dict:
        self._require_run(intake_id)
        result = self.db.get(IntakeResult, intake_id)
        draft = self.db.get(IntakeEditDraft, intake_id)

        raw = filter_known(result.data) if result else {}
        data = filter_known(draft.data) if draft else {}
        return {
            "raw": raw,
            "draft": data,
            "merged": merge_view(raw, data),
            "rawAt": result.created_at if result else None,
            "draftAt": draft.updated_at if draft else None,
        }

    def save_patch(self, intake_id: str, raw_patch) -> dict:
        """Accumulate a sanitized patch onto the run's draft."""
        self._require_run(intake_id)
        patch = parse_patch(raw_patch)

        draft = self.db.get(IntakeEditDraft, intake_id)
        current = filter_known(draft.data) if draft else {}
        updated = deep_merge(current, patch.values)
        for key in patch.cleared:
            updated.pop(key, None)
        updated = {k: v for k, v in updated.items() if k in INTAKE_FIELDS and v is not None}

        if draft is None:
            draft = IntakeEditDraft(intake_id=intake_id)
            self.db.add(draft)
        draft.data = updated
        draft.updated_at = utcnow()
        commit_or_raise(self.db, "save draft")
        logger.info("Saved editor draft for intake %s (%d fields)", intake_id, len(updated))

        result = self.db.get(IntakeResult, intake_id)
        raw = filter_known(result.data) if result else {}
        return {"data": updated, "merged": merge_view(raw, updated)}
