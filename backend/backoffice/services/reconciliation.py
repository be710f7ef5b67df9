"""
Object intake reconciliation.

Three layers per object:
- raw:       ExtractionResult of the active intake run
- overrides: ObjectIntakeOverride.data (manual deltas)
- merged:    deep_merge(raw, overrides), never persisted

Active run = override.base_intake_id, else the latest succeeded run.
Without an active run the placeholder dataset stands in for raw.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from backoffice.core.errors import NotFoundError
from backoffice.db.base import commit_or_raise, utcnow
from backoffice.models.intake import IntakeRun, IntakeResult, IntakeStatus
from backoffice.models.override import ObjectIntakeOverride
from backoffice.services.merge import deep_merge, field_provenance, merge_view
from backoffice.services.sanitizer import (
    OVERRIDABLE_FIELD_NAMES,
    filter_known,
    parse_patch,
)

logger = logging.getLogger(__name__)

# Placeholder raw data so the form renders before any extraction exists
FALLBACK_RAW = {
    "schema_version": "v1",
    "address": "Beispielweg 7, 80331 München",
    "area": 95,
    "rooms": 3,
    "year_built": 1992,
    "energy_rating": 85,
    "description": "Bright 3-room apartment with south-facing balcony. (placeholder)",
}

SOURCE_RUN = "run"
SOURCE_FALLBACK = "fallback"


def run_meta(run: IntakeRun) -> dict:
    """Run entry for the source-switching list."""
    return {
        "id": run.id,
        "filename": run.filename,
        "uploadedAt": run.created_at,
        "finishedAt": run.finished_at,
        "status": run.status,
    }


def prune_overrides(data: Optional[dict]) -> dict:
    """Drop absent values and keys outside the overridable fields."""
    return {
        k: v for k, v in (data or {}).items()
        if k in OVERRIDABLE_FIELD_NAMES and v is not None
    }


class ObjectIntakeService:
    """Reads and writes the per-object override layer."""

    def __init__(self, db: Session):
        self.db = db

    def _override_row(self, object_id: str) -> Optional[ObjectIntakeOverride]:
        return self.db.get(ObjectIntakeOverride, object_id)

    def succeeded_runs(self, object_id: str) -> list[IntakeRun]:
        """Succeeded runs for an object, most recently finished first."""
        return self.db.query(IntakeRun).filter(
            IntakeRun.object_id == object_id,
            IntakeRun.status == IntakeStatus.SUCCEEDED.value,
        ).order_by(IntakeRun.finished_at.desc()).all()

    def latest_succeeded_run_id(self, object_id: str) -> Optional[str]:
        run = self.db.query(IntakeRun).filter(
            IntakeRun.object_id == object_id,
            IntakeRun.status == IntakeStatus.SUCCEEDED.value,
        ).order_by(IntakeRun.finished_at.desc()).first()
        return run.id if run else None

    def resolve_active_run_id(
        self,
        object_id: str,
        row: Optional[ObjectIntakeOverride] = None,
    ) -> Optional[str]:
        if row is not None and row.base_intake_id:
            return row.base_intake_id
        return self.latest_succeeded_run_id(object_id)

    def load_raw(self, intake_id: Optional[str]) -> Optional[dict]:
        """Raw fields of a run's extraction result, or None if there is none."""
        if not intake_id:
            return None
        result = self.db.get(IntakeResult, intake_id)
        if result is None or not isinstance(result.data, dict):
            return None
        return filter_known(result.data)

    def _raw_or_fallback(self, intake_id: Optional[str]) -> tuple[dict, str, Optional[dict]]:
        """(display raw, used source, real raw or None)."""
        raw = self.load_raw(intake_id)
        if raw is None:
            return dict(FALLBACK_RAW), SOURCE_FALLBACK, None
        return raw, SOURCE_RUN, raw

    def _save(
        self,
        object_id: str,
        row: Optional[ObjectIntakeOverride],
        base_intake_id: Optional[str],
        data: dict,
    ) -> ObjectIntakeOverride:
        if row is None:
            row = ObjectIntakeOverride(object_id=object_id)
            self.db.add(row)
        row.base_intake_id = base_intake_id
        row.data = data
        row.updated_at = utcnow()
        commit_or_raise(self.db, "save overrides")
        return row

    def get_state(self, object_id: str) -> dict:
        """Full reconciliation snapshot for one object."""
        row = self._override_row(object_id)
        active_id = self.resolve_active_run_id(object_id, row)
        raw, used_source, _ = self._raw_or_fallback(active_id)
        overrides = prune_overrides(row.data if row else None)

        return {
            "activeIntakeRunId": active_id,
            "usedSource": used_source,
            "raw": raw,
            "overrides": overrides,
            "merged": merge_view(raw, overrides),
            "provenance": field_provenance(raw, overrides, used_source),
            "runs": [run_meta(r) for r in self.succeeded_runs(object_id)],
            "overridesUpdatedAt": row.updated_at if row else None,
        }

    def apply_override_patch(self, object_id: str, raw_patch) -> dict:
        """
        Sanitize a patch and accumulate it onto the existing overrides.

        Values submitted empty are reset; values equal to the active run's
        raw value are not kept as overrides.
        """
        patch = parse_patch(raw_patch, OVERRIDABLE_FIELD_NAMES)
        row = self._override_row(object_id)
        base_id = self.resolve_active_run_id(object_id, row)
        raw, _, real_raw = self._raw_or_fallback(base_id)

        current = prune_overrides(row.data if row else None)
        updated = deep_merge(current, patch.values)
        for key in patch.cleared:
            updated.pop(key, None)
        if real_raw is not None:
            for key, value in patch.values.items():
                if key in real_raw and real_raw[key] == value:
                    updated.pop(key, None)
        updated = prune_overrides(updated)

        self._save(object_id, row, base_id, updated)
        return {"overrides": updated, "merged": merge_view(raw, updated)}

    def reset_fields(self, object_id: str, keys: Optional[Iterable[str]] = None) -> dict:
        """Remove named override keys, or all of them when none are given."""
        keys = [k for k in (keys or []) if k]
        row = self._override_row(object_id)
        current = prune_overrides(row.data if row else None)

        if not keys:
            updated = {}
        else:
            updated = {k: v for k, v in current.items() if k not in keys}

        base_id = row.base_intake_id if row else None
        self._save(object_id, row, base_id, updated)

        raw, _, _ = self._raw_or_fallback(self.resolve_active_run_id(object_id, row))
        return {"overrides": updated, "merged": merge_view(raw, updated)}

    def select_source(self, object_id: str, intake_id: str) -> dict:
        """
        Make a run the active source for an object and rebase overrides.

        Override keys whose value equals the new run's raw value are dropped.
        """
        run = self.db.get(IntakeRun, intake_id)
        if run is None or run.object_id != object_id:
            raise NotFoundError("intake run not found for object")
        raw = self.load_raw(intake_id)
        if raw is None:
            raise NotFoundError("raw not found for intake")

        row = self._override_row(object_id)
        current = prune_overrides(row.data if row else None)
        rebased = {k: v for k, v in current.items() if raw.get(k) != v}
        dropped = sorted(set(current) - set(rebased))

        self._save(object_id, row, intake_id, rebased)
        logger.info(
            "Object %s active intake -> %s (dropped overrides: %s)",
            object_id, intake_id, ", ".join(dropped) or "none",
        )
        return {
            "activeIntakeId": intake_id,
            "raw": raw,
            "overrides": rebased,
            "merged": merge_view(raw, rebased),
        }
