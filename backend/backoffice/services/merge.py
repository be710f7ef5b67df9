"""
Merge Engine for layered intake data.

merged = deep_merge(raw, overrides)

- Arrays in either value are replaced wholesale by the patch
- Mappings merge key-by-key, recursively
- Scalars in the patch win
- None in the patch means "absent" and keeps the base value
"""
from typing import Any, Mapping, Optional

from backoffice.services.sanitizer import INTAKE_FIELD_NAMES


def deep_merge(base: Any, patch: Any) -> Any:
    """
    Merge patch over base without mutating either argument.

    Keys absent from patch keep the base value; a key that is absent on both
    sides is not introduced into the result.
    """
    if patch is None:
        return base
    if isinstance(base, list) or isinstance(patch, list):
        return list(patch) if isinstance(patch, list) else patch
    if isinstance(patch, Mapping):
        if not isinstance(base, Mapping):
            base = {}
        out = dict(base)
        for key, value in patch.items():
            if value is None:
                continue
            out[key] = deep_merge(base.get(key), value)
        return out
    return patch


def merge_view(raw: Optional[Mapping], overrides: Optional[Mapping]) -> dict:
    """Merged view of raw data and an override/draft patch."""
    return deep_merge(dict(raw or {}), dict(overrides or {}))


def field_provenance(
    raw: Optional[Mapping],
    overrides: Optional[Mapping],
    used_source: str = "run",
) -> dict[str, str]:
    """
    Tag where each intake field's merged value comes from.

    Returns one of 'override', 'run', 'fallback' or 'missing' per field,
    in schema order.
    """
    raw = raw or {}
    overrides = overrides or {}
    tags = {}
    for name in INTAKE_FIELD_NAMES:
        if overrides.get(name) is not None:
            tags[name] = "override"
        elif raw.get(name) is not None:
            tags[name] = used_source
        else:
            tags[name] = "missing"
    return tags
