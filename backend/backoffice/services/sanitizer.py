"""
Sanitizer for intake patches.

Every patch that enters the override or draft layer passes through here.
Only fields of the intake schema survive; values are coerced to the
field's declared type or dropped.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from backoffice.core.errors import ValidationError


@dataclass(frozen=True)
class IntakeField:
    """A named, typed field of the intake schema."""
    name: str
    kind: str  # "string" | "number"
    allowed: Optional[frozenset] = None


# Ordered intake schema
INTAKE_SCHEMA: tuple[IntakeField, ...] = (
    IntakeField("schema_version", "string", allowed=frozenset({"v1"})),
    IntakeField("address", "string"),
    IntakeField("area", "number"),
    IntakeField("rooms", "number"),
    IntakeField("year_built", "number"),
    IntakeField("energy_rating", "number"),
    IntakeField("description", "string"),
)

INTAKE_FIELDS = {f.name: f for f in INTAKE_SCHEMA}
INTAKE_FIELD_NAMES = tuple(f.name for f in INTAKE_SCHEMA)

# Fields an operator may override (schema_version is owned by the parser)
OVERRIDABLE_FIELD_NAMES = tuple(n for n in INTAKE_FIELD_NAMES if n != "schema_version")


@dataclass
class SparsePatch:
    """
    Sanitized patch.

    values: fields that resolved to a defined value
    cleared: fields that were submitted but resolved to absent (reset)
    """
    values: dict = field(default_factory=dict)
    cleared: set = field(default_factory=set)


def coerce_number(value: Any) -> Optional[float]:
    """Parse a numeric value; None for empty, non-numeric or non-finite input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None
    elif not isinstance(value, (int, float)):
        return None

    try:
        number = float(value)
    except (OverflowError, ValueError):
        # unparsable strings, ints beyond float range
        return None

    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


def coerce_string(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str) or value == "":
        return None
    return value


def coerce_field(definition: IntakeField, value: Any) -> Any:
    """Coerce one value to its field type; None means absent."""
    if definition.kind == "number":
        coerced = coerce_number(value)
    else:
        coerced = coerce_string(value)
    if definition.allowed is not None and coerced not in definition.allowed:
        return None
    return coerced


def parse_patch(patch: Any, allowed_fields: Optional[tuple] = None) -> SparsePatch:
    """
    Sanitize an arbitrary patch into a SparsePatch.

    Unknown keys are dropped silently. None input is an empty patch;
    any other non-mapping input is rejected.
    """
    if patch is None:
        return SparsePatch()
    if not isinstance(patch, Mapping):
        raise ValidationError("patch must be an object")

    names = allowed_fields or INTAKE_FIELD_NAMES
    result = SparsePatch()
    for key, value in patch.items():
        if key not in names:
            continue
        coerced = coerce_field(INTAKE_FIELDS[key], value)
        if coerced is None:
            result.cleared.add(key)
        else:
            result.values[key] = coerced
    return result


def sanitize(patch: Any) -> dict:
    """Whitelist-filter and coerce a patch, keeping only defined values."""
    return parse_patch(patch).values


def filter_known(data: Optional[Mapping]) -> dict:
    """Keep only intake schema keys, without coercion."""
    if not isinstance(data, Mapping):
        return {}
    return {k: v for k, v in data.items() if k in INTAKE_FIELDS}
