"""Field-by-field merge of a re-extracted load onto its canonical record.

Every ``LoadRecord`` field is assigned a kind, and each kind has one presence
predicate and one merge function. A candidate value replaces the existing one
only when it is present, so later extractions fill gaps but never blank out
known data.
"""

from enum import Enum

from load_insights.domain.schemas import LoadRecord


class FieldKind(str, Enum):
    SCALAR = "scalar"
    LIST = "list"
    OBJECT = "object"


# Key and derived fields are not merged: load_id identifies the record and
# rpm is recomputed from the merged rate_total and miles.
LOAD_FIELD_KINDS: dict[str, FieldKind] = {
    "broker_name": FieldKind.SCALAR,
    "broker_email": FieldKind.SCALAR,
    "broker_phone": FieldKind.SCALAR,
    "carrier_name": FieldKind.SCALAR,
    "carrier_mc": FieldKind.SCALAR,
    "carrier_email": FieldKind.SCALAR,
    "carrier_phone": FieldKind.SCALAR,
    "carrier_address": FieldKind.SCALAR,
    "rate_total": FieldKind.SCALAR,
    "linehaul_rate": FieldKind.SCALAR,
    "accessorials": FieldKind.LIST,
    "equipment_type": FieldKind.SCALAR,
    "temp_min": FieldKind.SCALAR,
    "temp_max": FieldKind.SCALAR,
    "stops": FieldKind.LIST,
    "commodity": FieldKind.SCALAR,
    "weight": FieldKind.SCALAR,
    "miles": FieldKind.SCALAR,
    "notes": FieldKind.SCALAR,
    "source_file": FieldKind.SCALAR,
    "source_channel": FieldKind.SCALAR,
    "extracted_at": FieldKind.SCALAR,
}

# Changes to these alone do not count as a refresh
PROVENANCE_FIELDS = frozenset({"source_file", "source_channel", "extracted_at"})


# ---------------------------------------------------------------------------
# Presence predicates
# ---------------------------------------------------------------------------


def scalar_present(value) -> bool:
    """Not None, not a blank string, not numeric zero.

    Zero is what the extractor emits for a number it could not find, so it
    carries no information.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return value != 0
    return True


def list_present(value) -> bool:
    return bool(value)


def object_present(value) -> bool:
    return isinstance(value, dict) and any(scalar_present(v) for v in value.values())


# ---------------------------------------------------------------------------
# Per-kind merge
# ---------------------------------------------------------------------------


def merge_scalar(existing, candidate):
    return candidate if scalar_present(candidate) else existing


def merge_list(existing, candidate):
    return candidate if list_present(candidate) else existing


# No LoadRecord field is an object today; kept so a nested mapping field
# (e.g. a carrier contact block) can be added with FieldKind.OBJECT alone.
def merge_object(existing, candidate):
    """Shallow key-by-key merge under the scalar presence rule."""
    if not object_present(candidate):
        return existing
    merged = dict(existing or {})
    for key, value in candidate.items():
        if scalar_present(value):
            merged[key] = value
    return merged


_MERGERS = {
    FieldKind.SCALAR: merge_scalar,
    FieldKind.LIST: merge_list,
    FieldKind.OBJECT: merge_object,
}


def merge_value(kind: FieldKind, existing, candidate):
    return _MERGERS[kind](existing, candidate)


def merge_loads(existing: LoadRecord, candidate: LoadRecord) -> tuple[LoadRecord, bool]:
    """Merge ``candidate`` onto ``existing``.

    Returns the merged record and whether any non-provenance field changed
    (a "refresh" as opposed to an identical re-ingestion).
    """
    # mode="json" gives plain dicts for stops/accessorials so list
    # comparisons are by value
    current = existing.model_dump(mode="json")
    incoming = candidate.model_dump(mode="json")

    updates = {}
    refreshed = False
    for field, kind in LOAD_FIELD_KINDS.items():
        merged = merge_value(kind, current[field], incoming[field])
        if merged != current[field]:
            updates[field] = merged
            if field not in PROVENANCE_FIELDS:
                refreshed = True

    if not updates:
        return existing, False

    result = LoadRecord.model_validate({**current, **updates})
    result = result.model_copy(update={"rpm": result.compute_rpm()})
    return result, refreshed
