"""
Record normalization.

Converts the heterogeneous shapes produced by the extraction strategies
(positional table cells, key/value DOM rows, arbitrary JSON payloads) into
canonical Record objects. Everything here is pure and never raises on bad
data: unparseable numbers become None and unknown keys land in ``raw``.
"""

import math
from typing import Any

from shiptrace.crawler.models import CandidateKind, RawCandidate, Record

# Canonical field -> accepted source keys (compared case-insensitively)
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "mmsi", "imo", "vessel_id", "shipid"),
    "name": ("name", "vessel_name", "shipname"),
    "flag": ("flag", "country"),
    "current_port": ("current_port", "port", "destination"),
    "lat": ("lat", "latitude"),
    "lon": ("lon", "lng", "longitude"),
    "status": ("status", "nav_status", "navstat"),
}

_ALIAS_TO_FIELD: dict[str, str] = {
    alias: field for field, aliases in FIELD_ALIASES.items() for alias in aliases
}

NUMERIC_FIELDS = frozenset({"lat", "lon"})

# Column order of the generic vessel table (header row excluded)
TABLE_COLUMNS: tuple[str, ...] = ("name", "flag", "current_port", "lat", "lon", "status")

# Wrapper keys under which APIs commonly nest the row list
LIST_KEYS: tuple[str, ...] = ("data", "vessels", "results", "items", "rows", "records")


def to_float(value: Any) -> float | None:
    """Parse a coordinate-like value, returning None instead of raising."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None

    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_text(value: Any) -> str | None:
    """Coerce a scalar to stripped text; empty text becomes None."""
    if value is None:
        return None
    text = value.strip() if isinstance(value, str) else str(value)
    return text or None


def canonical_field(key: Any) -> str | None:
    """Map a source key onto a canonical Record field, if known."""
    return _ALIAS_TO_FIELD.get(str(key).strip().lower())


def _coerce(field: str, value: Any) -> Any:
    if field in NUMERIC_FIELDS:
        return to_float(value)
    return to_text(value)


def map_mapping(obj: dict[str, Any]) -> Record:
    """Map a key/value row (JSON object or DOM field-map row) to a Record.

    The first key that maps onto a canonical field wins; later aliases of the
    same field and all unknown keys are kept in ``raw``.
    """
    fields: dict[str, Any] = {}
    raw: dict[str, Any] = {}

    for key, value in obj.items():
        field = canonical_field(key)
        if field is None or field in fields:
            raw[key] = value
            continue
        fields[field] = _coerce(field, value)

    return Record(**fields, raw=raw or None)


def map_table_row(cells: list[Any]) -> Record:
    """Map positional table cells onto TABLE_COLUMNS.

    Cells beyond the known columns are kept in ``raw`` as a list.
    """
    fields = {
        column: _coerce(column, cells[index])
        for index, column in enumerate(TABLE_COLUMNS)
        if index < len(cells)
    }
    extra = list(cells[len(TABLE_COLUMNS) :])
    return Record(**fields, raw=extra or None)


def _unwrap_rows(payload: dict[str, Any]) -> list[Any] | None:
    for key in LIST_KEYS:
        value = payload.get(key)
        if isinstance(value, list):
            return value
    return None


def normalize_json(payload: Any) -> list[Record]:
    """Normalize a parsed JSON payload into records.

    - list: one record per item (objects mapped, scalars kept as raw)
    - object wrapping a row list under a common key: that list
    - any other object: a single record
    - scalar: a single raw record
    """
    if payload is None:
        return []

    if isinstance(payload, dict):
        rows = _unwrap_rows(payload)
        items: list[Any] = rows if rows is not None else [payload]
    elif isinstance(payload, list):
        items = payload
    else:
        items = [payload]

    records = []
    for item in items:
        record = map_mapping(item) if isinstance(item, dict) else Record(raw=item)
        if not record.is_blank:
            records.append(record)
    return records


def normalize_dom_rows(rows: list[Any]) -> list[Record]:
    """Normalize field-map rows (dicts) or unstructured list items (text)."""
    records = []
    for row in rows:
        if isinstance(row, dict):
            record = map_mapping(row)
        else:
            text = to_text(row)
            if text is None:
                continue
            record = Record(raw=text)
        if not record.is_blank:
            records.append(record)
    return records


def normalize_table(rows: list[Any]) -> list[Record]:
    """Normalize positional data rows (header already removed)."""
    records = []
    for cells in rows:
        if not isinstance(cells, list):
            continue
        record = map_table_row(cells)
        if not record.is_blank:
            records.append(record)
    return records


def normalize(candidate: RawCandidate) -> list[Record]:
    """Normalize any raw candidate into canonical records.

    Args:
        candidate: Candidate produced by one extraction strategy.

    Returns:
        List of records; empty for raw text or empty payloads.
    """
    if candidate.is_empty:
        return []

    if candidate.kind in (CandidateKind.NETWORK_JSON, CandidateKind.EMBEDDED_JSON):
        return normalize_json(candidate.payload)
    if candidate.kind is CandidateKind.DOM_TABLE:
        return normalize_table(candidate.payload)
    if candidate.kind is CandidateKind.DOM_ROWS:
        return normalize_dom_rows(candidate.payload)
    return []
