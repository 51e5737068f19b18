"""Loading review histories from YAML or JSON files."""

from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import yaml

from cadence.domain.models import ReviewRecord, as_utc

RECORD_FIELDS = (
    "created_at",
    "score",
    "stability",
    "difficulty",
    "interval_days",
    "repetitions",
    "last_revised_at",
    "next_review_due",
    "user_id",
    "question_id",
    "record_id",
)
TIMESTAMP_FIELDS = ("created_at", "last_revised_at", "next_review_due")
NUMERIC_FIELDS = {
    "score": float,
    "stability": float,
    "difficulty": float,
    "interval_days": float,
    "repetitions": int,
}


class HistoryFileError(ValueError):
    """The history file is not a list of review records."""


def parse_timestamp(value: Any) -> datetime | None:
    """Accept datetimes, dates and ISO-8601 strings; naive values are read as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise HistoryFileError(f"Invalid timestamp: {value!r}") from e
    else:
        raise HistoryFileError(f"Invalid timestamp: {value!r}")

    return as_utc(parsed)


def record_from_mapping(data: dict[str, Any]) -> ReviewRecord:
    if "score" not in data:
        raise HistoryFileError(f"Record is missing 'score': {data}")

    values = {k: data.get(k) for k in RECORD_FIELDS}
    for key in TIMESTAMP_FIELDS:
        values[key] = parse_timestamp(values[key])
    for key, cast in NUMERIC_FIELDS.items():
        if values[key] is None and key != "score":
            continue
        try:
            values[key] = cast(values[key])
        except (TypeError, ValueError) as e:
            raise HistoryFileError(f"Record has a non-numeric {key}: {values[key]!r}") from e
    return ReviewRecord(**values)


def load_history(path: Path) -> list[ReviewRecord]:
    """
    Read review records from a YAML (or JSON) file.

    The document is either a list of records or a mapping with a ``records`` list.
    """
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise HistoryFileError(f"Could not parse {path}: {e}") from e

    if isinstance(raw, dict):
        raw = raw.get("records")
    if not isinstance(raw, list):
        raise HistoryFileError(f"{path} does not contain a list of records")

    records = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise HistoryFileError(f"Record #{i} is not a mapping")
        records.append(record_from_mapping(item))
    return records
