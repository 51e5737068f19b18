"""Stable identifiers for stored review records."""

from ulid import ULID


def generate_record_id() -> str:
    """Generate a sortable record ID using ULID."""
    return f"rev_{ULID()}"
