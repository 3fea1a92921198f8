"""
Credit Timeline - Payload Transforms

Pure helpers shared by validation and the inserters.
"""
import hashlib
import json
from datetime import date, datetime, timezone
from typing import Any, Optional


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def compute_payload_hash(data: Any) -> str:
    """
    SHA-256 of a payload, invariant to key ordering.

    Keys are sorted at every object level before hashing, so two
    structurally identical payloads hash identically regardless of the
    field order they arrived in. Raises TypeError for values that cannot
    be serialized.
    """
    canonical = json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _first_present(*values):
    """First value that is not None; empty strings count as present."""
    return next((v for v in values if v is not None), None)


def _format_number(value) -> str:
    """Integral values print without a fractional part: 1500.0 -> "1500"."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def derive_metric_value_key(metric) -> str:
    """
    Deterministic value key for a monthly metric row.

    - payment_status: raw status code, then canonical status, then text
    - numeric metrics: the number, integral values without a fraction
    - otherwise: the text value
    Only missing (None) values fall through; an empty string is kept.
    Prefixed with the metric type.
    """
    if metric.metric_type == "payment_status":
        value_part = _first_present(metric.raw_status_code, metric.canonical_status, metric.value_text, "unknown")
    elif metric.value_numeric is not None:
        value_part = _format_number(metric.value_numeric)
    else:
        value_part = _first_present(metric.value_text, "unknown")

    return f"{metric.metric_type}:{value_part.strip()}"
