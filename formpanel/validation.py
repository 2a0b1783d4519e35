"""Field-level rules applied before every write of a registration record.

The same constants drive the HTML form attributes so the browser enforces the
rules the server re-checks.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Dict, List, Mapping, Optional, Tuple

EMAIL_PATTERN = r"[^\s@]+@[^\s@]+\.[^\s@]+"
CONTACT_PATTERN = r"[0-9]{10}"
TEXT_MIN_LENGTH = 2
TEXT_MAX_LENGTH = 50
MAX_AGE_YEARS = 120

RECORD_FIELDS = ("name", "email", "dob", "contact", "state", "country")

_EMAIL_RE = re.compile(rf"^{EMAIL_PATTERN}$")
_CONTACT_RE = re.compile(rf"^{CONTACT_PATTERN}$", re.ASCII)

_TEXT_LABELS = {"name": "Name", "state": "State", "country": "Country"}


def years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # 29 February in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def parse_date(value: object) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` or an ISO 8601 datetime into a :class:`date`."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _check_text(field: str, value: object) -> Optional[str]:
    label = _TEXT_LABELS[field]
    text = str(value).strip()
    if not text:
        return f"{label} is required"
    if len(text) < TEXT_MIN_LENGTH:
        return f"{label} must be at least {TEXT_MIN_LENGTH} characters"
    if len(text) > TEXT_MAX_LENGTH:
        return f"{label} cannot exceed {TEXT_MAX_LENGTH} characters"
    return None


def _check_email(value: object) -> Optional[str]:
    if not _EMAIL_RE.match(str(value).strip()):
        return "Invalid email address"
    return None


def _check_dob(value: object, today: date) -> Optional[str]:
    parsed = parse_date(value)
    if parsed is None:
        return "Invalid date of birth"
    if parsed > today or parsed < years_before(today, MAX_AGE_YEARS):
        return (
            "Date of birth must be valid and not in the future or more than "
            f"{MAX_AGE_YEARS} years ago"
        )
    return None


def _check_contact(value: object) -> Optional[str]:
    if not _CONTACT_RE.match(str(value).strip()):
        return "Contact must be a valid 10-digit number"
    return None


def field_errors(
    fields: Mapping[str, object],
    *,
    partial: bool = False,
    today: Optional[date] = None,
) -> List[Tuple[str, str]]:
    """Return ``(field, message)`` for every rule violation, in field order.

    With ``partial`` set, fields that are absent or ``None`` are treated as
    unchanged and skipped.
    """

    today = today or date.today()
    errors: List[Tuple[str, str]] = []
    for field in RECORD_FIELDS:
        value = fields.get(field)
        if value is None:
            if partial:
                continue
            value = ""

        if field == "email":
            message = _check_email(value)
        elif field == "dob":
            message = _check_dob(value, today)
        elif field == "contact":
            message = _check_contact(value)
        else:
            message = _check_text(field, value)

        if message:
            errors.append((field, message))
    return errors


def validate_record(
    fields: Mapping[str, object],
    *,
    partial: bool = False,
    today: Optional[date] = None,
) -> List[str]:
    """Return every violation message for ``fields``; empty means accepted."""

    return [message for _, message in field_errors(fields, partial=partial, today=today)]


def normalize_record(fields: Mapping[str, object]) -> Dict[str, object]:
    """Trim text, lowercase the email and parse the date of birth.

    Only the record fields present in ``fields`` are returned. Callers run
    :func:`validate_record` first.
    """

    normalized: Dict[str, object] = {}
    for field in RECORD_FIELDS:
        value = fields.get(field)
        if value is None:
            continue
        if field == "dob":
            normalized[field] = parse_date(value)
        elif field == "email":
            normalized[field] = str(value).strip().lower()
        else:
            normalized[field] = str(value).strip()
    return normalized


def normalize_created_at(value: object, now: Optional[datetime] = None) -> datetime:
    """Return ``value`` as an aware timestamp, or ``now`` when it is unusable."""

    now = now or datetime.now(timezone.utc)
    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            parsed = None
    if parsed is None:
        return now
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def form_constraints(today: Optional[date] = None) -> Dict[str, object]:
    """HTML attribute values mirroring the server-side rules."""

    today = today or date.today()
    return {
        "text_min": TEXT_MIN_LENGTH,
        "text_max": TEXT_MAX_LENGTH,
        "email_pattern": EMAIL_PATTERN,
        "contact_pattern": CONTACT_PATTERN,
        "dob_min": years_before(today, MAX_AGE_YEARS).isoformat(),
        "dob_max": today.isoformat(),
    }


__all__ = [
    "CONTACT_PATTERN",
    "EMAIL_PATTERN",
    "field_errors",
    "MAX_AGE_YEARS",
    "RECORD_FIELDS",
    "TEXT_MAX_LENGTH",
    "TEXT_MIN_LENGTH",
    "form_constraints",
    "normalize_created_at",
    "normalize_record",
    "parse_date",
    "validate_record",
    "years_before",
]
