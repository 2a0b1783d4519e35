"""Domain models for registration records and store outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Union


EXPORT_FIELDS = (
    "name",
    "email",
    "dob",
    "contact",
    "state",
    "country",
    "createdAt",
    "validationStatus",
)


@dataclass(frozen=True)
class UserRecord:
    """A registration stored in the record store."""

    id: str
    name: str
    email: str
    dob: date
    contact: str
    state: str
    country: str
    created_at: datetime
    validation_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "dob": self.dob.isoformat(),
            "contact": self.contact,
            "state": self.state,
            "country": self.country,
            "createdAt": self.created_at.isoformat(),
            "validationStatus": self.validation_status,
        }

    def export_row(self) -> List[str]:
        payload = self.to_dict()
        return [payload[field] or "" for field in EXPORT_FIELDS]


@dataclass(frozen=True)
class RecordPage:
    """One page of records along with the totals needed for pagination."""

    records: List[UserRecord]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total // self.limit))


def parse_positive_int(raw: Optional[str], default: int) -> int:
    """Parse a query-string number, falling back to ``default`` when unusable."""

    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


# Write outcomes. Callers branch on the concrete type.


@dataclass(frozen=True)
class Saved:
    record: UserRecord


@dataclass(frozen=True)
class Conflict:
    field: str
    message: str


@dataclass(frozen=True)
class Failed:
    detail: str


@dataclass(frozen=True)
class NotFound:
    pass


WriteOutcome = Union[Saved, Conflict, Failed, NotFound]


__all__ = [
    "EXPORT_FIELDS",
    "Conflict",
    "Failed",
    "NotFound",
    "RecordPage",
    "Saved",
    "UserRecord",
    "WriteOutcome",
    "parse_positive_int",
]
