"""Chart-ready aggregates for the admin dashboard."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from .database import RecordStore
from .models import UserRecord

logger = logging.getLogger("formpanel.dashboard")

AGE_BOUNDARIES = (0, 18, 30, 45, 60, 120)
OVERFLOW_LABEL = "Other"
UNKNOWN_LABEL = "Unknown"
TOP_STATES_LIMIT = 5
RECENT_LIMIT = 5


@dataclass(frozen=True)
class Series:
    labels: List[str] = field(default_factory=list)
    data: List[int] = field(default_factory=list)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, int]]) -> "Series":
        labels: List[str] = []
        data: List[int] = []
        for label, count in pairs:
            labels.append(label)
            data.append(count)
        return cls(labels=labels, data=data)

    def to_dict(self) -> Dict[str, list]:
        return {"labels": list(self.labels), "data": list(self.data)}


@dataclass(frozen=True)
class Dashboard:
    total_users: int = 0
    users_over_time: Series = field(default_factory=Series)
    users_by_country: Series = field(default_factory=Series)
    age_distribution: Series = field(default_factory=Series)
    top_states: Series = field(default_factory=Series)
    recent_users: List[UserRecord] = field(default_factory=list)

    def charts(self) -> Dict[str, Dict[str, list]]:
        return {
            "usersOverTime": self.users_over_time.to_dict(),
            "usersByCountry": self.users_by_country.to_dict(),
            "ageDistribution": self.age_distribution.to_dict(),
            "topStates": self.top_states.to_dict(),
        }


def age_bucket_label(lower: Optional[int]) -> str:
    if lower is None:
        return OVERFLOW_LABEL
    index = AGE_BOUNDARIES.index(lower)
    return f"{lower}-{AGE_BOUNDARIES[index + 1] - 1}"


def users_over_time(store: RecordStore) -> Series:
    return Series.from_pairs(store.count_by_year())


def users_by_country(store: RecordStore) -> Series:
    return Series.from_pairs(store.count_by_country(UNKNOWN_LABEL))


def age_distribution(store: RecordStore, today: date) -> Series:
    buckets = store.count_by_age_bucket(AGE_BOUNDARIES, today=today)
    return Series.from_pairs((age_bucket_label(lower), count) for lower, count in buckets)


def top_states(store: RecordStore, country: Optional[str]) -> Series:
    if not country or country == UNKNOWN_LABEL:
        return Series()
    return Series.from_pairs(store.count_by_state(country, limit=TOP_STATES_LIMIT))


def recent_users(store: RecordStore) -> List[UserRecord]:
    return store.recent(RECENT_LIMIT)


def build_dashboard(store: RecordStore, *, today: Optional[date] = None) -> Dashboard:
    """Run every dashboard query; any failure propagates to the caller."""

    total = store.count()
    if total == 0:
        return Dashboard()

    today = today or date.today()
    by_country = users_by_country(store)
    leading_country = by_country.labels[0] if by_country.labels else None
    dashboard = Dashboard(
        total_users=total,
        users_over_time=users_over_time(store),
        users_by_country=by_country,
        age_distribution=age_distribution(store, today),
        top_states=top_states(store, leading_country),
        recent_users=recent_users(store),
    )
    logger.debug("Dashboard charts: %s", dashboard.charts())
    return dashboard


__all__ = [
    "AGE_BOUNDARIES",
    "Dashboard",
    "Series",
    "age_bucket_label",
    "age_distribution",
    "build_dashboard",
    "recent_users",
    "top_states",
    "users_by_country",
    "users_over_time",
]
