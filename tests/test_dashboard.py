from datetime import date

import pytest

from formpanel.dashboard import Dashboard, age_bucket_label, build_dashboard
from formpanel.database import StoreError
from formpanel.validation import normalize_record, years_before


TODAY = date(2024, 6, 15)


def _add(store, index, *, country="India", state="Karnataka", age=30, created_at=None):
    fields = normalize_record(
        {
            "name": f"Person {index:02d}",
            "email": f"person{index:02d}@example.com",
            "dob": years_before(TODAY, age).isoformat(),
            "contact": "9876543210",
            "state": state,
            "country": country,
        }
    )
    return store.create(fields, created_at=created_at).record


def test_empty_store_gives_empty_dashboard(store):
    dashboard = build_dashboard(store, today=TODAY)

    assert dashboard == Dashboard()
    assert dashboard.charts() == {
        "usersOverTime": {"labels": [], "data": []},
        "usersByCountry": {"labels": [], "data": []},
        "ageDistribution": {"labels": [], "data": []},
        "topStates": {"labels": [], "data": []},
    }


def test_dashboard_aggregates(store):
    _add(store, 0, state="Karnataka", age=17, created_at="2023-03-01T00:00:00Z")
    _add(store, 1, state="Karnataka", age=18, created_at="2024-01-01T00:00:00Z")
    _add(store, 2, state="Kerala", age=40, created_at="2024-02-01T00:00:00Z")
    _add(store, 3, country="USA", state="Texas", age=65, created_at="2024-03-01T00:00:00Z")

    dashboard = build_dashboard(store, today=TODAY)

    assert dashboard.total_users == 4
    assert dashboard.users_over_time.labels == ["2023", "2024"]
    assert dashboard.users_over_time.data == [1, 3]
    assert dashboard.users_by_country.labels == ["India", "USA"]
    assert dashboard.users_by_country.data == [3, 1]
    assert dashboard.age_distribution.labels == ["0-17", "18-29", "30-44", "60-119"]
    assert dashboard.age_distribution.data == [1, 1, 1, 1]
    assert dashboard.top_states.labels == ["Karnataka", "Kerala"]
    assert dashboard.top_states.data == [2, 1]
    assert [user.name for user in dashboard.recent_users] == [
        "Person 03",
        "Person 02",
        "Person 01",
        "Person 00",
    ]


def test_series_lengths_match(store):
    for index in range(8):
        _add(store, index, country=["India", "Nepal", "Peru"][index % 3], age=20 + index * 15)

    charts = build_dashboard(store, today=TODAY).charts()

    for series in charts.values():
        assert len(series["labels"]) == len(series["data"])
    assert sum(charts["usersByCountry"]["data"]) == 8
    assert "Other" in charts["ageDistribution"]["labels"]


def test_top_states_empty_when_leading_country_unknown(store):
    _add(store, 0, country=" ")
    _add(store, 1, country=" ")
    _add(store, 2, country="India")

    dashboard = build_dashboard(store, today=TODAY)

    assert dashboard.users_by_country.labels == ["Unknown", "India"]
    assert dashboard.top_states.labels == []


def test_recent_users_capped_at_five(store):
    for index in range(7):
        _add(store, index)

    assert len(build_dashboard(store, today=TODAY).recent_users) == 5


def test_store_failures_propagate(store, monkeypatch):
    _add(store, 0)

    def broken():
        raise StoreError("aggregate failed")

    monkeypatch.setattr(store, "count_by_year", broken)

    with pytest.raises(StoreError):
        build_dashboard(store, today=TODAY)


def test_age_bucket_labels():
    assert age_bucket_label(0) == "0-17"
    assert age_bucket_label(45) == "45-59"
    assert age_bucket_label(None) == "Other"
