from datetime import date, datetime, timezone

import pytest

from formpanel.validation import (
    field_errors,
    form_constraints,
    normalize_created_at,
    normalize_record,
    parse_date,
    validate_record,
    years_before,
)


TODAY = date(2024, 6, 15)


def _fields(**overrides):
    fields = {
        "name": "Asha Rao",
        "email": "asha@example.com",
        "dob": "1990-04-12",
        "contact": "9876543210",
        "state": "Karnataka",
        "country": "India",
    }
    fields.update(overrides)
    return fields


def test_complete_record_is_accepted():
    assert validate_record(_fields(), today=TODAY) == []


def test_empty_record_reports_every_field_in_order():
    errors = field_errors({}, today=TODAY)

    assert [field for field, _ in errors] == ["name", "email", "dob", "contact", "state", "country"]
    assert errors[0][1] == "Name is required"
    assert errors[1][1] == "Invalid email address"
    assert errors[2][1] == "Invalid date of birth"
    assert errors[3][1] == "Contact must be a valid 10-digit number"
    assert errors[4][1] == "State is required"
    assert errors[5][1] == "Country is required"


@pytest.mark.parametrize(
    "name, message",
    [
        ("A", "Name must be at least 2 characters"),
        ("x" * 51, "Name cannot exceed 50 characters"),
        ("   ", "Name is required"),
    ],
)
def test_name_length_rules(name, message):
    assert validate_record(_fields(name=name), today=TODAY) == [message]


def test_text_is_measured_after_trimming():
    assert validate_record(_fields(state="  K  "), today=TODAY) == ["State must be at least 2 characters"]
    assert validate_record(_fields(country="  " + "y" * 50 + "  "), today=TODAY) == []


@pytest.mark.parametrize("email", ["plainaddress", "a@b", "a b@example.com", "@example.com"])
def test_malformed_email_is_rejected(email):
    assert validate_record(_fields(email=email), today=TODAY) == ["Invalid email address"]


@pytest.mark.parametrize("contact", ["987654321", "98765432100", "98765abcde", "١" * 10])
def test_contact_must_be_ten_ascii_digits(contact):
    assert validate_record(_fields(contact=contact), today=TODAY) == [
        "Contact must be a valid 10-digit number"
    ]


def test_future_and_ancient_dates_of_birth_are_rejected():
    expected = ["Date of birth must be valid and not in the future or more than 120 years ago"]

    assert validate_record(_fields(dob="2024-06-16"), today=TODAY) == expected
    assert validate_record(_fields(dob="1904-06-14"), today=TODAY) == expected


def test_date_of_birth_boundaries_are_inclusive():
    assert validate_record(_fields(dob="2024-06-15"), today=TODAY) == []
    assert validate_record(_fields(dob="1904-06-15"), today=TODAY) == []


def test_unparseable_date_of_birth():
    assert validate_record(_fields(dob="12/04/1990"), today=TODAY) == ["Invalid date of birth"]


def test_iso_datetime_is_accepted_for_date_of_birth():
    assert parse_date("1990-04-12T00:00:00Z") == date(1990, 4, 12)
    assert validate_record(_fields(dob="1990-04-12T08:30:00+05:30"), today=TODAY) == []


def test_partial_validation_skips_absent_fields():
    assert field_errors({"name": "Bo"}, partial=True, today=TODAY) == []
    assert field_errors({"contact": None, "email": "nope"}, partial=True, today=TODAY) == [
        ("email", "Invalid email address")
    ]


def test_partial_validation_still_rejects_empty_strings():
    assert field_errors({"name": ""}, partial=True, today=TODAY) == [("name", "Name is required")]


def test_normalize_trims_lowercases_and_parses():
    normalized = normalize_record(_fields(name="  Asha Rao ", email=" Asha@Example.COM "))

    assert normalized["name"] == "Asha Rao"
    assert normalized["email"] == "asha@example.com"
    assert normalized["dob"] == date(1990, 4, 12)


def test_normalize_keeps_only_present_fields():
    assert normalize_record({"state": " Goa ", "country": None}) == {"state": "Goa"}


def test_years_before_handles_leap_day():
    assert years_before(date(2024, 2, 29), 1) == date(2023, 2, 28)
    assert years_before(date(2024, 2, 29), 4) == date(2020, 2, 29)


def test_normalize_created_at_falls_back_to_now():
    now = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

    assert normalize_created_at(None, now=now) == now
    assert normalize_created_at("not a timestamp", now=now) == now
    assert normalize_created_at("2023-01-02T03:04:05Z", now=now) == datetime(
        2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc
    )
    assert normalize_created_at(datetime(2023, 1, 2), now=now).tzinfo is timezone.utc


def test_form_constraints_mirror_server_rules():
    constraints = form_constraints(TODAY)

    assert constraints["text_min"] == 2
    assert constraints["text_max"] == 50
    assert constraints["dob_max"] == "2024-06-15"
    assert constraints["dob_min"] == "1904-06-15"
