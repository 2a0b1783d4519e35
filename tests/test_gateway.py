import asyncio

import httpx
import pytest

from formpanel.gateway import EmailStatus, MalformedResponse, classify


def _check(gateway, address="asha@example.com"):
    return asyncio.run(gateway.check_email(address))


def test_deliverable_high_quality_address_is_valid(make_gateway):
    calls = []
    gateway = make_gateway({"deliverability": "DELIVERABLE", "quality_score": "0.90"}, calls=calls)

    result = _check(gateway)

    assert result.status is EmailStatus.VALID
    assert result.message == "Email validated"
    assert result.is_valid
    assert len(calls) == 1
    assert calls[0].url.params["email"] == "asha@example.com"
    assert calls[0].url.params["api_key"] == "test-key"


def test_quality_threshold_is_exclusive(make_gateway):
    result = _check(make_gateway({"deliverability": "DELIVERABLE", "quality_score": "0.70"}))

    assert result.status is EmailStatus.INVALID
    assert result.message == "Email deliverable (Quality: 0.70)"


def test_undeliverable_address_is_invalid(make_gateway):
    result = _check(make_gateway({"deliverability": "UNDELIVERABLE", "quality_score": "0.10"}))

    assert result.is_invalid
    assert result.message == "Email undeliverable (Quality: 0.10)"


def test_numeric_quality_score_is_accepted(make_gateway):
    result = _check(make_gateway({"deliverability": "DELIVERABLE", "quality_score": 0.95}))

    assert result.is_valid


@pytest.mark.parametrize(
    "payload",
    [
        {"deliverability": "DELIVERABLE"},
        {"quality_score": "0.99"},
        {"deliverability": "DELIVERABLE", "quality_score": "high"},
        ["DELIVERABLE", "0.99"],
    ],
)
def test_malformed_payload_means_unavailable(make_gateway, payload):
    result = _check(make_gateway(payload))

    assert result.status is EmailStatus.UNAVAILABLE
    assert result.message == "Validation unavailable"


def test_error_status_means_unavailable(make_gateway):
    result = _check(make_gateway({"error": "quota"}, status_code=429))

    assert result.status is EmailStatus.UNAVAILABLE


def test_transport_failure_means_unavailable(make_gateway):
    result = _check(make_gateway(error=httpx.ConnectError("connection refused")))

    assert result.status is EmailStatus.UNAVAILABLE
    assert not result.is_valid
    assert not result.is_invalid


def test_missing_api_key_skips_the_call(make_gateway):
    calls = []

    result = _check(make_gateway(calls=calls, api_key=None))

    assert result.status is EmailStatus.UNAVAILABLE
    assert calls == []


def test_classify_rejects_non_objects():
    with pytest.raises(MalformedResponse):
        classify("DELIVERABLE")
