"""Client for the third-party email deliverability service."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from .config import DEFAULT_EMAIL_VALIDATION_URL

logger = logging.getLogger("formpanel.gateway")

QUALITY_THRESHOLD = 0.7
UNAVAILABLE_MESSAGE = "Validation unavailable"


class EmailStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class EmailCheck:
    """Outcome of a single deliverability lookup."""

    status: EmailStatus
    message: str

    @property
    def is_valid(self) -> bool:
        return self.status is EmailStatus.VALID

    @property
    def is_invalid(self) -> bool:
        return self.status is EmailStatus.INVALID


class MalformedResponse(ValueError):
    """The service answered with a payload we cannot interpret."""


def classify(payload: object) -> EmailCheck:
    """Turn the service's JSON payload into an :class:`EmailCheck`."""

    if not isinstance(payload, dict):
        raise MalformedResponse("Response body is not an object")
    deliverability = payload.get("deliverability")
    raw_score = payload.get("quality_score")
    if not isinstance(deliverability, str) or isinstance(raw_score, bool):
        raise MalformedResponse("Response is missing deliverability or quality_score")
    if not isinstance(raw_score, (str, int, float)):
        raise MalformedResponse("quality_score has an unexpected type")
    try:
        score = float(raw_score)
    except ValueError as exc:
        raise MalformedResponse(f"quality_score {raw_score!r} is not numeric") from exc

    if deliverability == "DELIVERABLE" and score > QUALITY_THRESHOLD:
        return EmailCheck(EmailStatus.VALID, "Email validated")
    return EmailCheck(
        EmailStatus.INVALID,
        f"Email {deliverability.lower()} (Quality: {raw_score})",
    )


class EmailValidationGateway:
    """Single best-effort deliverability check per address, without retries."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = DEFAULT_EMAIL_VALIDATION_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def check_email(self, address: str) -> EmailCheck:
        if not self._api_key:
            logger.warning("No email validation API key configured; skipping check for %s", address)
            return EmailCheck(EmailStatus.UNAVAILABLE, UNAVAILABLE_MESSAGE)

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(
                    self._base_url,
                    params={"api_key": self._api_key, "email": address},
                )
                response.raise_for_status()
                result = classify(response.json())
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Email validation error: service responded with %s: %s",
                exc.response.status_code,
                exc.response.text[:200],
            )
        except (httpx.HTTPError, MalformedResponse, ValueError) as exc:
            logger.error("Email validation error: %s", exc)
        except Exception:  # pragma: no cover - unexpected client failures
            logger.exception("Unexpected email validation failure")
        else:
            logger.info("Email validation for %s: %s", address, result.message)
            return result

        return EmailCheck(EmailStatus.UNAVAILABLE, UNAVAILABLE_MESSAGE)


__all__ = [
    "EmailCheck",
    "EmailStatus",
    "EmailValidationGateway",
    "MalformedResponse",
    "QUALITY_THRESHOLD",
    "UNAVAILABLE_MESSAGE",
    "classify",
]
