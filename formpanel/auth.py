"""Session-backed admin gate with a bounded number of login attempts."""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from enum import Enum
from typing import MutableMapping

from fastapi import Request

MAX_LOGIN_ATTEMPTS = 3
LOCKOUT_MESSAGE = "Too many failed attempts. Please try again later."


class LoginResult(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    LOCKED_OUT = "locked_out"


@dataclass
class AdminSession:
    """Admin state carried in the client's session."""

    is_admin: bool = False
    attempts: int = 0

    @classmethod
    def load(cls, session: MutableMapping[str, object]) -> "AdminSession":
        attempts = session.get("attempts", 0)
        if not isinstance(attempts, int) or attempts < 0:
            attempts = 0
        return cls(is_admin=session.get("is_admin") is True, attempts=attempts)

    def save(self, session: MutableMapping[str, object]) -> None:
        session["is_admin"] = self.is_admin
        session["attempts"] = self.attempts

    @property
    def locked_out(self) -> bool:
        return self.attempts >= MAX_LOGIN_ATTEMPTS

    @property
    def remaining_attempts(self) -> int:
        return max(0, MAX_LOGIN_ATTEMPTS - self.attempts)


@dataclass(frozen=True)
class AdminCredentials:
    username: str
    password: str

    def matches(self, username: str, password: str) -> bool:
        # Both comparisons always run.
        user_ok = secrets.compare_digest(username.encode("utf-8"), self.username.encode("utf-8"))
        password_ok = secrets.compare_digest(password.encode("utf-8"), self.password.encode("utf-8"))
        return user_ok and password_ok


def attempt_login(
    state: AdminSession,
    credentials: AdminCredentials,
    username: str,
    password: str,
) -> LoginResult:
    """Apply one login attempt to ``state`` and report the outcome."""

    if state.locked_out:
        return LoginResult.LOCKED_OUT
    if credentials.matches(username, password):
        state.is_admin = True
        state.attempts = 0
        return LoginResult.SUCCESS
    state.attempts += 1
    return LoginResult.FAILED


def failed_login_message(state: AdminSession) -> str:
    return f"Invalid credentials. {state.remaining_attempts} attempts remaining."


def get_admin_session(request: Request) -> AdminSession:
    """FastAPI dependency returning the caller's admin session state."""

    return AdminSession.load(request.session)


__all__ = [
    "AdminCredentials",
    "AdminSession",
    "LOCKOUT_MESSAGE",
    "LoginResult",
    "MAX_LOGIN_ATTEMPTS",
    "attempt_login",
    "failed_login_message",
    "get_admin_session",
]
