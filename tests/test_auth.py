from formpanel.auth import (
    AdminCredentials,
    AdminSession,
    LoginResult,
    attempt_login,
    failed_login_message,
)


CREDENTIALS = AdminCredentials("admin", "admin123")


def test_correct_credentials_sign_in_and_reset_attempts():
    state = AdminSession(attempts=2)

    assert attempt_login(state, CREDENTIALS, "admin", "admin123") is LoginResult.SUCCESS
    assert state.is_admin is True
    assert state.attempts == 0


def test_failures_count_down_remaining_attempts():
    state = AdminSession()
    messages = []

    for _ in range(3):
        assert attempt_login(state, CREDENTIALS, "admin", "wrong") is LoginResult.FAILED
        messages.append(failed_login_message(state))

    assert messages == [
        "Invalid credentials. 2 attempts remaining.",
        "Invalid credentials. 1 attempts remaining.",
        "Invalid credentials. 0 attempts remaining.",
    ]
    assert state.locked_out


def test_locked_out_session_rejects_correct_credentials():
    state = AdminSession(attempts=3)

    assert attempt_login(state, CREDENTIALS, "admin", "admin123") is LoginResult.LOCKED_OUT
    assert state.is_admin is False
    assert state.attempts == 3


def test_username_must_match_too():
    assert not CREDENTIALS.matches("root", "admin123")
    assert CREDENTIALS.matches("admin", "admin123")


def test_session_round_trip_and_garbage_values():
    session = {}
    AdminSession(is_admin=True, attempts=1).save(session)

    assert session == {"is_admin": True, "attempts": 1}
    assert AdminSession.load(session) == AdminSession(is_admin=True, attempts=1)
    assert AdminSession.load({"is_admin": "yes", "attempts": "many"}) == AdminSession()
