# tests/test_auth.py
import pytest
from jose import jwt

from fanconnect import auth, config


def test_token_round_trip():
    token = auth.create_access_token("user-1", role="fan")
    payload = auth.decode_token(token)
    assert payload["sub"] == "user-1"
    assert payload["role"] == "fan"


def test_decode_rejects_bad_tokens():
    with pytest.raises(ValueError):
        auth.decode_token("not-a-jwt")

    forged = jwt.encode({"sub": "user-1"}, "other-secret", algorithm=config.IDENTITY_JWT_ALGORITHM)
    with pytest.raises(ValueError):
        auth.decode_token(forged)

    no_sub = jwt.encode({"role": "fan"}, config.IDENTITY_JWT_SECRET, algorithm=config.IDENTITY_JWT_ALGORITHM)
    with pytest.raises(ValueError):
        auth.decode_token(no_sub)


def test_expired_token_is_rejected():
    token = auth.create_access_token("user-1", expires_minutes=-1)
    with pytest.raises(ValueError):
        auth.decode_token(token)


# -----------------------------
# Session propagation
# -----------------------------
def test_wait_for_session_returns_once_available():
    answers = iter([None, None, "user-1"])
    sleeps = []

    user_id = auth.wait_for_session(lambda: next(answers), attempts=5, delay=0.2, sleep=sleeps.append)

    assert user_id == "user-1"
    assert sleeps == [0.2, 0.2]


def test_wait_for_session_gives_up_after_bounded_attempts():
    calls = []
    sleeps = []

    def lookup():
        calls.append(1)
        return None

    assert auth.wait_for_session(lookup, attempts=4, delay=0.1, sleep=sleeps.append) is None
    assert len(calls) == 4
    assert len(sleeps) == 3


def test_wait_for_session_treats_lookup_errors_as_not_ready():
    answers = iter([RuntimeError("provider not ready"), "user-1"])

    def lookup():
        value = next(answers)
        if isinstance(value, Exception):
            raise value
        return value

    assert auth.wait_for_session(lookup, attempts=3, delay=0, sleep=lambda s: None) == "user-1"
