"""Tests for core/config.py -- the signing-secret policy."""

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_ACCESS = "a" * 32
GOOD_REFRESH = "b" * 32


@pytest.fixture(autouse=True)
def _no_secret_env(monkeypatch) -> None:
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("JWT_REFRESH_SECRET", raising=False)


def test_valid_secrets_accepted() -> None:
    settings = Settings(_env_file=None, debug=False, jwt_secret=GOOD_ACCESS, jwt_refresh_secret=GOOD_REFRESH)
    assert settings.access_token_ttl_seconds == 900
    assert settings.refresh_token_ttl_seconds == 7 * 24 * 3600
    assert settings.revoke_sessions_on_password_reset is True


def test_production_requires_secrets() -> None:
    with pytest.raises(ValidationError, match="JWT_SECRET"):
        Settings(_env_file=None, debug=False)


def test_debug_generates_distinct_secrets() -> None:
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.jwt_secret) >= 32
    assert len(settings.jwt_refresh_secret) >= 32
    assert settings.jwt_secret != settings.jwt_refresh_secret


def test_short_secret_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(_env_file=None, debug=False, jwt_secret="short", jwt_refresh_secret=GOOD_REFRESH)


def test_shared_secret_rejected() -> None:
    with pytest.raises(ValidationError, match="must be different"):
        Settings(_env_file=None, debug=False, jwt_secret=GOOD_ACCESS, jwt_refresh_secret=GOOD_ACCESS)


@pytest.mark.parametrize("field", ["access_token_ttl_seconds", "session_absolute_ttl_seconds"])
def test_non_positive_ttl_rejected(field: str) -> None:
    with pytest.raises(ValidationError):
        Settings(
            _env_file=None, debug=False, jwt_secret=GOOD_ACCESS, jwt_refresh_secret=GOOD_REFRESH, **{field: 0}
        )


def test_env_vars_are_read(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", GOOD_ACCESS)
    monkeypatch.setenv("JWT_REFRESH_SECRET", GOOD_REFRESH)
    monkeypatch.setenv("BCRYPT_ROUNDS", "10")
    settings = Settings(_env_file=None, debug=False)
    assert settings.jwt_secret == GOOD_ACCESS
    assert settings.bcrypt_rounds == 10
