from datetime import datetime, timedelta, timezone

import jwt
import pytest

from forum.utils.rbac.registry import reset_registry

TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture(autouse=True)
def _isolated_registry(monkeypatch):
    """Each test starts without a cached registry or RBAC config file."""
    monkeypatch.delenv("FORUM_RBAC_CONFIG", raising=False)
    monkeypatch.delenv("FORUM_CONFIG", raising=False)
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    return TEST_JWT_SECRET


@pytest.fixture
def make_token():
    """Build a signed access token for a user record."""
    def _make(user_id="u1", role="user", username="alice", secret=TEST_JWT_SECRET,
              expires_in=timedelta(minutes=15), **extra):
        claims = {"_id": user_id, "role": role, "username": username, **extra}
        claims["exp"] = datetime.now(timezone.utc) + expires_in
        return jwt.encode(claims, secret, algorithm="HS256")
    return _make
