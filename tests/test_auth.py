"""
Descope token validation and the authenticated-account dependency.
"""
import jwt
import pytest

import auth
from app import dependencies
from app.dependencies import get_current_account
from core.errors import UnauthorizedError
from main import app


def test_expired_token_is_rejected(monkeypatch):
    def expired(token, leeway):
        raise jwt.ExpiredSignatureError("expired")

    monkeypatch.setattr(auth, "_decode", expired)

    with pytest.raises(UnauthorizedError) as exc_info:
        auth.validate_descope_jwt("token")

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Session expired"


def test_clock_skew_retries_with_fallback_leeway(monkeypatch):
    leeways = []

    def decode(token, leeway):
        leeways.append(leeway)
        if len(leeways) == 1:
            raise jwt.ImmatureSignatureError("not yet valid")
        return {"sub": "descope-1"}

    monkeypatch.setattr(auth, "_decode", decode)

    user = auth.validate_descope_jwt("token")

    assert user["userId"] == "descope-1"
    assert leeways == [auth.config.DESCOPE_JWT_LEEWAY, auth.config.DESCOPE_JWT_LEEWAY_FALLBACK]


def test_token_without_subject_is_rejected(monkeypatch):
    monkeypatch.setattr(auth, "_decode", lambda token, leeway: {"email": "a@b.c"})

    with pytest.raises(UnauthorizedError):
        auth.validate_descope_jwt("token")


@pytest.fixture
def real_auth(api_client):
    """Use the real bearer-token dependency instead of the test header."""
    app.dependency_overrides.pop(get_current_account, None)
    return api_client


@pytest.mark.asyncio
async def test_missing_token_uses_fail_envelope(real_auth):
    response = await real_auth.post("/api/v1/messages", json={"chat_id": 1, "content": "hi"})

    assert response.status_code == 401
    assert response.json() == {
        "status": "fail",
        "reason": "unauthorized",
        "message": "Authorization token missing.",
    }


@pytest.mark.asyncio
async def test_unknown_subject_is_not_found(real_auth, monkeypatch):
    monkeypatch.setattr(
        dependencies, "validate_descope_jwt", lambda token: {"userId": "nobody", "claims": {}}
    )

    response = await real_auth.get(
        "/api/v1/chat/chats", headers={"Authorization": "Bearer token"}
    )

    assert response.status_code == 404
    assert response.json()["reason"] == "not_found"


@pytest.mark.asyncio
async def test_deactivated_account_is_forbidden(seed, real_auth, monkeypatch):
    await seed.account(role="male", is_active=False)
    monkeypatch.setattr(
        dependencies, "validate_descope_jwt", lambda token: {"userId": "descope-1", "claims": {}}
    )

    response = await real_auth.get(
        "/api/v1/chat/chats", headers={"Authorization": "Bearer token"}
    )

    assert response.status_code == 403
    assert response.json()["reason"] == "forbidden"


@pytest.mark.asyncio
async def test_valid_token_resolves_account(seed, real_auth, monkeypatch):
    await seed.account(role="male")
    monkeypatch.setattr(
        dependencies, "validate_descope_jwt", lambda token: {"userId": "descope-1", "claims": {}}
    )

    response = await real_auth.get(
        "/api/v1/chat/chats", headers={"Authorization": "Bearer token"}
    )

    assert response.status_code == 200
