"""Tests for bearer token handling and the application shell."""

from httpx import ASGITransport, AsyncClient
from jose import jwt

from load_insights.app.config import get_settings
from load_insights.services.auth_service import (
    account_from_payload,
    create_access_token,
    decode_token,
)


def test_round_trip_claims():
    payload = decode_token(create_access_token("Owner@Example.com"))
    assert payload["email"] == "Owner@Example.com"
    assert account_from_payload(payload) == "owner@example.com"


def test_expired_token_rejected():
    assert decode_token(create_access_token("a@x.com", expires_minutes=-5)) is None


def test_foreign_signature_rejected():
    settings = get_settings()
    token = jwt.encode({"email": "a@x.com"}, "some-other-secret", algorithm=settings.jwt_algorithm)
    assert decode_token(token) is None


def test_account_falls_back_to_sub():
    assert account_from_payload({"sub": "B@X.com"}) == "b@x.com"
    assert account_from_payload({"sub": 42}) is None
    assert account_from_payload({}) is None


async def test_health():
    from load_insights.app.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        resp = await client.get("/health")

    assert resp.json() == {"status": "ok", "service": "load-insights"}
