"""Request identity: account resolution and the Gmail credential header."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from load_insights.app.config import get_settings
from load_insights.services.auth_service import account_from_payload, decode_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

GMAIL_TOKEN_HEADER = "X-Gmail-Access-Token"


def _bearer_account(request: Request) -> str | None:
    """Account from the Bearer token, None when no token was sent.

    A token that is present but invalid is rejected rather than silently
    downgraded to the shared scope.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = decode_token(auth_header.removeprefix("Bearer "))
    account = account_from_payload(payload) if payload else None
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return account


async def get_account_dep(request: Request) -> str:
    """Dependency: caller's account, or the shared default scope when anonymous."""
    return _bearer_account(request) or get_settings().default_account


async def require_account_dep(request: Request) -> str:
    """Dependency: caller's account; anonymous requests are rejected."""
    account = _bearer_account(request)
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return account


async def get_gmail_token_dep(request: Request) -> str:
    """Dependency: the Gmail read-scope OAuth token obtained by the frontend."""
    token = request.headers.get(GMAIL_TOKEN_HEADER, "").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated. Please sign in with Google.",
        )
    return token


@router.get("/me")
async def me(account: str = Depends(get_account_dep)):
    return {
        "account": account,
        "authenticated": account != get_settings().default_account,
    }
