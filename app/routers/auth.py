"""Google OAuth 2.0 sign-in, logout and current-user routes.

The authorization-code flow is done directly against Google's endpoints
with httpx. The CSRF ``state`` and, after sign-in, the user id live in
the signed session cookie. Without GOOGLE_CLIENT_ID/SECRET the login
routes answer 501 and everything else keeps working for guests.
"""

import logging
import random
import secrets
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from app.config import get_settings
from app.middleware.auth import current_user, login_user, logout_user, require_user
from app.models import User
from app.schemas import AuthStatusResponse, SuccessResponse, UserResponse
from app.services.storage import DuplicateKeyError, Storage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

OAUTH_STATE_KEY = "oauth_state"


class OAuthError(Exception):
    """Google rejected the code exchange or the profile lookup."""


async def exchange_code_for_userinfo(code: str) -> dict:
    """Trade an authorization code for the Google profile of the signed-in user."""
    settings = get_settings()
    async with httpx.AsyncClient(timeout=15.0) as client:
        token_resp = await client.post(GOOGLE_TOKEN_URL, data={
            "code": code,
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "redirect_uri": settings.google_redirect_uri,
            "grant_type": "authorization_code",
        })
        if token_resp.status_code != 200:
            raise OAuthError(f"token exchange returned {token_resp.status_code}")
        access_token = token_resp.json().get("access_token")

        userinfo_resp = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if userinfo_resp.status_code != 200:
            raise OAuthError(f"userinfo returned {userinfo_resp.status_code}")
        return userinfo_resp.json()


def _available_username(storage: Storage, base: str, google_id: str) -> str:
    """``base``, or ``base`` with a random numeric suffix if taken.

    Falls back to the Google subject id, which is unique per account.
    """
    if not storage.get_user_by_username(base):
        return base
    for _ in range(5):
        candidate = f"{base}_{random.randint(0, 999)}"
        if not storage.get_user_by_username(candidate):
            return candidate
    return f"{base}_{google_id}"


def find_or_create_google_user(storage: Storage, profile: dict) -> User:
    """Return the account for this Google profile, creating it on first sign-in."""
    google_id = profile["sub"]
    user = storage.get_user_by_google_id(google_id)
    if user:
        return user

    email: Optional[str] = profile.get("email")
    username = _available_username(storage, profile.get("name") or email or f"user_{google_id}", google_id)
    if email and storage.get_user_by_email(email):
        # Address already belongs to another account; keep it there
        email = None

    try:
        user = storage.create_user({
            "username": username,
            "google_id": google_id,
            "name": profile.get("name"),
            "email": email,
            "password": None,  # No password for Google users
        })
    except DuplicateKeyError:
        # Concurrent first sign-in for the same Google account
        user = storage.get_user_by_google_id(google_id)
        if user is None:
            raise
        return user

    logger.info(f"New user registered via Google: {user.id}")
    return user


@router.get("/auth/google")
async def google_login(request: Request):
    """Redirect the user to Google's OAuth consent screen."""
    settings = get_settings()
    if not settings.google_oauth_enabled:
        raise HTTPException(status_code=501, detail="Google OAuth not configured")

    state = secrets.token_urlsafe(24)
    request.session[OAUTH_STATE_KEY] = state

    params = urlencode({
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
    })
    return RedirectResponse(url=f"{GOOGLE_AUTH_URL}?{params}", status_code=302)


@router.get("/auth/google/callback")
async def google_callback(request: Request, storage: Storage = Depends(get_storage)):
    """Handle Google's callback: sign the user in and redirect to the app."""
    settings = get_settings()
    if not settings.google_oauth_enabled:
        raise HTTPException(status_code=501, detail="Google OAuth not configured")

    code = request.query_params.get("code")
    state = request.query_params.get("state")
    expected_state = request.session.pop(OAUTH_STATE_KEY, None)

    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code from Google")
    if not state or not expected_state or not secrets.compare_digest(state, expected_state):
        logger.warning("OAuth callback with invalid or missing state parameter")
        raise HTTPException(status_code=400, detail="Invalid OAuth state, please try signing in again")

    try:
        profile = await exchange_code_for_userinfo(code)
    except (httpx.HTTPError, OAuthError) as e:
        logger.error(f"Google OAuth failed: {e}")
        raise HTTPException(status_code=400, detail="OAuth authentication failed")

    if not profile.get("sub"):
        raise HTTPException(status_code=400, detail="Missing required user information from Google")

    user = find_or_create_google_user(storage, profile)
    storage.update_user_last_login(user.id)
    login_user(request, user)
    logger.info(f"User {user.id} signed in")

    return RedirectResponse(url=settings.post_login_redirect, status_code=302)


@router.get("/auth/status", response_model=AuthStatusResponse)
def auth_status(user: Optional[User] = Depends(current_user)):
    """Which login methods are available and whether this browser is signed in."""
    return AuthStatusResponse(
        google_enabled=get_settings().google_oauth_enabled,
        authenticated=user is not None,
    )


@router.post("/auth/logout", response_model=SuccessResponse)
def logout(request: Request):
    """Clear the session cookie."""
    logout_user(request)
    return SuccessResponse()


@router.get("/user", response_model=UserResponse)
def get_current_user(user: User = Depends(require_user)):
    """The signed-in user, or 401."""
    return user
