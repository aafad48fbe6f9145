"""
Google OAuth 2.0 login and callback, plus the bearer-token dependency.

- Login redirects to Google with a CSRF state stored in a short-lived cookie.
- Callback validates state, exchanges code for tokens, upserts the User by
  email with encrypted Google tokens, and returns a fresh gateway bearer token.
- get_current_user resolves "Authorization: Bearer <token>" to a User; every
  non-public endpoint depends on it.
"""
import logging
import secrets
from datetime import datetime, timedelta, UTC
from urllib.parse import urlencode

import requests
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from config import (
    API_TOKEN_MAX_AGE,
    GOOGLE_AUTH_URL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    GOOGLE_SCOPES,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    OAUTH_REQUEST_TIMEOUT,
    OAUTH_STATE_COOKIE_NAME,
    OAUTH_STATE_MAX_AGE,
    SECURE_COOKIES,
)
from crypto import encrypt
from database import get_db
from errors import Unauthorized, UpstreamError, ValidationError
from models import User
from security import api_token_expired, create_api_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth")


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    FastAPI dependency: read the bearer token, load the matching User.
    Raises Unauthorized if the header is missing or no user holds the token.
    """
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Missing token")
    user = db.query(User).filter_by(access_token=token).first()
    if not user:
        raise Unauthorized("Invalid token")
    if api_token_expired(user.access_token_issued_at, API_TOKEN_MAX_AGE):
        raise Unauthorized("Token expired; please log in again")
    return user


def exchange_code(code: str) -> dict:
    """Trade an authorization code for Google tokens."""
    try:
        resp = requests.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": GOOGLE_REDIRECT_URI,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=OAUTH_REQUEST_TIMEOUT,
        )
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Google token exchange failed: %s", e)
        raise UpstreamError("OAuth failed") from e
    if "error" in data or not data.get("access_token"):
        logger.warning(
            "Google token exchange rejected: %s",
            data.get("error_description", data.get("error")),
        )
        raise UpstreamError("OAuth failed")
    return data


def fetch_userinfo(access_token: str) -> dict:
    try:
        resp = requests.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=OAUTH_REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        return resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Google userinfo lookup failed: %s", e)
        raise UpstreamError("OAuth failed") from e


def upsert_user(db: Session, email: str, token_data: dict) -> User:
    """
    Create or update the user by email. The Google access token is always
    replaced; the refresh token only when Google sent a new one. A new
    gateway bearer token is minted either way.
    """
    now = datetime.now(UTC)
    user = db.query(User).filter_by(email=email).first()
    if not user:
        user = User(email=email)
        db.add(user)
    user.access_token = create_api_token()
    user.access_token_issued_at = now
    user.encrypted_google_access_token = encrypt(token_data["access_token"])
    user.google_token_expires_at = now + timedelta(seconds=token_data.get("expires_in", 3600))
    if token_data.get("refresh_token"):
        user.encrypted_google_refresh_token = encrypt(token_data["refresh_token"])
    db.commit()
    return user


@router.get("/login")
def google_login():
    """
    Redirect to Google OAuth consent. offline access + forced consent so
    Google always hands back a refresh token. The random state goes both in
    the URL and in a short-lived cookie for the callback to compare.
    """
    state = secrets.token_urlsafe(32)
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    redirect = RedirectResponse(url=f"{GOOGLE_AUTH_URL}?{urlencode(params)}")
    redirect.set_cookie(
        OAUTH_STATE_COOKIE_NAME,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=SECURE_COOKIES,
        path="/",
    )
    return redirect


@router.get("/callback")
def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Handle redirect from Google: check state, exchange code, upsert user,
    return the gateway bearer token as {"accessToken": ...}.
    """
    if error:
        raise ValidationError(f"OAuth error: {error}")
    if not code or not state:
        raise ValidationError("Missing code or state")

    state_cookie = request.cookies.get(OAUTH_STATE_COOKIE_NAME)
    if not state_cookie or not secrets.compare_digest(state, state_cookie):
        raise ValidationError("Invalid or expired state; please try logging in again")

    token_data = exchange_code(code)
    userinfo = fetch_userinfo(token_data["access_token"])
    email = userinfo.get("email")
    if not email:
        raise UpstreamError("OAuth failed")

    user = upsert_user(db, email, token_data)
    logger.info("User %s logged in", user.email)

    response = JSONResponse({"accessToken": user.access_token})
    response.delete_cookie(OAUTH_STATE_COOKIE_NAME, path="/")
    return response
