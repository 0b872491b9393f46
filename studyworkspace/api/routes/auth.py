"""
Authentication Routes

Endpoints:
- GET  /auth/google - Redirect to Google consent (sign-in + Calendar scope)
- GET  /auth/google/callback - Exchange the code, upsert user, issue session
- POST /auth/set-token - Store a JWT obtained via redirect as the session cookie
- GET  /auth/me - Get current user profile
- POST /auth/logout - Clear session
- GET  /auth/calendar/status - Can we reach the user's Google Calendar?
- GET  /auth/calendar/reconnect - Consent URL for re-granting Calendar access

Auth Flow:
1. Browser hits /auth/google and is redirected to Google
2. Google redirects back to /auth/google/callback with an authorization code
3. Backend exchanges the code (offline access -> refresh token for Calendar)
4. Backend verifies the id_token with Google's public keys
5. Backend upserts the user, creating a personal workspace on first sign-in
6. Backend sets the JWT cookie and redirects to the SPA with ?token=&workspace=
"""

import asyncio
import logging
import secrets
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, HTTPException, Response, status
from fastapi.responses import RedirectResponse
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from google_auth_oauthlib.flow import Flow
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studyworkspace.api.deps import CurrentUser, DbSession, create_access_token, decode_access_token
from studyworkspace.config import get_settings
from studyworkspace.db.models import User, Workspace, WorkspaceMember, WorkspaceRole
from studyworkspace.schemas.auth import AuthURLResponse, CalendarStatusResponse, SetTokenRequest
from studyworkspace.schemas.base import MessageResponse
from studyworkspace.schemas.user import UserRead, UserResponse
from studyworkspace.services.calendar_service import CALENDAR_SCOPE, calendar_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()

GOOGLE_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    CALENDAR_SCOPE,
]
STATE_COOKIE = "oauth_state"


def _cookie_kwargs() -> dict:
    # For cross-domain deployments (e.g., Vercel + Render), use samesite="none" + secure=True
    return {
        "httponly": True,
        "secure": settings.cookie_cross_domain or settings.environment != "development",
        "samesite": "none" if settings.cookie_cross_domain else "lax",
    }


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=token,
        max_age=settings.jwt_expire_minutes * 60,
        **_cookie_kwargs(),
    )


def _build_flow(state: str | None = None) -> Flow:
    client_config = {
        "web": {
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": [settings.google_redirect_uri],
        }
    }
    flow = Flow.from_client_config(
        client_config,
        scopes=GOOGLE_SCOPES,
        state=state,
        autogenerate_code_verifier=False,
    )
    flow.redirect_uri = settings.google_redirect_uri
    return flow


def build_authorization_url() -> tuple[str, str]:
    """Google consent URL requesting offline access, plus its CSRF state."""
    state = secrets.token_urlsafe(24)
    url, _ = _build_flow(state).authorization_url(
        access_type="offline",
        include_granted_scopes="true",
        prompt="consent",
    )
    return url, state


def _client_redirect(path: str, **params: str) -> RedirectResponse:
    query = f"?{urlencode(params)}" if params else ""
    return RedirectResponse(f"{settings.client_url.rstrip('/')}{path}{query}")


async def upsert_google_user(
    db: AsyncSession,
    *,
    google_id: str,
    email: str,
    display_name: str,
    avatar_url: str,
    refresh_token: str | None,
) -> tuple[User, Workspace]:
    """
    Find or create the user for a Google identity.

    The stored refresh token is only replaced when Google issued a new one.
    New users get a personal workspace with themselves as admin. Returns the
    user and the workspace to land on (their oldest membership).
    """
    result = await db.execute(select(User).where(User.google_id == google_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            google_id=google_id,
            email=email.lower(),
            display_name=display_name,
            avatar_url=avatar_url,
            refresh_token=refresh_token or None,
        )
        db.add(user)
        await db.flush()

        workspace = Workspace(name=f"{display_name}'s Workspace", owner_id=user.id)
        workspace.members.append(
            WorkspaceMember(user_id=user.id, role=WorkspaceRole.ADMIN.value, position=0)
        )
        db.add(workspace)
        await db.flush()
        logger.info("Created user %s with personal workspace %s", user.id, workspace.id)
        return user, workspace

    user.display_name = display_name
    user.avatar_url = avatar_url
    if refresh_token:
        user.refresh_token = refresh_token

    result = await db.execute(
        select(Workspace)
        .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
        .where(WorkspaceMember.user_id == user.id)
        .order_by(WorkspaceMember.created_at.asc())
        .limit(1)
    )
    workspace = result.scalar_one_or_none()
    if workspace is None:
        workspace = Workspace(name=f"{display_name}'s Workspace", owner_id=user.id)
        workspace.members.append(
            WorkspaceMember(user_id=user.id, role=WorkspaceRole.ADMIN.value, position=0)
        )
        db.add(workspace)
        await db.flush()
    return user, workspace


@router.get("/google")
async def google_login() -> RedirectResponse:
    """Start the Google OAuth flow."""
    url, state = build_authorization_url()
    response = RedirectResponse(url)
    response.set_cookie(key=STATE_COOKIE, value=state, max_age=600, **_cookie_kwargs())
    return response


@router.get("/google/callback")
async def google_callback(
    db: DbSession,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    oauth_state: Annotated[str | None, Cookie()] = None,
) -> RedirectResponse:
    """
    Finish the Google OAuth flow.

    Any failure sends the browser back to the SPA login page instead of
    rendering an error here.
    """
    if error or not code:
        logger.warning("Google OAuth returned no code: %s", error)
        return _client_redirect("/login", error="auth_failed")
    if not state or not oauth_state or not secrets.compare_digest(state, oauth_state):
        logger.warning("Google OAuth state mismatch")
        return _client_redirect("/login", error="auth_failed")

    try:
        flow = _build_flow(state)
        await asyncio.to_thread(flow.fetch_token, code=code)
        credentials = flow.credentials

        # Verify the id_token with Google's public keys (signature, expiry, audience)
        idinfo = await asyncio.to_thread(
            google_id_token.verify_oauth2_token,
            credentials.id_token,
            google_requests.Request(),
            settings.google_client_id,
        )
        if idinfo.get("iss") not in ["accounts.google.com", "https://accounts.google.com"]:
            raise ValueError("Invalid issuer")
        email = idinfo.get("email")
        if not email or not idinfo.get("email_verified", False):
            raise ValueError("Google account has no verified email")
    except Exception:
        logger.exception("Google OAuth code exchange failed")
        return _client_redirect("/login", error="auth_failed")

    try:
        user, workspace = await upsert_google_user(
            db,
            google_id=idinfo["sub"],
            email=email,
            display_name=idinfo.get("name") or email,
            avatar_url=idinfo.get("picture", ""),
            refresh_token=credentials.refresh_token,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Google account %s conflicts with an existing user", idinfo["sub"])
        return _client_redirect("/login", error="auth_failed")

    access_token = create_access_token(user.id)
    response = _client_redirect(
        "/auth/callback", token=access_token, workspace=str(workspace.id)
    )
    _set_session_cookie(response, access_token)
    response.delete_cookie(STATE_COOKIE)
    return response


@router.post("/set-token", response_model=MessageResponse)
async def set_token(request: SetTokenRequest, response: Response) -> MessageResponse:
    """
    Store a JWT as the session cookie.

    Used by cross-origin clients that received the token in the OAuth
    redirect and want cookie-based auth from then on.
    """
    if decode_access_token(request.token) is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    _set_session_cookie(response, request.token)
    return MessageResponse(message="Token set")


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    """
    Clear the authentication session.

    This only clears the cookie. A JWT stored elsewhere by the client
    remains valid until expiry.
    """
    response.delete_cookie(key="access_token", **_cookie_kwargs())
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser) -> UserResponse:
    """Get the current authenticated user's profile."""
    return UserResponse(user=UserRead.model_validate(current_user))


@router.get("/calendar/status", response_model=CalendarStatusResponse)
async def calendar_status(current_user: CurrentUser, db: DbSession) -> CalendarStatusResponse:
    """Report whether Calendar sync is usable for the current user."""
    has_token = await calendar_service.has_refresh_token(db, current_user.id)
    connected = has_token and await calendar_service.check_access(db, current_user.id)
    return CalendarStatusResponse(connected=connected, has_refresh_token=has_token)


@router.get("/calendar/reconnect", response_model=AuthURLResponse)
async def calendar_reconnect(current_user: CurrentUser, response: Response) -> AuthURLResponse:
    """Consent URL for re-granting Calendar access (forces a fresh refresh token)."""
    url, state = build_authorization_url()
    response.set_cookie(key=STATE_COOKIE, value=state, max_age=600, **_cookie_kwargs())
    return AuthURLResponse(auth_url=url)
