"""
Google Calendar adapter for study sessions.

Uses the user's stored Google refresh token (granted at sign-in with the
calendar scope) to mirror sessions as events on their primary calendar.
The Google client is blocking, so every API call runs in a worker thread.
"""

import asyncio
import logging
from uuid import UUID

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyworkspace.config import get_settings
from studyworkspace.db.models import StudySession, User
from studyworkspace.services.study_stats import as_utc

logger = logging.getLogger(__name__)
settings = get_settings()

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"

# Google Calendar colour ids per session type
_TYPE_COLORS = {
    "study": "9",  # blue
    "review": "5",  # yellow
    "quiz": "11",  # red
    "flashcards": "2",  # green
}


class CalendarSyncError(Exception):
    """Raised when a calendar operation cannot be completed."""


# Failures from the API itself, from credential refresh, and from the network
_CALL_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError)


def build_event_body(session: StudySession, *, include_reminders: bool = True) -> dict:
    """Translate a study session into a Calendar API event resource."""
    description = session.description or (
        f"Study session: {session.title}\n\nType: {session.type}\n\nCreated by {settings.app_name}"
    )
    body = {
        "summary": f"Study: {session.title}",
        "description": description,
        "start": {"dateTime": as_utc(session.start_time).isoformat(), "timeZone": settings.timezone},
        "end": {"dateTime": as_utc(session.end_time).isoformat(), "timeZone": settings.timezone},
        "colorId": _TYPE_COLORS.get(session.type, "9"),
    }
    if include_reminders:
        body["reminders"] = {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": session.reminder}],
        }
    return body


class GoogleCalendarService:
    """Create, update and delete calendar events for study sessions."""

    async def _get_refresh_token(self, db: AsyncSession, user_id: UUID) -> str | None:
        result = await db.execute(select(User.refresh_token).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def _get_client(self, db: AsyncSession, user_id: UUID):
        refresh_token = await self._get_refresh_token(db, user_id)
        if not refresh_token:
            raise CalendarSyncError(
                "No Google refresh token available. Please re-authenticate with Google."
            )
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            scopes=[CALENDAR_SCOPE],
        )
        try:
            return await asyncio.to_thread(
                build, "calendar", "v3", credentials=credentials, cache_discovery=False
            )
        except _CALL_ERRORS as e:
            raise CalendarSyncError("Could not build the Google Calendar client") from e

    async def has_refresh_token(self, db: AsyncSession, user_id: UUID) -> bool:
        return bool(await self._get_refresh_token(db, user_id))

    async def create_event(self, db: AsyncSession, user_id: UUID, session: StudySession) -> str:
        """Insert an event for the session and return its Google event id."""
        calendar = await self._get_client(db, user_id)
        try:
            event = await asyncio.to_thread(
                calendar.events()
                .insert(calendarId="primary", body=build_event_body(session))
                .execute
            )
        except _CALL_ERRORS as e:
            logger.error("Google Calendar create failed for session %s: %s", session.id, e)
            raise CalendarSyncError("Failed to create calendar event") from e
        return event["id"]

    async def update_event(
        self, db: AsyncSession, user_id: UUID, event_id: str, session: StudySession
    ) -> None:
        calendar = await self._get_client(db, user_id)
        try:
            await asyncio.to_thread(
                calendar.events()
                .update(
                    calendarId="primary",
                    eventId=event_id,
                    body=build_event_body(session, include_reminders=False),
                )
                .execute
            )
        except _CALL_ERRORS as e:
            logger.error("Google Calendar update failed for event %s: %s", event_id, e)
            raise CalendarSyncError("Failed to update calendar event") from e

    async def delete_event(self, db: AsyncSession, user_id: UUID, event_id: str) -> None:
        """Delete an event. An event that is already gone counts as deleted."""
        calendar = await self._get_client(db, user_id)
        try:
            await asyncio.to_thread(
                calendar.events().delete(calendarId="primary", eventId=event_id).execute
            )
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.info("Calendar event %s already deleted", event_id)
                return
            logger.error("Google Calendar delete failed for event %s: %s", event_id, e)
            raise CalendarSyncError("Failed to delete calendar event") from e
        except _CALL_ERRORS as e:
            logger.error("Google Calendar delete failed for event %s: %s", event_id, e)
            raise CalendarSyncError("Failed to delete calendar event") from e

    async def check_access(self, db: AsyncSession, user_id: UUID) -> bool:
        """True if the stored credentials can currently reach the Calendar API."""
        try:
            calendar = await self._get_client(db, user_id)
            await asyncio.to_thread(calendar.calendarList().list(maxResults=1).execute)
        except (CalendarSyncError, *_CALL_ERRORS) as e:
            logger.info("Calendar access check failed for user %s: %s", user_id, e)
            return False
        return True


# Singleton instance
calendar_service = GoogleCalendarService()
