"""
Study session routes.

Sessions are personal: every member manages only their own sessions in a
workspace. Google Calendar mirroring is optional per session; a calendar
failure never blocks the local change and is reported as a warning.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyworkspace.api.deps import (
    DbSession,
    WorkspaceAccess,
    WorkspaceMember,
    get_workspace_resource_or_404,
)
from studyworkspace.config import get_settings, sanitize_error
from studyworkspace.db.models import SessionStatus, StudyMaterial, StudySession, utcnow
from studyworkspace.schemas.auth import CalendarStatusResponse
from studyworkspace.schemas.sessions import (
    ReminderListResponse,
    ReminderRead,
    SessionCreate,
    SessionListResponse,
    SessionRead,
    SessionResponse,
    SessionUpdate,
    StudyStats,
    StudyStatsResponse,
)
from studyworkspace.services import calendar_service
from studyworkspace.services.calendar_service import CalendarSyncError
from studyworkspace.services.study_stats import (
    actual_duration_minutes,
    as_utc,
    calculate_streak,
    start_of_week,
    upcoming_reminders,
    weekly_totals,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/workspaces/{workspace_id}/sessions", tags=["sessions"])


def _local_tz() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def _own_sessions(access: WorkspaceAccess):
    return select(StudySession).where(
        StudySession.workspace_id == access.workspace_id,
        StudySession.user_id == access.user.id,
    )


async def _get_own_session(
    db: AsyncSession, session_id: UUID, access: WorkspaceAccess
) -> StudySession:
    result = await db.execute(_own_sessions(access).where(StudySession.id == session_id))
    session = result.scalar_one_or_none()
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Study session not found")
    return session


def _sync_warning(error: CalendarSyncError) -> str:
    return f"Session saved, but Google Calendar sync failed: {error}"


async def _check_material(
    db: AsyncSession, material_id: UUID | None, access: WorkspaceAccess
) -> None:
    if material_id is not None:
        await get_workspace_resource_or_404(
            db, StudyMaterial, material_id, access.workspace_id, detail="Material not found"
        )


# =============================================================================
# LIST / CREATE
# =============================================================================


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    access: WorkspaceMember,
    db: DbSession,
    start: datetime | None = None,
    end: datetime | None = None,
    status_filter: str | None = Query(None, alias="status"),
):
    """
    List the caller's sessions in ascending start order.

    Filters:
    - start/end: only sessions starting inside [start, end]
    - status: scheduled, completed, missed or cancelled
    """
    query = _own_sessions(access)
    if start is not None:
        query = query.where(StudySession.start_time >= as_utc(start))
    if end is not None:
        query = query.where(StudySession.start_time <= as_utc(end))
    if status_filter:
        query = query.where(StudySession.status == status_filter)

    result = await db.execute(query.order_by(StudySession.start_time.asc()))
    return SessionListResponse(
        sessions=[SessionRead.model_validate(s) for s in result.scalars().all()]
    )


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(data: SessionCreate, access: WorkspaceMember, db: DbSession):
    """Create a study session, optionally mirrored to Google Calendar."""
    await _check_material(db, data.material_id, access)
    session = StudySession(
        workspace_id=access.workspace_id,
        user_id=access.user.id,
        title=data.title,
        description=data.description,
        start_time=data.start_time,
        end_time=data.end_time,
        material_id=data.material_id,
        type=data.type,
        reminder=data.reminder if data.reminder is not None else settings.default_reminder_minutes,
    )
    db.add(session)
    await db.flush()

    warning = None
    if data.sync_to_google:
        try:
            session.google_event_id = await calendar_service.create_event(
                db, access.user.id, session
            )
        except CalendarSyncError as e:
            logger.warning("Calendar sync failed for new session %s: %s", session.id, e)
            warning = _sync_warning(e)

    await db.commit()
    await db.refresh(session)

    return SessionResponse(
        session=SessionRead.model_validate(session),
        message="Study session created",
        warning=warning,
    )


# =============================================================================
# STATS / REMINDERS / CALENDAR STATUS
# =============================================================================


@router.get("/stats", response_model=StudyStatsResponse)
async def get_stats(access: WorkspaceMember, db: DbSession):
    """Hours studied this week, completed count, streak and the next sessions."""
    now = utcnow()
    tz = _local_tz()

    result = await db.execute(
        _own_sessions(access).where(StudySession.status == SessionStatus.COMPLETED.value)
    )
    completed = result.scalars().all()
    totals = weekly_totals(completed, start_of_week(now, tz))
    streak = calculate_streak((s.completed_at for s in completed), now, tz)

    result = await db.execute(
        _own_sessions(access)
        .where(
            StudySession.status == SessionStatus.SCHEDULED.value,
            StudySession.start_time >= now,
        )
        .order_by(StudySession.start_time.asc())
        .limit(settings.upcoming_sessions_limit)
    )
    upcoming = result.scalars().all()

    return StudyStatsResponse(
        stats=StudyStats(
            hours_this_week=totals.hours,
            sessions_completed=totals.sessions_completed,
            streak=streak,
        ),
        upcoming=[SessionRead.model_validate(s) for s in upcoming],
    )


@router.get("/reminders", response_model=ReminderListResponse)
async def get_reminders(
    access: WorkspaceMember,
    db: DbSession,
    lookahead_hours: int | None = Query(None, alias="lookaheadHours", ge=1, le=24 * 7),
):
    """Reminder fire times for scheduled sessions starting soon."""
    now = utcnow()
    lookahead = timedelta(hours=lookahead_hours or settings.reminder_lookahead_hours)

    result = await db.execute(
        _own_sessions(access).where(
            StudySession.status == SessionStatus.SCHEDULED.value,
            StudySession.start_time >= now,
            StudySession.start_time <= now + lookahead,
        )
    )
    reminders = upcoming_reminders(result.scalars().all(), now, lookahead)
    return ReminderListResponse(
        reminders=[
            ReminderRead(
                session_id=r.session_id,
                title=r.title,
                start_time=r.start_time,
                remind_at=r.remind_at,
            )
            for r in reminders
        ]
    )


@router.get(
    "/calendar/status",
    response_model=CalendarStatusResponse,
    response_model_exclude_none=True,
)
async def get_calendar_status(access: WorkspaceMember, db: DbSession):
    """Whether the caller's Google Calendar is reachable."""
    connected = await calendar_service.check_access(db, access.user.id)
    return CalendarStatusResponse(connected=connected)


# =============================================================================
# SINGLE SESSION
# =============================================================================


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: UUID, access: WorkspaceMember, db: DbSession):
    session = await _get_own_session(db, session_id, access)
    return SessionResponse(session=SessionRead.model_validate(session))


@router.patch("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: UUID, data: SessionUpdate, access: WorkspaceMember, db: DbSession
):
    """
    Partially update a session.

    Status may only move from scheduled to completed, missed or cancelled.
    Completing a session stamps completedAt and its actual duration.
    """
    session = await _get_own_session(db, session_id, access)
    updates = data.model_dump(exclude_unset=True)
    sync_to_google = updates.pop("sync_to_google", None)

    for key in ("title", "start_time", "end_time", "type", "reminder", "description", "notes"):
        if key in updates and updates[key] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=f"{key} cannot be null"
            )

    new_start = as_utc(updates.get("start_time", session.start_time))
    new_end = as_utc(updates.get("end_time", session.end_time))
    if new_end <= new_start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="End time must be after start time"
        )

    if "material_id" in updates:
        await _check_material(db, updates["material_id"], access)

    new_status = updates.pop("status", None)
    if new_status is not None and new_status != session.status:
        if session.status != SessionStatus.SCHEDULED.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot change status of a {session.status} session",
            )
        if new_status == SessionStatus.SCHEDULED.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status transition"
            )
        session.status = new_status
        if new_status == SessionStatus.COMPLETED.value:
            session.completed_at = utcnow()
            session.actual_duration = actual_duration_minutes(new_start, new_end)

    for key, value in updates.items():
        setattr(session, key, value)
    await db.flush()

    warning = None
    try:
        if session.google_event_id and sync_to_google is not False:
            await calendar_service.update_event(
                db, access.user.id, session.google_event_id, session
            )
        elif not session.google_event_id and sync_to_google:
            session.google_event_id = await calendar_service.create_event(
                db, access.user.id, session
            )
    except CalendarSyncError as e:
        logger.warning("Calendar sync failed for session %s: %s", session.id, e)
        warning = _sync_warning(e)

    await db.commit()
    await db.refresh(session)

    return SessionResponse(
        session=SessionRead.model_validate(session),
        message="Study session updated",
        warning=warning,
    )


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: UUID, access: WorkspaceMember, db: DbSession):
    """Delete a session and, best effort, its calendar event."""
    session = await _get_own_session(db, session_id, access)

    if session.google_event_id:
        try:
            await calendar_service.delete_event(db, access.user.id, session.google_event_id)
        except CalendarSyncError as e:
            logger.warning(
                "Could not delete calendar event %s for session %s: %s",
                session.google_event_id, session.id, e,
            )

    await db.delete(session)
    await db.commit()


@router.post("/{session_id}/sync", response_model=SessionResponse)
async def sync_session(session_id: UUID, access: WorkspaceMember, db: DbSession):
    """Push an unsynced session to Google Calendar."""
    session = await _get_own_session(db, session_id, access)
    if session.google_event_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session is already synced with Google Calendar",
        )

    try:
        session.google_event_id = await calendar_service.create_event(db, access.user.id, session)
    except CalendarSyncError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=sanitize_error(e, generic_message="Failed to sync with Google Calendar."),
        )
    await db.commit()
    await db.refresh(session)

    return SessionResponse(
        session=SessionRead.model_validate(session),
        message="Session synced with Google Calendar",
    )
