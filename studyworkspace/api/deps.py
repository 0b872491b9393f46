"""
FastAPI Dependencies for Authentication and Authorization.

Key patterns:
1. get_current_user: Extracts and validates JWT, returns User object
2. get_workspace_access: Resolves a workspace and the caller's membership role
3. require_workspace_editor: Role gate for mutating workspace routes

Security model:
- JWT stored in HttpOnly cookie (recommended) or Authorization header
- Workspace membership is the only authorization concept: any member may
  read, only admins and editors may mutate shared workspace content
- All workspace queries are scoped by workspace_id at the SQL level
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

from fastapi import Cookie, Depends, Header, HTTPException, status
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from studyworkspace.config import get_settings
from studyworkspace.db.models import User, Workspace, WorkspaceRole
from studyworkspace.db.session import get_db

settings = get_settings()

EDITOR_ROLES = frozenset({WorkspaceRole.ADMIN.value, WorkspaceRole.EDITOR.value})


# =============================================================================
# JWT UTILITIES
# =============================================================================


def create_access_token(user_id: UUID) -> str:
    """
    Create a JWT access token for a user.

    Token payload contains:
    - sub: user_id as string (standard JWT subject claim)
    - exp: expiration timestamp

    We do NOT store sensitive data in JWT (email, name, refresh token).
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": str(user_id),
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID | None:
    """
    Decode and validate a JWT access token.

    Returns user_id if valid, None if invalid/expired.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        user_id_str = payload.get("sub")
        if user_id_str is None:
            return None
        return UUID(user_id_str)
    except (JWTError, ValueError):
        return None


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
    access_token: Annotated[str | None, Cookie()] = None,
) -> str:
    """
    Extract JWT token from request.

    Supports two methods (in order of preference):
    1. HttpOnly cookie named 'access_token'
    2. Authorization header: 'Bearer <token>' (cross-origin clients)
    """
    if access_token:
        return access_token

    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_request)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Validate JWT and return the current authenticated user.

    Raises 401 if:
    - Token is missing, invalid, or expired
    - User no longer exists in database
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = decode_access_token(token)
    if user_id is None:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise credentials_exception

    return user


# Type alias for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# WORKSPACE AUTHORIZATION
# =============================================================================


@dataclass
class WorkspaceAccess:
    """Resolved workspace plus the caller's role in it."""

    workspace: Workspace
    user: User
    role: str

    @property
    def workspace_id(self) -> UUID:
        return self.workspace.id

    @property
    def can_edit(self) -> bool:
        return self.role in EDITOR_ROLES


async def get_workspace_access(
    workspace_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> WorkspaceAccess:
    """
    Resolve the workspace in the path and verify membership.

    404 if the workspace does not exist, 403 if the caller is not a member.
    """
    result = await db.execute(
        select(Workspace)
        .options(selectinload(Workspace.members))
        .where(Workspace.id == workspace_id)
    )
    workspace = result.scalar_one_or_none()
    if workspace is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workspace not found")

    role = workspace.member_role(current_user.id)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: You are not a member of this workspace",
        )

    return WorkspaceAccess(workspace=workspace, user=current_user, role=role)


async def require_workspace_editor(
    access: Annotated[WorkspaceAccess, Depends(get_workspace_access)],
) -> WorkspaceAccess:
    """Allow only admins and editors through."""
    if not access.can_edit:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Requires admin or editor role",
        )
    return access


WorkspaceMember = Annotated[WorkspaceAccess, Depends(get_workspace_access)]
WorkspaceEditor = Annotated[WorkspaceAccess, Depends(require_workspace_editor)]


# =============================================================================
# QUERY HELPERS (enforce workspace scoping at query level)
# =============================================================================


async def get_workspace_resource_or_404(
    db: AsyncSession,
    model: type,
    resource_id: UUID,
    workspace_id: UUID,
    *,
    detail: str = "Resource not found",
):
    """
    Fetch a workspace-owned resource by ID.

    Usage:
        material = await get_workspace_resource_or_404(
            db, StudyMaterial, material_id, access.workspace_id
        )

    This enforces workspace scoping at the SQL level (WHERE workspace_id = ...).
    """
    result = await db.execute(
        select(model).where(model.id == resource_id, model.workspace_id == workspace_id)
    )
    resource = result.scalar_one_or_none()

    if resource is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

    return resource
