"""API routes for workspaces."""

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from studyworkspace.api.deps import CurrentUser, DbSession, WorkspaceMember
from studyworkspace.db.models import Workspace, WorkspaceRole
from studyworkspace.db.models import WorkspaceMember as WorkspaceMemberModel
from studyworkspace.schemas.workspaces import (
    WorkspaceCreate,
    WorkspaceListResponse,
    WorkspaceRead,
    WorkspaceResponse,
)

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


@router.get("", response_model=WorkspaceListResponse)
async def list_workspaces(db: DbSession, user: CurrentUser):
    """List workspaces the current user belongs to, newest first."""
    result = await db.execute(
        select(Workspace)
        .options(selectinload(Workspace.members))
        .join(WorkspaceMemberModel, WorkspaceMemberModel.workspace_id == Workspace.id)
        .where(WorkspaceMemberModel.user_id == user.id)
        .order_by(Workspace.created_at.desc())
    )
    workspaces = result.scalars().unique().all()
    return WorkspaceListResponse(
        workspaces=[WorkspaceRead.model_validate(w) for w in workspaces]
    )


@router.post("", response_model=WorkspaceResponse, status_code=status.HTTP_201_CREATED)
async def create_workspace(data: WorkspaceCreate, db: DbSession, user: CurrentUser):
    """Create a workspace. The creator becomes its owner and first admin."""
    if not data.name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Workspace name is required",
        )

    workspace = Workspace(name=data.name, owner_id=user.id)
    workspace.members.append(
        WorkspaceMemberModel(user_id=user.id, role=WorkspaceRole.ADMIN.value, position=0)
    )
    db.add(workspace)
    await db.flush()

    return WorkspaceResponse(
        workspace=WorkspaceRead.model_validate(workspace),
        role=WorkspaceRole.ADMIN.value,
    )


@router.get("/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(access: WorkspaceMember):
    """Get a workspace with its members and the caller's role."""
    return WorkspaceResponse(
        workspace=WorkspaceRead.model_validate(access.workspace),
        role=access.role,
    )
