"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import AsyncGenerator
from uuid import uuid4

# Settings are read once at import time, so the environment has to be
# in place before anything from studyworkspace is imported.
_DB_PATH = os.path.join(tempfile.mkdtemp(prefix="studyworkspace-tests-"), "test.db")
os.environ.update(
    {
        "DATABASE_URL_OVERRIDE": f"sqlite+aiosqlite:///{_DB_PATH}",
        "JWT_SECRET_KEY": "test-secret-key",
        "GOOGLE_CLIENT_ID": "test-client-id.apps.googleusercontent.com",
        "GOOGLE_CLIENT_SECRET": "test-client-secret",
        "AWS_ACCESS_KEY_ID": "test-access-key",
        "AWS_SECRET_ACCESS_KEY": "test-secret-access-key",
        "AWS_S3_BUCKET": "test-bucket",
        "ANTHROPIC_API_KEY": "test-anthropic-key",
        "ENRICHMENT_WORKER_ENABLED": "false",
        "ENVIRONMENT": "development",
    }
)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from studyworkspace.api.deps import create_access_token  # noqa: E402
from studyworkspace.db.base import Base  # noqa: E402
from studyworkspace.db.models import (  # noqa: E402
    MaterialType,
    StudyMaterial,
    User,
    Workspace,
    WorkspaceMember,
    WorkspaceRole,
)
from studyworkspace.db.session import AsyncSessionLocal, engine  # noqa: E402
from studyworkspace.main import app  # noqa: E402


@pytest.fixture(autouse=True)
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def make_user():
    """Create and persist a user."""

    async def _make_user(name: str = "Test User", refresh_token: str | None = None) -> User:
        async with AsyncSessionLocal() as db:
            user = User(
                google_id=f"google-{uuid4().hex}",
                email=f"{uuid4().hex[:12]}@example.com",
                display_name=name,
                avatar_url="",
                refresh_token=refresh_token,
            )
            db.add(user)
            await db.commit()
            await db.refresh(user)
            return user

    return _make_user


@pytest.fixture
def make_workspace():
    """Create a workspace owned by `owner` (admin) with optional extra members."""

    async def _make_workspace(
        owner: User, members: list[tuple[User, WorkspaceRole]] = (), name: str = "Biology"
    ) -> Workspace:
        async with AsyncSessionLocal() as db:
            workspace = Workspace(name=name, owner_id=owner.id)
            workspace.members.append(
                WorkspaceMember(user_id=owner.id, role=WorkspaceRole.ADMIN.value, position=0)
            )
            for position, (member, role) in enumerate(members, start=1):
                workspace.members.append(
                    WorkspaceMember(user_id=member.id, role=role.value, position=position)
                )
            db.add(workspace)
            await db.commit()
            await db.refresh(workspace)
            return workspace

    return _make_workspace


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
async def owner(make_user) -> User:
    return await make_user("Owner")


@pytest.fixture
async def workspace(make_workspace, owner) -> Workspace:
    return await make_workspace(owner)


@pytest.fixture
def owner_headers(owner) -> dict[str, str]:
    return auth_headers(owner)


@pytest.fixture
def headers_for():
    """Bearer headers for an arbitrary user."""
    return auth_headers


@pytest.fixture
def add_material(owner):
    """Insert a material directly, bypassing upload."""

    async def _add_material(workspace, title="Photosynthesis", text="Plants turn light into sugar."):
        async with AsyncSessionLocal() as db:
            material = StudyMaterial(
                workspace_id=workspace.id,
                title=title,
                type=MaterialType.PDF.value,
                s3_key=f"workspaces/{workspace.id}/{uuid4().hex}_{title}.pdf",
                file_url="https://files.example/obj",
                content_type="application/pdf",
                extracted_text=text,
                uploaded_by=owner.id,
            )
            db.add(material)
            await db.commit()
            await db.refresh(material)
            return material

    return _add_material
