"""Tests for authentication, workspace membership and role enforcement."""

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from jose import jwt

from studyworkspace.api.deps import create_access_token, decode_access_token
from studyworkspace.config import get_settings
from studyworkspace.db.models import WorkspaceRole


async def test_health(client):
    assert (await client.get("/health")).json() == {"status": "healthy"}
    assert (await client.get("/api/health")).status_code == 200


def test_access_token_round_trip():
    user_id = uuid4()
    assert decode_access_token(create_access_token(user_id)) == user_id


def test_decode_rejects_garbage_and_foreign_tokens():
    settings = get_settings()
    assert decode_access_token("not-a-jwt") is None
    forged = jwt.encode({"sub": str(uuid4())}, "wrong-secret", algorithm=settings.jwt_algorithm)
    assert decode_access_token(forged) is None


async def test_me_requires_token(client):
    response = await client.get("/auth/me")
    assert response.status_code == 401


async def test_me_with_bearer_token(client, owner, owner_headers):
    response = await client.get("/auth/me", headers=owner_headers)
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["id"] == str(owner.id)
    assert user["displayName"] == "Owner"
    assert "refreshToken" not in user


async def test_set_token_enables_cookie_auth(client, owner):
    token = create_access_token(owner.id)

    response = await client.post("/auth/set-token", json={"token": token})
    assert response.status_code == 200
    assert "access_token" in response.cookies

    client.cookies.set("access_token", token)
    assert (await client.get("/auth/me")).status_code == 200


async def test_set_token_rejects_invalid_token(client):
    response = await client.post("/auth/set-token", json={"token": "bogus"})
    assert response.status_code == 401


async def test_token_for_deleted_user_is_rejected(client, headers_for, make_user):
    from studyworkspace.db.models import User
    from studyworkspace.db.session import AsyncSessionLocal

    ghost = await make_user("Ghost")
    headers = headers_for(ghost)
    async with AsyncSessionLocal() as db:
        await db.delete(await db.get(User, ghost.id))
        await db.commit()

    assert (await client.get("/auth/me", headers=headers)).status_code == 401


async def test_unknown_workspace_is_404(client, owner_headers):
    response = await client.get(f"/workspaces/{uuid4()}/materials", headers=owner_headers)
    assert response.status_code == 404


async def test_non_member_is_forbidden(client, workspace, make_user, headers_for):
    outsider = await make_user("Outsider")
    response = await client.get(f"/workspaces/{workspace.id}/materials", headers=headers_for(outsider))
    assert response.status_code == 403


@pytest.mark.parametrize(
    "method,path,body",
    [
        ("post", "flashcards/generate", {"materialId": None}),
        ("post", "quiz/generate", {"materialId": None}),
        ("post", "materials/{mid}/summarize", None),
        ("post", "materials/{mid}/enrich", None),
        ("delete", "materials/{mid}", None),
    ],
)
async def test_viewer_cannot_mutate(
    client, owner, make_user, make_workspace, headers_for, method, path, body
):
    viewer = await make_user("Viewer")
    ws = await make_workspace(owner, members=[(viewer, WorkspaceRole.VIEWER)])
    url = f"/workspaces/{ws.id}/" + path.format(mid=uuid4())

    kwargs = {"headers": headers_for(viewer)}
    if body is not None:
        kwargs["json"] = body
    response = await getattr(client, method)(url, **kwargs)

    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied: Requires admin or editor role"


async def test_viewer_cannot_upload(client, owner, make_user, make_workspace, headers_for):
    viewer = await make_user("Viewer")
    ws = await make_workspace(owner, members=[(viewer, WorkspaceRole.VIEWER)])

    response = await client.post(
        f"/workspaces/{ws.id}/upload",
        files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        data={"title": "Notes"},
        headers=headers_for(viewer),
    )
    assert response.status_code == 403


async def test_viewer_can_read(client, owner, make_user, make_workspace, headers_for):
    viewer = await make_user("Viewer")
    ws = await make_workspace(owner, members=[(viewer, WorkspaceRole.VIEWER)])

    for path in ("materials", "flashcards", "quiz", "progress", "sessions"):
        response = await client.get(f"/workspaces/{ws.id}/{path}", headers=headers_for(viewer))
        assert response.status_code == 200, path


async def test_create_and_list_workspaces(client, owner, owner_headers, workspace):
    response = await client.post("/workspaces", json={"name": "Chemistry"}, headers=owner_headers)
    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "admin"
    assert body["workspace"]["ownerId"] == str(owner.id)
    assert [m["role"] for m in body["workspace"]["members"]] == ["admin"]

    response = await client.get("/workspaces", headers=owner_headers)
    names = [w["name"] for w in response.json()["workspaces"]]
    assert names == ["Chemistry", "Biology"]


async def test_create_workspace_requires_name(client, owner_headers):
    response = await client.post("/workspaces", json={"name": "   "}, headers=owner_headers)
    assert response.status_code == 400


async def test_get_workspace_reports_role(client, owner, make_user, make_workspace, headers_for):
    editor = await make_user("Editor")
    ws = await make_workspace(owner, members=[(editor, WorkspaceRole.EDITOR)])

    response = await client.get(f"/workspaces/{ws.id}", headers=headers_for(editor))
    assert response.status_code == 200
    assert response.json()["role"] == "editor"
    assert len(response.json()["workspace"]["members"]) == 2


async def test_first_google_sign_in_creates_personal_workspace():
    from sqlalchemy import select

    from studyworkspace.api.routes.auth import upsert_google_user
    from studyworkspace.db.models import User
    from studyworkspace.db.session import AsyncSessionLocal

    async with AsyncSessionLocal() as db:
        user, workspace = await upsert_google_user(
            db,
            google_id="g-1",
            email="Ada@Example.com",
            display_name="Ada",
            avatar_url="",
            refresh_token="refresh-1",
        )
        await db.commit()
        assert workspace.name == "Ada's Workspace"
        assert workspace.member_role(user.id) == "admin"

    # Second sign-in without a new refresh token keeps the stored one
    async with AsyncSessionLocal() as db:
        again, same_workspace = await upsert_google_user(
            db,
            google_id="g-1",
            email="ada@example.com",
            display_name="Ada L.",
            avatar_url="https://example.com/a.png",
            refresh_token=None,
        )
        await db.commit()
        assert again.id == user.id
        assert same_workspace.id == workspace.id

        token = (await db.execute(select(User.refresh_token).where(User.id == user.id))).scalar_one()
        assert token == "refresh-1"
        assert again.email == "ada@example.com"


def google_sign_in(sub: str, email: str, name: str = "Ada"):
    """Patch the OAuth code exchange and ID token check for one sign-in."""
    flow = MagicMock()
    flow.credentials.id_token = "id-token"
    flow.credentials.refresh_token = "refresh-1"
    idinfo = {
        "iss": "https://accounts.google.com",
        "sub": sub,
        "email": email,
        "email_verified": True,
        "name": name,
    }
    return (
        patch("studyworkspace.api.routes.auth._build_flow", return_value=flow),
        patch(
            "studyworkspace.api.routes.auth.google_id_token.verify_oauth2_token",
            return_value=idinfo,
        ),
    )


async def finish_google_callback(client):
    client.cookies.set("oauth_state", "state-1")
    return await client.get("/auth/google/callback", params={"code": "c", "state": "state-1"})


async def test_google_callback_redirects_with_token(client):
    exchange, verify = google_sign_in("g-42", "ada@example.com")
    with exchange, verify:
        response = await finish_google_callback(client)

    assert response.status_code == 307
    location = response.headers["location"]
    assert "/auth/callback?token=" in location
    assert "workspace=" in location


async def test_google_callback_with_taken_email_redirects_to_login(client, make_user):
    existing = await make_user("Existing")

    exchange, verify = google_sign_in("g-other", existing.email, name="Impostor")
    with exchange, verify:
        response = await finish_google_callback(client)

    assert response.status_code == 307
    assert response.headers["location"].endswith("/login?error=auth_failed")
