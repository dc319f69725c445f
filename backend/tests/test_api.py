"""API tests with TestClient: users, projects, code view, file changes, snapshots."""

import base64
import hashlib
import json

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from gitstack.errors import BlobStoreError, GitstackError, StorageTransactionError
from gitstack.main import create_app, gitstack_error_handler


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


@pytest.fixture
def client(settings):
    """TestClient for a fresh app. Used as context manager so the lifespan opens the database."""
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def owner(client: TestClient) -> str:
    r = client.post(
        "/api/users/create-or-get",
        json={"externalUserId": "ext-1", "email": "dev@example.com", "name": "Dev"},
    )
    assert r.status_code == 200
    return r.json()["userId"]


@pytest.fixture
def project(client: TestClient, owner: str) -> str:
    r = client.post("/api/projects", json={"name": "demo", "ownerId": owner, "visibility": "private"})
    assert r.status_code == 201
    return r.json()["id"]


def test_health(client: TestClient) -> None:
    """GET /health returns 200 and status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_create_or_get_user_is_idempotent(client: TestClient, owner: str) -> None:
    r = client.post(
        "/api/users/create-or-get",
        json={"externalUserId": "ext-1", "email": "dev@example.com"},
    )
    assert r.status_code == 200
    assert r.json()["userId"] == owner


def test_create_or_get_user_rejects_bad_email(client: TestClient) -> None:
    r = client.post("/api/users/create-or-get", json={"externalUserId": "x", "email": "not-an-email"})
    assert r.status_code == 400


def test_project_crud(client: TestClient, owner: str, project: str) -> None:
    r = client.get("/api/projects", params={"ownerId": owner})
    assert r.status_code == 200
    assert [p["id"] for p in r.json()] == [project]

    r = client.put(f"/api/projects/{project}", json={"description": "hello", "visibility": "public"})
    assert r.status_code == 200
    assert r.json()["description"] == "hello"
    assert r.json()["visibility"] == "public"
    assert r.json()["name"] == "demo"

    r = client.delete(f"/api/projects/{project}")
    assert r.status_code == 200
    assert r.json() == {"id": project, "deleted": True}
    assert client.get(f"/api/projects/{project}").status_code == 404


def test_create_project_unknown_owner(client: TestClient) -> None:
    r = client.post("/api/projects", json={"name": "x", "ownerId": "nobody", "visibility": "private"})
    assert r.status_code == 404


def test_create_project_invalid_visibility(client: TestClient, owner: str) -> None:
    r = client.post("/api/projects", json={"name": "x", "ownerId": owner, "visibility": "secret"})
    assert r.status_code == 400


def test_tree_of_empty_project(client: TestClient, project: str) -> None:
    r = client.get(f"/api/projects/{project}/tree", params={"branch": "main"})
    assert r.status_code == 200
    assert r.json() == []


def test_create_file_then_read_it(client: TestClient, owner: str, project: str) -> None:
    r = client.post(
        f"/api/projects/{project}/files",
        json={"branch": "main", "path": "README.md", "content": _b64(b"hello"), "userId": owner},
    )
    assert r.status_code == 201
    data = r.json()
    assert data["snapshotId"]
    assert data["newFile"] == {
        "path": "README.md",
        "hash": hashlib.sha256(b"hello").hexdigest(),
        "size": 5,
        "mode": 644,
    }

    r = client.get(f"/api/projects/{project}/tree", params={"branch": "main"})
    assert r.json() == [{"name": "README.md", "type": "file", "size": 5}]

    r = client.get(f"/api/projects/{project}/blob", params={"branch": "main", "path": "README.md"})
    assert r.status_code == 200
    assert base64.b64decode(r.json()["content"]) == b"hello"

    r = client.get(f"/api/projects/{project}/branches")
    assert [(b["name"], b["headSnapshotId"]) for b in r.json()] == [("main", data["snapshotId"])]


def test_folder_lifecycle(client: TestClient, owner: str, project: str) -> None:
    r = client.post(f"/api/projects/{project}/folders", json={"branch": "main", "path": "src", "userId": owner})
    assert r.status_code == 201
    assert r.json()["newFolder"] == {"path": "src", "type": "dir"}
    client.post(
        f"/api/projects/{project}/files",
        json={"branch": "main", "path": "src/app.py", "content": _b64(b"x = 1\n"), "userId": owner},
    )

    r = client.get(f"/api/projects/{project}/tree", params={"branch": "main", "path": "src"})
    assert {e["name"] for e in r.json()} == {".gitkeep", "app.py"}

    r = client.request(
        "DELETE", f"/api/projects/{project}/folders", json={"branch": "main", "path": "src", "userId": owner}
    )
    assert r.status_code == 200
    assert r.json()["deletedPath"] == "src"
    assert client.get(f"/api/projects/{project}/tree", params={"branch": "main"}).json() == []


def test_delete_missing_file_is_404(client: TestClient, owner: str, project: str) -> None:
    client.post(
        f"/api/projects/{project}/files",
        json={"branch": "main", "path": "a.txt", "content": _b64(b"a"), "userId": owner},
    )
    r = client.request(
        "DELETE", f"/api/projects/{project}/files", json={"branch": "main", "path": "b.txt", "userId": owner}
    )
    assert r.status_code == 404
    assert "b.txt" in r.json()["detail"]


def test_delete_file(client: TestClient, owner: str, project: str) -> None:
    client.post(
        f"/api/projects/{project}/files",
        json={"branch": "main", "path": "a.txt", "content": _b64(b"a"), "userId": owner},
    )
    r = client.request(
        "DELETE", f"/api/projects/{project}/files", json={"branch": "main", "path": "a.txt", "userId": owner}
    )
    assert r.status_code == 200
    assert r.json()["deletedPath"] == "a.txt"
    r = client.get(f"/api/projects/{project}/blob", params={"branch": "main", "path": "a.txt"})
    assert r.status_code == 404


def test_file_write_validation(client: TestClient, owner: str, project: str) -> None:
    url = f"/api/projects/{project}/files"
    assert client.post(url, json={"branch": "main", "content": _b64(b"a"), "userId": owner}).status_code == 400
    r = client.post(url, json={"branch": "main", "path": "a.txt", "content": "%%%", "userId": owner})
    assert r.status_code == 400
    r = client.post(url, json={"branch": "main", "path": "../a.txt", "content": _b64(b"a"), "userId": owner})
    assert r.status_code == 400


def test_file_write_stale_expected_head(client: TestClient, owner: str, project: str) -> None:
    url = f"/api/projects/{project}/files"
    first = client.post(url, json={"branch": "main", "path": "a.txt", "content": _b64(b"1"), "userId": owner})
    client.post(url, json={"branch": "main", "path": "a.txt", "content": _b64(b"2"), "userId": owner})
    r = client.post(
        url,
        json={
            "branch": "main",
            "path": "a.txt",
            "content": _b64(b"3"),
            "userId": owner,
            "expectedHead": first.json()["snapshotId"],
        },
    )
    assert r.status_code == 409


def test_branches_and_tags(client: TestClient, owner: str, project: str) -> None:
    r = client.get(f"/api/projects/{project}/branches")
    assert r.status_code == 200
    assert [(b["name"], b["headSnapshotId"]) for b in r.json()] == [("main", None)]

    r = client.post(f"/api/projects/{project}/branches", json={"name": "dev", "fromBranch": "main"})
    assert r.status_code == 201
    assert r.json()["name"] == "dev"
    assert client.post(f"/api/projects/{project}/branches", json={"name": "dev"}).status_code == 409
    assert client.get(f"/api/projects/{project}/tags").json() == []


def test_readme_roundtrip(client: TestClient, owner: str, project: str) -> None:
    r = client.get(f"/api/projects/{project}/readme")
    assert r.status_code == 200
    assert r.json()["content"] == ""

    r = client.put(f"/api/projects/{project}/readme", json={"content": "# Demo", "userId": owner})
    assert r.status_code == 200
    assert client.get(f"/api/projects/{project}/readme").json()["content"] == "# Demo"
    assert client.get(f"/api/projects/{project}/readme", params={"branch": "dev"}).json()["content"] == ""


def test_contributors(client: TestClient, owner: str, project: str) -> None:
    for name in ("a.txt", "b.txt"):
        client.post(
            f"/api/projects/{project}/files",
            json={"branch": "main", "path": name, "content": _b64(b"x"), "userId": owner},
        )
    r = client.get(f"/api/projects/{project}/contributors")
    assert r.status_code == 200
    assert r.json() == [{"id": owner, "name": "Dev", "email": "dev@example.com", "commits": 2}]


def test_snapshot_api_flow(client: TestClient, owner: str, project: str) -> None:
    body = {
        "projectId": project,
        "userId": owner,
        "timestamp": 1700000000000,
        "title": "push",
        "files": [
            {"path": "main.py", "hash": hashlib.sha256(b"print()").hexdigest(), "content": _b64(b"print()")},
        ],
    }
    r = client.post("/api/snapshots", json=body)
    assert r.status_code == 201
    snapshot_id = r.json()["id"]
    assert r.json()["fileCount"] == 1

    r = client.get("/api/snapshots", params={"projectId": project})
    assert [s["id"] for s in r.json()] == [snapshot_id]

    r = client.get(f"/api/snapshots/{snapshot_id}")
    assert r.status_code == 200
    assert r.json()["files"][0]["size"] == len(b"print()")

    r = client.get(f"/api/projects/{project}/blob", params={"path": "main.py"})
    assert base64.b64decode(r.json()["content"]) == b"print()"

    r = client.delete(f"/api/snapshots/{snapshot_id}")
    assert r.status_code == 200
    assert r.json()["id"] == snapshot_id
    assert client.get(f"/api/snapshots/{snapshot_id}").status_code == 404


def test_snapshot_hash_mismatch_is_400(client: TestClient, owner: str, project: str) -> None:
    body = {
        "projectId": project,
        "userId": owner,
        "timestamp": 1,
        "files": [{"path": "a", "hash": "0" * 64, "content": _b64(b"a")}],
    }
    assert client.post("/api/snapshots", json=body).status_code == 400


def test_project_description_can_be_cleared(client: TestClient, owner: str) -> None:
    r = client.post(
        "/api/projects", json={"name": "x", "ownerId": owner, "visibility": "private", "description": "old"}
    )
    project = r.json()["id"]
    r = client.put(f"/api/projects/{project}", json={"description": None})
    assert r.status_code == 200
    assert r.json().get("description") is None
    assert r.json()["name"] == "x"
    assert client.put(f"/api/projects/{project}", json={"name": None}).status_code == 400


def test_file_write_unknown_user_is_404(client: TestClient, project: str) -> None:
    r = client.post(
        f"/api/projects/{project}/files",
        json={"branch": "main", "path": "a.txt", "content": _b64(b"a"), "userId": "nobody"},
    )
    assert r.status_code == 404
    assert client.get(f"/api/projects/{project}/tree").json() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc, detail",
    [
        (StorageTransactionError("insert failed"), "Storage transaction failed"),
        (BlobStoreError("p/h", "disk full"), "Could not store file content"),
        (GitstackError("boom"), "Internal server error"),
    ],
)
async def test_server_errors_get_generic_detail(exc, detail) -> None:
    """5xx domain errors never leak their message; each kind has its own generic text."""
    request = Request({"type": "http", "method": "POST", "path": "/api/x", "headers": [], "query_string": b""})
    response = await gitstack_error_handler(request, exc)
    assert response.status_code == 500
    assert json.loads(response.body) == {"detail": detail}
