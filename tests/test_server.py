"""Tests for the FastAPI preview server."""

import pytest
from httpx import ASGITransport, AsyncClient

import opencode_export.server as srv
from opencode_export.server import app


@pytest.fixture(autouse=True)
def storage(tmp_opencode_dir):
    """Point the server at the test storage and reset the store cache."""
    srv.set_storage_path(tmp_opencode_dir)
    yield tmp_opencode_dir
    srv._store = None
    srv._storage_path = None


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_get_projects():
    async with _client() as client:
        resp = await client.get("/api/projects")
        assert resp.status_code == 200
        data = resp.json()
        assert [p["name"] for p in data] == ["_global", "myapp"]
        myapp = data[1]
        assert myapp["worktree"] == "/Users/testuser/dev/myapp"
        assert myapp["sessions"] == 3


@pytest.mark.asyncio
async def test_get_sessions_excludes_sub_agents():
    async with _client() as client:
        resp = await client.get("/api/sessions")
        assert resp.status_code == 200
        data = resp.json()
        ids = [s["id"] for s in data["sessions"]]
        assert ids == ["ses_global", "ses_old", "ses_main"]
        assert data["total"] == 3
        main = data["sessions"][2]
        assert main["project"] == "myapp"
        assert main["file_stem"] == "2025-01-22_fix-login"


@pytest.mark.asyncio
async def test_get_sessions_filtered():
    async with _client() as client:
        resp = await client.get("/api/sessions?project=myapp&since=2024-01-01")
        data = resp.json()
        assert [s["id"] for s in data["sessions"]] == ["ses_main"]


@pytest.mark.asyncio
async def test_get_sessions_bad_since():
    async with _client() as client:
        resp = await client.get("/api/sessions?since=yesterday")
        assert resp.status_code == 400


@pytest.mark.asyncio
async def test_export_session():
    async with _client() as client:
        resp = await client.get("/api/export/ses_main")
        assert resp.status_code == 200
        assert "text/markdown" in resp.headers.get("content-type", "")
        assert "2025-01-22_fix-login.md" in resp.headers["content-disposition"]
        assert resp.text.startswith("# Fix login bug\n\n")
        assert "> ### Sub-agent: Search for auth code (`explore`)" in resp.text


@pytest.mark.asyncio
async def test_export_sub_agent_not_found():
    async with _client() as client:
        resp = await client.get("/api/export/ses_child")
        assert resp.status_code == 404


@pytest.mark.asyncio
async def test_export_unknown_session():
    async with _client() as client:
        resp = await client.get("/api/export/ses_nope")
        assert resp.status_code == 404
