"""FastAPI preview server for opencode-export."""

import logging
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response

from .config import get_storage_path, parse_since
from .core import ResolvedSession, Session
from .export import file_stem
from .renderer import render_session
from .resolver import project_matches, resolve_session
from .store import RecordStore, load_store

logger = logging.getLogger(__name__)

app = FastAPI(title="opencode-export", version="0.1.0")

# Store cache (populated on first request)
_store: RecordStore | None = None
_storage_path: Path | None = None


def set_storage_path(path: Path) -> None:
    """Point the server at a storage directory and drop any cached store."""
    global _storage_path, _store
    _storage_path = path
    _store = None


def _get_store() -> RecordStore:
    """Lazily load and cache the record store."""
    global _store
    if _store is None:
        path = _storage_path or get_storage_path()
        _store = load_store(path)
        logger.info("Loaded store from %s", path)
    return _store


def _session_to_dict(session: Session, project_name: str) -> dict:
    return {
        "id": session.id,
        "title": session.title,
        "slug": session.slug,
        "project": project_name,
        "created": session.created,
        "file_stem": file_stem(session),
    }


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/projects")
async def get_projects():
    """Return every project with its session count."""
    store = _get_store()
    return [
        {
            "id": p.id,
            "name": p.display_name,
            "worktree": p.worktree,
            "sessions": len(store.sessions_by_project.get(p.id, [])),
        }
        for p in store.projects
    ]


@app.get("/api/sessions")
async def get_sessions(
    project: str | None = Query(None, description="Project path, ID or name"),
    since: str | None = Query(None, description="Created on or after (YYYY-MM-DD)"),
):
    """Return top-level sessions, oldest first within each project."""
    since_ms = None
    if since:
        try:
            since_ms = parse_since(since)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid since date: {since}")

    store = _get_store()
    sessions = []
    for p in store.projects:
        if not project_matches(p, project):
            continue
        for s in sorted(store.sessions_for_project(p.id), key=lambda s: (s.created or 0, s.id)):
            if s.is_sub_agent:
                continue
            if since_ms is not None and (s.created or 0) < since_ms:
                continue
            sessions.append(_session_to_dict(s, p.display_name))

    return {"total": len(sessions), "sessions": sessions}


@app.get("/api/export/{session_id}")
async def export_session(session_id: str):
    """Return one session rendered as Markdown."""
    store = _get_store()
    session = store.sessions.get(session_id)
    if session is None or session.is_sub_agent:
        raise HTTPException(status_code=404, detail="Session not found")

    project = next((p for p in store.projects if p.id == session.project_id), None)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    resolved: ResolvedSession = resolve_session(store, session)
    return Response(
        content=render_session(resolved, project),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{file_stem(session)}.md"'},
    )
