"""Rebuild ordered conversation trees from the flat record store.

Sessions reference projects, messages reference sessions, parts reference
messages and sub-agent sessions reference their parent session. The
resolver turns that into one ResolvedSession per top-level session, with
every sub-agent inlined at the point in time it was spawned.
"""

import logging
from typing import Optional

from .core import (
    ConversationItem,
    Message,
    Project,
    ResolvedMessage,
    ResolvedProject,
    ResolvedSession,
    Session,
    SubAgent,
    Tokens,
)
from .store import RecordStore

logger = logging.getLogger(__name__)

# Observed data nests one level deep; anything past this is corrupt.
MAX_SUB_AGENT_DEPTH = 32


def project_matches(project: Project, project_filter: Optional[str]) -> bool:
    """Match on worktree substring, id prefix or display name (case-insensitive)."""
    if not project_filter:
        return True
    return (
        project_filter in project.worktree
        or project.id.startswith(project_filter)
        or project.display_name.lower() == project_filter.lower()
    )


def resolve(
    store: RecordStore,
    project_filter: Optional[str] = None,
    session_filter: Optional[str] = None,
    since_ms: Optional[int] = None,
) -> list[ResolvedProject]:
    """Resolve every top-level session that passes the filters.

    Projects keep store order; sessions within a project are sorted by
    creation time. Projects left with no sessions are dropped. Sub-agent
    sessions are never returned at the top level and are not subject to
    the session or since filters.
    """
    result = []

    for project in store.projects:
        if not project_matches(project, project_filter):
            continue

        all_sessions = sorted(store.sessions_for_project(project.id), key=_session_order)
        children_by_parent = _index_children(all_sessions)

        resolved_sessions = []
        for session in all_sessions:
            if session.is_sub_agent:
                continue
            if session_filter is not None and session.id != session_filter:
                continue
            if since_ms is not None and (session.created or 0) < since_ms:
                continue
            resolved_sessions.append(_resolve(store, session, children_by_parent, ()))

        if resolved_sessions:
            result.append(ResolvedProject(project=project, sessions=tuple(resolved_sessions)))

    return result


def resolve_session(store: RecordStore, session: Session) -> ResolvedSession:
    """Resolve a single session, inlining sub-agents from the same project."""
    siblings = sorted(store.sessions_for_project(session.project_id), key=_session_order)
    return _resolve(store, session, _index_children(siblings), ())


def find_session(
    resolved: list[ResolvedProject], session_id: str
) -> Optional[tuple[ResolvedProject, ResolvedSession]]:
    """Return the project and top-level session with ``session_id``, if any."""
    for rp in resolved:
        for rs in rp.sessions:
            if rs.session.id == session_id:
                return rp, rs
    return None


def sum_tokens(messages: list[Message]) -> Tokens:
    """Total token usage over messages; those without a record add nothing."""
    total = Tokens()
    for message in messages:
        if message.tokens is not None:
            total = total + message.tokens
    return total


# ── Private helpers ──────────────────────────────────────────────


def _session_order(session: Session) -> tuple[int, str]:
    return (session.created or 0, session.id)


def _index_children(sessions: list[Session]) -> dict[str, list[Session]]:
    """Map parent session id to its children, in creation order."""
    children: dict[str, list[Session]] = {}
    for session in sessions:
        if session.parent_id:
            children.setdefault(session.parent_id, []).append(session)
    return children


def _resolve(
    store: RecordStore,
    session: Session,
    children_by_parent: dict[str, list[Session]],
    ancestors: tuple[str, ...],
) -> ResolvedSession:
    messages = store.messages_for(session.id)
    items = _build_conversation(
        store,
        messages,
        children_by_parent.get(session.id, []),
        children_by_parent,
        ancestors + (session.id,),
    )
    return ResolvedSession(
        session=session,
        items=tuple(items),
        diffs=tuple(store.diffs_for(session.id)),
        todos=tuple(store.todos_for(session.id)),
        # Only this session's own messages; sub-agents keep their own totals
        token_totals=sum_tokens(messages),
    )


def _build_conversation(
    store: RecordStore,
    messages: list[Message],
    children: list[Session],
    children_by_parent: dict[str, list[Session]],
    ancestors: tuple[str, ...],
) -> list[ConversationItem]:
    """Interleave messages with child sessions by creation time.

    A child is emitted just before the first message created strictly after
    it; children created after the last message go at the end.
    """
    items: list[ConversationItem] = []
    pending = sorted(children, key=_session_order)
    idx = 0

    for message in messages:
        created = message.created or 0
        while idx < len(pending) and (pending[idx].created or 0) <= created:
            _append_sub_agent(items, store, pending[idx], children_by_parent, ancestors)
            idx += 1
        items.append(ResolvedMessage(message=message, parts=tuple(store.parts_for(message.id))))

    for child in pending[idx:]:
        _append_sub_agent(items, store, child, children_by_parent, ancestors)

    return items


def _append_sub_agent(
    items: list[ConversationItem],
    store: RecordStore,
    child: Session,
    children_by_parent: dict[str, list[Session]],
    ancestors: tuple[str, ...],
) -> None:
    if child.id in ancestors:
        logger.warning("Session %s is its own ancestor; not inlining it again", child.id)
        return
    if len(ancestors) > MAX_SUB_AGENT_DEPTH:
        logger.warning("Sub-agent %s nested deeper than %d levels; skipped", child.id, MAX_SUB_AGENT_DEPTH)
        return

    resolved = _resolve(store, child, children_by_parent, ancestors)
    items.append(SubAgent(session=child, items=resolved.items, token_totals=resolved.token_totals))
