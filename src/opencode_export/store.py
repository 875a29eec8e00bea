"""OpenCode storage loader.

Reads chat data from ~/.local/share/opencode/storage/. The layout is a set
of flat, foreign-keyed JSON collections:

- project/<project_id>.json
- session/<project_id>/<session_id>.json
- message/<session_id>/<message_id>.json
- part/<message_id>/<part_id>.json
- session_diff/<session_id>.json (array of file diffs)
- todo/<session_id>.json (array of todo items)

A bad file never aborts the load: it is logged and skipped. Missing
directories simply produce empty collections.
"""

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from .core import DiffEntry, Message, Part, Project, RecordError, Session, TodoEntry, parse_part

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RecordStore:
    """Read-only snapshot of every record, indexed for lookup."""

    projects: list[Project] = field(default_factory=list)
    sessions: dict[str, Session] = field(default_factory=dict)
    sessions_by_project: dict[str, list[str]] = field(default_factory=dict)
    messages_by_session: dict[str, list[Message]] = field(default_factory=dict)
    parts_by_message: dict[str, list[Part]] = field(default_factory=dict)
    diffs_by_session: dict[str, list[DiffEntry]] = field(default_factory=dict)
    todos_by_session: dict[str, list[TodoEntry]] = field(default_factory=dict)

    @classmethod
    def from_records(
        cls,
        projects: Iterable[Project] = (),
        sessions: Iterable[Session] = (),
        messages: Iterable[Message] = (),
        parts: Iterable[Part] = (),
        diffs: dict[str, list[DiffEntry]] | None = None,
        todos: dict[str, list[TodoEntry]] | None = None,
    ) -> "RecordStore":
        """Build a store from already decoded records, applying the loader's ordering."""
        store = cls(projects=sorted(projects, key=_created_key))
        for session in sessions:
            _add_session(store, session)
        for message in messages:
            store.messages_by_session.setdefault(message.session_id, []).append(message)
        for part in parts:
            store.parts_by_message.setdefault(part.message_id, []).append(part)
        for msgs in store.messages_by_session.values():
            msgs.sort(key=_message_order)
        for prts in store.parts_by_message.values():
            prts.sort(key=lambda p: p.id)
        store.diffs_by_session = {k: list(v) for k, v in (diffs or {}).items() if v}
        store.todos_by_session = {k: list(v) for k, v in (todos or {}).items() if v}
        return store

    def sessions_for_project(self, project_id: str) -> list[Session]:
        ids = self.sessions_by_project.get(project_id, [])
        return [self.sessions[i] for i in ids if i in self.sessions]

    def messages_for(self, session_id: str) -> list[Message]:
        return self.messages_by_session.get(session_id, [])

    def parts_for(self, message_id: str) -> list[Part]:
        return self.parts_by_message.get(message_id, [])

    def diffs_for(self, session_id: str) -> list[DiffEntry]:
        return self.diffs_by_session.get(session_id, [])

    def todos_for(self, session_id: str) -> list[TodoEntry]:
        return self.todos_by_session.get(session_id, [])


def load_store(storage_dir: Path) -> RecordStore:
    """Load every collection under ``storage_dir`` into a RecordStore."""
    store = RecordStore(
        projects=_load_projects(storage_dir / "project"),
        messages_by_session=_load_grouped(storage_dir / "message", Message.from_dict, "message"),
        parts_by_message=_load_grouped(storage_dir / "part", parse_part, "part"),
        diffs_by_session=_load_lists(storage_dir / "session_diff", DiffEntry.from_dict, "session_diff"),
        todos_by_session=_load_lists(storage_dir / "todo", TodoEntry.from_dict, "todo"),
    )
    _load_sessions(storage_dir / "session", store)

    for msgs in store.messages_by_session.values():
        msgs.sort(key=_message_order)
    for parts in store.parts_by_message.values():
        # Part ids sort lexicographically in creation order
        parts.sort(key=lambda p: p.id)

    logger.info(
        "Loaded %d projects, %d sessions from %s",
        len(store.projects),
        len(store.sessions),
        storage_dir,
    )
    return store


# ── Private helpers ──────────────────────────────────────────────


def _created_key(project: Project) -> int:
    return project.created or 0


def _message_order(message: Message) -> tuple[int, str]:
    return (message.created or 0, message.id)


def _read_json(path: Path) -> Any:
    data = json.loads(path.read_text(encoding="utf-8"))
    # \ud800-style escapes decode to lone surrogates that can never be written out as UTF-8
    try:
        json.dumps(data, ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError as e:
        raise RecordError(f"string contains an unpaired surrogate: {e.reason}") from e
    return data


def _decode(path: Path, decoder: Callable[[Any], T], kind: str) -> T | None:
    """Read and decode one record file, or log and return None."""
    try:
        return decoder(_read_json(path))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError, RecordError, RecursionError) as e:
        logger.warning("Skipping %s %s: %s", kind, path, e)
        return None


def _json_files(directory: Path) -> list[Path]:
    return sorted(p for p in directory.glob("*.json") if p.is_file())


def _subdirs(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(d for d in directory.iterdir() if d.is_dir())


def _load_projects(directory: Path) -> list[Project]:
    if not directory.is_dir():
        return []

    projects = []
    for path in _json_files(directory):
        project = _decode(path, Project.from_dict, "project")
        if project is not None:
            projects.append(project)
    projects.sort(key=_created_key)
    return projects


def _load_sessions(directory: Path, store: RecordStore) -> None:
    """Sessions live one folder per project; group them by owning project id."""
    for project_dir in _subdirs(directory):
        for path in _json_files(project_dir):
            session = _decode(path, Session.from_dict, "session")
            if session is not None:
                _add_session(store, session)


def _add_session(store: RecordStore, session: Session) -> None:
    """Index a session; the first record seen for an id wins."""
    if session.id in store.sessions:
        logger.warning("Skipping duplicate session %s", session.id)
        return
    store.sessions[session.id] = session
    store.sessions_by_project.setdefault(session.project_id, []).append(session.id)


def _load_grouped(directory: Path, decoder: Callable[[Any], T], kind: str) -> dict[str, list[T]]:
    """Load ``<directory>/<owner_id>/*.json`` keyed by the owner folder name."""
    grouped: dict[str, list[T]] = {}
    for owner_dir in _subdirs(directory):
        records = []
        for path in _json_files(owner_dir):
            record = _decode(path, decoder, kind)
            if record is not None:
                records.append(record)
        grouped[owner_dir.name] = records
    return grouped


def _load_lists(directory: Path, decoder: Callable[[Any], T], kind: str) -> dict[str, list[T]]:
    """Load ``<directory>/<session_id>.json`` files holding JSON arrays."""
    if not directory.is_dir():
        return {}

    by_session: dict[str, list[T]] = {}
    for path in _json_files(directory):
        entries = _decode(path, lambda data: _decode_list(data, decoder, kind), kind)
        if entries:
            by_session[path.stem] = entries
    return by_session


def _decode_list(data: Any, decoder: Callable[[Any], T], kind: str) -> list[T]:
    if not isinstance(data, list):
        raise RecordError(f"{kind} file is not a JSON array")
    return [decoder(item) for item in data]
