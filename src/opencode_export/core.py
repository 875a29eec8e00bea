"""Core data models for opencode-export.

Raw records mirror the JSON files OpenCode keeps under its storage
directory. Resolved records are built by the resolver and consumed by the
renderer; nothing is mutated after construction.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


class RecordError(ValueError):
    """A stored record is missing a required field or has the wrong shape."""


def _require_str(data: dict, key: str, kind: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise RecordError(f"{kind} record has no string {key!r}")
    return value


def _opt_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _opt_int(data: dict, key: str) -> Optional[int]:
    value = data.get(key)
    # bool is an int subclass; a JSON true is not a count
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _opt_float(data: dict, key: str) -> Optional[float]:
    value = data.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _obj(data: dict, key: str) -> dict:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _ensure_dict(data: Any, kind: str) -> dict:
    if not isinstance(data, dict):
        raise RecordError(f"{kind} record is not a JSON object")
    return data


# ── Projects and sessions ────────────────────────────────────────


@dataclass(frozen=True)
class Project:
    """A worktree OpenCode has been used in."""

    id: str
    worktree: str
    vcs: Optional[str] = None
    created: Optional[int] = None  # epoch ms
    updated: Optional[int] = None

    @property
    def display_name(self) -> str:
        """Short name used for output folders and listings."""
        if self.id == "global":
            return "_global"
        name = self.worktree.rstrip("/").rsplit("/", 1)[-1]
        return name or self.id[:8]

    @classmethod
    def from_dict(cls, data: Any) -> "Project":
        data = _ensure_dict(data, "project")
        time_data = _obj(data, "time")
        return cls(
            id=_require_str(data, "id", "project"),
            worktree=_require_str(data, "worktree", "project"),
            vcs=_opt_str(data, "vcs"),
            created=_opt_int(time_data, "created"),
            updated=_opt_int(time_data, "updated"),
        )


@dataclass(frozen=True)
class SessionSummary:
    additions: int = 0
    deletions: int = 0
    files: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "SessionSummary":
        return cls(
            additions=_opt_int(data, "additions") or 0,
            deletions=_opt_int(data, "deletions") or 0,
            files=_opt_int(data, "files") or 0,
        )


@dataclass(frozen=True)
class Session:
    """A conversation. Sessions with a parent id are sub-agent runs."""

    id: str
    project_id: str
    title: Optional[str] = None
    slug: Optional[str] = None
    version: Optional[str] = None
    directory: Optional[str] = None
    parent_id: Optional[str] = None
    created: Optional[int] = None
    updated: Optional[int] = None
    summary: SessionSummary = field(default_factory=SessionSummary)

    @property
    def is_sub_agent(self) -> bool:
        return bool(self.parent_id)

    @classmethod
    def from_dict(cls, data: Any) -> "Session":
        data = _ensure_dict(data, "session")
        time_data = _obj(data, "time")
        return cls(
            id=_require_str(data, "id", "session"),
            project_id=_require_str(data, "projectID", "session"),
            title=_opt_str(data, "title"),
            slug=_opt_str(data, "slug"),
            version=_opt_str(data, "version"),
            directory=_opt_str(data, "directory"),
            parent_id=_opt_str(data, "parentID"),
            created=_opt_int(time_data, "created"),
            updated=_opt_int(time_data, "updated"),
            summary=SessionSummary.from_dict(_obj(data, "summary")),
        )


# ── Messages ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Tokens:
    """Token usage. Absent counts are stored as 0."""

    input: int = 0
    output: int = 0
    reasoning: int = 0
    cache_read: int = 0
    cache_write: int = 0

    def __add__(self, other: "Tokens") -> "Tokens":
        return Tokens(
            input=self.input + other.input,
            output=self.output + other.output,
            reasoning=self.reasoning + other.reasoning,
            cache_read=self.cache_read + other.cache_read,
            cache_write=self.cache_write + other.cache_write,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Tokens":
        cache = _obj(data, "cache")
        return cls(
            input=_opt_int(data, "input") or 0,
            output=_opt_int(data, "output") or 0,
            reasoning=_opt_int(data, "reasoning") or 0,
            cache_read=_opt_int(cache, "read") or 0,
            cache_write=_opt_int(cache, "write") or 0,
        )

    @classmethod
    def from_field(cls, data: dict, key: str = "tokens") -> Optional["Tokens"]:
        value = data.get(key)
        return cls.from_dict(value) if isinstance(value, dict) else None


@dataclass(frozen=True)
class Message:
    """One user or assistant turn inside a session."""

    id: str
    session_id: str
    role: str  # "user" | "assistant"
    created: Optional[int] = None
    completed: Optional[int] = None
    model_id: Optional[str] = None  # assistant: modelID, user: model.modelID
    provider_id: Optional[str] = None
    mode: Optional[str] = None
    agent: Optional[str] = None
    cost: Optional[float] = None
    tokens: Optional[Tokens] = None
    finish: Optional[str] = None
    user_model_id: Optional[str] = None

    @property
    def effective_model(self) -> Optional[str]:
        return self.model_id if self.model_id is not None else self.user_model_id

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        data = _ensure_dict(data, "message")
        time_data = _obj(data, "time")
        model = _obj(data, "model")
        return cls(
            id=_require_str(data, "id", "message"),
            session_id=_require_str(data, "sessionID", "message"),
            role=_require_str(data, "role", "message"),
            created=_opt_int(time_data, "created"),
            completed=_opt_int(time_data, "completed"),
            model_id=_opt_str(data, "modelID"),
            provider_id=_opt_str(data, "providerID") or _opt_str(model, "providerID"),
            mode=_opt_str(data, "mode"),
            agent=_opt_str(data, "agent"),
            cost=_opt_float(data, "cost"),
            tokens=Tokens.from_field(data),
            finish=_opt_str(data, "finish"),
            user_model_id=_opt_str(model, "modelID"),
        )


# ── Parts ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolState:
    status: Optional[str] = None  # pending | running | completed | error
    input: Any = None
    output: Optional[str] = None
    error: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ToolState":
        return cls(
            status=_opt_str(data, "status"),
            input=data.get("input"),
            output=_opt_str(data, "output"),
            error=_opt_str(data, "error"),
            title=_opt_str(data, "title"),
        )


@dataclass(frozen=True)
class TextPart:
    id: str
    session_id: str
    message_id: str
    text: str = ""


@dataclass(frozen=True)
class ToolPart:
    id: str
    session_id: str
    message_id: str
    tool: str = ""
    state: ToolState = field(default_factory=ToolState)


@dataclass(frozen=True)
class StepStartPart:
    id: str
    session_id: str
    message_id: str
    snapshot: Optional[str] = None


@dataclass(frozen=True)
class StepFinishPart:
    id: str
    session_id: str
    message_id: str
    reason: Optional[str] = None
    cost: Optional[float] = None
    tokens: Optional[Tokens] = None


@dataclass(frozen=True)
class ReasoningPart:
    id: str
    session_id: str
    message_id: str
    text: Optional[str] = None


@dataclass(frozen=True)
class PatchPart:
    id: str
    session_id: str
    message_id: str
    hash: Optional[str] = None
    files: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class UnknownPart:
    """A part with a discriminator this tool does not render."""

    id: str
    session_id: str
    message_id: str
    type: str = ""


Part = Union[TextPart, ToolPart, StepStartPart, StepFinishPart, ReasoningPart, PatchPart, UnknownPart]


def parse_part(data: Any) -> Part:
    """Decode a part record, choosing the dataclass from its ``type`` key."""
    data = _ensure_dict(data, "part")
    common = {
        "id": _require_str(data, "id", "part"),
        "session_id": _require_str(data, "sessionID", "part"),
        "message_id": _require_str(data, "messageID", "part"),
    }
    part_type = data.get("type")

    if part_type == "text":
        return TextPart(text=_require_str(data, "text", "text part"), **common)
    if part_type == "tool":
        state = data.get("state")
        if not isinstance(state, dict):
            raise RecordError("tool part has no state object")
        return ToolPart(tool=_require_str(data, "tool", "tool part"), state=ToolState.from_dict(state), **common)
    if part_type == "step-start":
        return StepStartPart(snapshot=_opt_str(data, "snapshot"), **common)
    if part_type == "step-finish":
        return StepFinishPart(
            reason=_opt_str(data, "reason"),
            cost=_opt_float(data, "cost"),
            tokens=Tokens.from_field(data),
            **common,
        )
    if part_type == "reasoning":
        return ReasoningPart(text=_opt_str(data, "text"), **common)
    if part_type == "patch":
        files = data.get("files")
        if isinstance(files, list):
            files = tuple(f for f in files if isinstance(f, str))
        else:
            files = None
        return PatchPart(hash=_opt_str(data, "hash"), files=files, **common)
    return UnknownPart(type=str(part_type or ""), **common)


# ── Per-session side records ─────────────────────────────────────


@dataclass(frozen=True)
class DiffEntry:
    file: str
    before: Optional[str] = None
    after: Optional[str] = None
    additions: int = 0
    deletions: int = 0
    status: Optional[str] = None  # added | modified | deleted

    @classmethod
    def from_dict(cls, data: Any) -> "DiffEntry":
        data = _ensure_dict(data, "diff")
        return cls(
            file=_require_str(data, "file", "diff"),
            before=_opt_str(data, "before"),
            after=_opt_str(data, "after"),
            additions=_opt_int(data, "additions") or 0,
            deletions=_opt_int(data, "deletions") or 0,
            status=_opt_str(data, "status"),
        )


@dataclass(frozen=True)
class TodoEntry:
    id: str
    content: str
    status: str  # pending | in_progress | completed | cancelled
    priority: Optional[str] = None  # low | medium | high

    @classmethod
    def from_dict(cls, data: Any) -> "TodoEntry":
        data = _ensure_dict(data, "todo")
        return cls(
            id=_require_str(data, "id", "todo"),
            content=_require_str(data, "content", "todo"),
            status=_require_str(data, "status", "todo"),
            priority=_opt_str(data, "priority"),
        )


# ── Resolved tree ────────────────────────────────────────────────


@dataclass(frozen=True)
class ResolvedMessage:
    """A message with its parts, ordered by part id."""

    message: Message
    parts: tuple[Part, ...] = ()


@dataclass(frozen=True)
class SubAgent:
    """A child session inlined into its parent's conversation."""

    session: Session
    items: tuple["ConversationItem", ...] = ()
    token_totals: Tokens = field(default_factory=Tokens)


ConversationItem = Union[ResolvedMessage, SubAgent]


@dataclass(frozen=True)
class ResolvedSession:
    session: Session
    items: tuple[ConversationItem, ...] = ()
    diffs: tuple[DiffEntry, ...] = ()
    todos: tuple[TodoEntry, ...] = ()
    token_totals: Tokens = field(default_factory=Tokens)


@dataclass(frozen=True)
class ResolvedProject:
    project: Project
    sessions: tuple[ResolvedSession, ...] = ()
