"""Render a resolved session as a Markdown document.

Rendering is a pure function of its inputs. Lines emitted for sub-agent
transcripts carry one "> " marker per level of nesting.
"""

import json
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional

from .core import (
    ConversationItem,
    PatchPart,
    Project,
    ReasoningPart,
    ResolvedMessage,
    ResolvedSession,
    StepFinishPart,
    SubAgent,
    TextPart,
    ToolPart,
    ToolState,
)

# Output from these tools is folded away past this many lines
LONG_OUTPUT_LINES = 30
COLLAPSIBLE_OUTPUT_TOOLS = frozenset({"write", "read"})

DEFAULT_MODE = "code"

TODO_CHECKBOXES = {
    "completed": "[x]",
    "in_progress": "[-]",
    "cancelled": "[~]",
}

PRIORITY_BADGES = {
    "high": " `HIGH`",
    "medium": " `MED`",
    "low": " `LOW`",
}


def render_session(resolved: ResolvedSession, project: Project) -> str:
    """Render one top-level session and everything inlined beneath it."""
    out: list[str] = []
    session = resolved.session

    out.append(f"# {_default(session.title, 'Untitled Session')}\n\n")
    out.append("| | |\n")
    out.append("|---|---|\n")
    out.append(f"| **Project** | `{project.worktree}` |\n")
    out.append(f"| **Date** | {format_timestamp(session.created)} |\n")
    out.append(f"| **Model** | {_default(primary_model(resolved.items), 'unknown')} |\n")
    out.append(f"| **Version** | opencode {_default(session.version, 'unknown')} |\n")
    if session.slug is not None:
        out.append(f"| **Slug** | {session.slug} |\n")
    out.append(f"| **Session** | `{session.id}` |\n")
    out.append("\n")
    out.append("---\n\n")

    _render_items(out, resolved.items, 0)

    if resolved.todos:
        out.append("---\n\n")
        out.append("## Task List\n\n")
        for todo in resolved.todos:
            check = TODO_CHECKBOXES.get(todo.status, "[ ]")
            badge = PRIORITY_BADGES.get(todo.priority or "", "")
            out.append(f"- {check} {todo.content}{badge}\n")
        out.append("\n")

    if resolved.diffs:
        out.append("---\n\n")
        out.append("## Files Changed\n\n")
        for diff in resolved.diffs:
            status = _default(diff.status, "modified")
            out.append(f"- **{diff.file}** ({status}) +{diff.additions} / -{diff.deletions}\n")
        out.append("\n")

    _render_token_usage(out, resolved)
    return "".join(out)


def primary_model(items: tuple[ConversationItem, ...]) -> Optional[str]:
    """Model of the first top-level assistant message that names one."""
    for item in items:
        if isinstance(item, ResolvedMessage) and item.message.role == "assistant":
            model = item.message.effective_model
            if model is not None:
                return model
    return None


def format_timestamp(ms: Optional[int]) -> str:
    """Epoch milliseconds as ``YYYY-MM-DD HH:MM UTC``."""
    dt = _to_datetime(ms)
    if dt is None:
        return "unknown"
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def format_number(n: int) -> str:
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return str(n)


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` or ``\\r\\n``; a final line ending is optional.

    A lone ``\\r`` at the very end is part of the last line.
    """
    lines = text.split("\n")
    last = lines.pop()
    lines = [line[:-1] if line.endswith("\r") else line for line in lines]
    if last:
        lines.append(last)
    return lines


def _default(value: Optional[str], fallback: str) -> str:
    """Substitute ``fallback`` only when the value is absent, not when empty."""
    return fallback if value is None else value


def _to_datetime(ms: Optional[int]) -> Optional[datetime]:
    if ms is None:
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (ValueError, OSError, OverflowError):
        return None


def _render_token_usage(out: list[str], resolved: ResolvedSession) -> None:
    tokens = resolved.token_totals
    if tokens.input + tokens.output <= 0:
        return

    out.append("---\n\n")
    out.append("## Token Usage\n\n")
    out.append("| Metric | Count |\n")
    out.append("|---|---:|\n")
    out.append(f"| Input | {format_number(tokens.input)} |\n")
    out.append(f"| Output | {format_number(tokens.output)} |\n")
    if tokens.reasoning > 0:
        out.append(f"| Reasoning | {format_number(tokens.reasoning)} |\n")
    out.append(f"| Cache Read | {format_number(tokens.cache_read)} |\n")
    out.append(f"| Cache Write | {format_number(tokens.cache_write)} |\n")
    summary = resolved.session.summary
    if summary.files > 0:
        out.append(f"| Files Changed | {summary.files} (+{summary.additions} / -{summary.deletions}) |\n")
    out.append("\n")


# ── Conversation ─────────────────────────────────────────────────


def _render_items(out: list[str], items: tuple[ConversationItem, ...], depth: int) -> None:
    for item in items:
        if isinstance(item, SubAgent):
            _render_sub_agent(out, item, depth)
        else:
            _render_message(out, item, depth)


def _render_message(out: list[str], rm: ResolvedMessage, depth: int) -> None:
    prefix = "> " * depth
    message = rm.message

    if message.role == "user":
        out.append(f"{prefix}## User\n\n")
    elif message.role == "assistant":
        model = _default(message.effective_model, "assistant")
        mode = message.mode or ""
        badge = f" `{mode}`" if mode and mode != DEFAULT_MODE else ""
        out.append(f"{prefix}## Assistant ({model}){badge}\n\n")

    for part in rm.parts:
        renderer = PART_RENDERERS.get(type(part))
        if renderer is not None:
            renderer(out, part, prefix)

    out.append(f"{prefix}---\n\n")


def _render_sub_agent(out: list[str], sub: SubAgent, depth: int) -> None:
    prefix = "> " * depth
    title = _default(sub.session.title, "Sub-agent")
    agent_type = _default(sub.session.slug, "agent")

    out.append(f"{prefix}---\n\n")
    out.append(f"{prefix}> ### Sub-agent: {title} (`{agent_type}`)\n\n")
    _render_items(out, sub.items, depth + 1)
    out.append(f"{prefix}> *End of sub-agent*\n\n")
    out.append(f"{prefix}---\n\n")


def _write_block(out: list[str], text: str, prefix: str) -> None:
    """Text body followed by a blank line; quoted line by line when nested."""
    if not prefix:
        out.append(f"{text}\n\n")
        return
    _write_lines(out, split_lines(text), prefix)
    out.append("\n")


def _write_lines(out: list[str], lines: list[str], prefix: str) -> None:
    for line in lines:
        out.append(f"{prefix}{line}\n")


def _write_fence(out: list[str], text: str, prefix: str, lang: str = "") -> None:
    out.append(f"{prefix}```{lang}\n")
    _write_lines(out, split_lines(text), prefix)
    out.append(f"{prefix}```\n\n")


# ── Parts ────────────────────────────────────────────────────────


def _render_text(out: list[str], part: TextPart, prefix: str) -> None:
    if part.text:
        _write_block(out, part.text, prefix)


def _render_reasoning(out: list[str], part: ReasoningPart, prefix: str) -> None:
    if not part.text:
        return
    out.append(f"{prefix}<details>\n")
    out.append(f"{prefix}<summary>Thinking...</summary>\n\n")
    _write_block(out, part.text, prefix)
    out.append(f"{prefix}</details>\n\n")


def _render_step_finish(out: list[str], part: StepFinishPart, prefix: str) -> None:
    if part.tokens is None or part.tokens.output <= 0:
        return
    out.append(f"{prefix}*Step: {part.tokens.output} output tokens, {_default(part.reason, 'done')}*\n\n")


def _render_patch(out: list[str], part: PatchPart, prefix: str) -> None:
    if not part.files:
        return
    out.append(f"{prefix}*Patched files:*\n")
    for path in part.files:
        out.append(f"{prefix}- `{path}`\n")
    out.append("\n")


def _render_tool(out: list[str], part: ToolPart, prefix: str) -> None:
    state = part.state
    title = _default(state.title, part.tool)
    flag = " **ERROR**" if state.status == "error" else ""
    out.append(f"{prefix}### Tool: `{part.tool}` - {title}{flag}\n\n")

    if state.input is not None:
        render_input = TOOL_INPUT_RENDERERS.get(part.tool, _render_generic_input)
        render_input(out, state.input, prefix)

    _render_tool_result(out, part.tool, state, prefix)


# step-start and unknown parts render nothing
PART_RENDERERS: dict[type, Callable[[list[str], Any, str], None]] = {
    TextPart: _render_text,
    ReasoningPart: _render_reasoning,
    ToolPart: _render_tool,
    StepFinishPart: _render_step_finish,
    PatchPart: _render_patch,
}


# ── Tool input ───────────────────────────────────────────────────

ToolInputRenderer = Callable[[list[str], Any, str], None]

TOOL_INPUT_RENDERERS: dict[str, ToolInputRenderer] = {}


def register_tool_renderer(*names: str) -> Callable[[ToolInputRenderer], ToolInputRenderer]:
    """Register a tool input renderer under one or more tool names."""

    def decorator(func: ToolInputRenderer) -> ToolInputRenderer:
        for name in names:
            TOOL_INPUT_RENDERERS[name] = func
        return func

    return decorator


def _field(tool_input: Any, key: str) -> Optional[str]:
    if not isinstance(tool_input, dict):
        return None
    value = tool_input.get(key)
    return value if isinstance(value, str) else None


def _extension(path: str) -> str:
    name = path.rsplit("/", 1)[-1]
    return name.rsplit(".", 1)[-1] if "." in name else ""


@register_tool_renderer("bash")
def _render_bash_input(out: list[str], tool_input: Any, prefix: str) -> None:
    command = _field(tool_input, "command")
    if command is None:
        return
    description = _field(tool_input, "description")
    if description:
        out.append(f"{prefix}> {description}\n\n")
    _write_fence(out, command, prefix, "bash")


@register_tool_renderer("read")
def _render_read_input(out: list[str], tool_input: Any, prefix: str) -> None:
    path = _field(tool_input, "filePath")
    if path is not None:
        out.append(f"{prefix}**File:** `{path}`\n\n")


@register_tool_renderer("write")
def _render_write_input(out: list[str], tool_input: Any, prefix: str) -> None:
    path = _field(tool_input, "filePath")
    if path is not None:
        out.append(f"{prefix}**Write to:** `{path}`\n\n")

    content = _field(tool_input, "content")
    if content is None:
        return
    out.append(f"{prefix}<details>\n")
    out.append(f"{prefix}<summary>File content ({len(split_lines(content))} lines)</summary>\n\n")
    _write_fence(out, content, prefix, _extension(path or ""))
    out.append(f"{prefix}</details>\n\n")


@register_tool_renderer("edit")
def _render_edit_input(out: list[str], tool_input: Any, prefix: str) -> None:
    path = _field(tool_input, "filePath")
    if path is not None:
        out.append(f"{prefix}**Edit:** `{path}`\n\n")

    old = _field(tool_input, "oldString")
    if old is None:
        return
    out.append(f"{prefix}```diff\n")
    for line in split_lines(old):
        out.append(f"{prefix}- {line}\n")
    for line in split_lines(_field(tool_input, "newString") or ""):
        out.append(f"{prefix}+ {line}\n")
    out.append(f"{prefix}```\n\n")


@register_tool_renderer("glob")
def _render_glob_input(out: list[str], tool_input: Any, prefix: str) -> None:
    pattern = _field(tool_input, "pattern")
    if pattern is not None:
        out.append(f"{prefix}**Pattern:** `{pattern}` in `{_default(_field(tool_input, 'path'), '.')}`\n\n")


@register_tool_renderer("grep")
def _render_grep_input(out: list[str], tool_input: Any, prefix: str) -> None:
    pattern = _field(tool_input, "pattern")
    if pattern is not None:
        out.append(f"{prefix}**Search:** `{pattern}` in `{_default(_field(tool_input, 'path'), '.')}`\n\n")


@register_tool_renderer("todowrite", "todoread")
def _render_todo_input(out: list[str], tool_input: Any, prefix: str) -> None:
    """Todo calls are covered by the task list at the end of the document."""


def _render_generic_input(out: list[str], tool_input: Any, prefix: str) -> None:
    pretty = json.dumps(tool_input, indent=2, sort_keys=True, ensure_ascii=False)
    _write_fence(out, pretty, prefix, "json")


# ── Tool output ──────────────────────────────────────────────────


def _render_tool_result(out: list[str], tool: str, state: ToolState, prefix: str) -> None:
    if state.error is not None:
        out.append(f"{prefix}**Error:**\n")
        _write_fence(out, state.error, prefix)
        return
    if not state.output:
        return

    lines = split_lines(state.output)
    collapse = tool in COLLAPSIBLE_OUTPUT_TOOLS and len(lines) > LONG_OUTPUT_LINES

    if collapse:
        out.append(f"{prefix}<details>\n")
        out.append(f"{prefix}<summary>Output ({len(lines)} lines)</summary>\n\n")
    else:
        out.append(f"{prefix}**Output:**\n")

    _write_fence(out, state.output, prefix)

    if collapse:
        out.append(f"{prefix}</details>\n\n")
