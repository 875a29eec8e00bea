"""Shared test fixtures for opencode-export."""

import json
from datetime import datetime, timezone

import pytest


def ms(*args) -> int:
    """Epoch milliseconds for a UTC datetime."""
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def tmp_opencode_dir(tmp_path):
    """Create a synthetic OpenCode storage directory.

    Includes:
    - Two projects, one of them the synthetic "global" project
    - A top-level session with a sub-agent spawned mid-conversation
    - An old session (for --since filtering)
    - Text, tool, step-start, step-finish parts
    - Session diffs and todos (plus an empty todo list)
    - A corrupt session file (should be skipped)
    """
    storage = tmp_path / "storage"

    _write(storage / "project" / "proj_app.json", {
        "id": "proj_app",
        "worktree": "/Users/testuser/dev/myapp",
        "vcs": "git",
        "time": {"created": ms(2024, 6, 1), "updated": ms(2025, 1, 22)},
    })
    _write(storage / "project" / "global.json", {
        "id": "global",
        "worktree": "/",
        "time": {"created": ms(2024, 1, 1)},
    })

    ses_dir = storage / "session" / "proj_app"
    _write(ses_dir / "ses_main.json", {
        "id": "ses_main",
        "slug": "fix-login",
        "version": "1.1.34",
        "projectID": "proj_app",
        "directory": "/Users/testuser/dev/myapp",
        "title": "Fix login bug",
        "time": {"created": ms(2025, 1, 22, 8, 0, 0), "updated": ms(2025, 1, 22, 8, 30, 0)},
        "summary": {"additions": 3, "deletions": 1, "files": 1},
    })
    _write(ses_dir / "ses_child.json", {
        "id": "ses_child",
        "slug": "explore",
        "projectID": "proj_app",
        "title": "Search for auth code",
        "parentID": "ses_main",
        "time": {"created": ms(2025, 1, 22, 8, 0, 45)},
    })
    _write(ses_dir / "ses_old.json", {
        "id": "ses_old",
        "projectID": "proj_app",
        "title": "Old session",
        "time": {"created": ms(2023, 12, 1, 12, 0, 0)},
    })
    (ses_dir / "ses_broken.json").write_text("{not json", encoding="utf-8")
    _write(storage / "session" / "global" / "ses_global.json", {
        "id": "ses_global",
        "projectID": "global",
        "title": "Scratch",
        "time": {"created": ms(2025, 2, 1)},
    })

    msg_main = storage / "message" / "ses_main"
    _write(msg_main / "msg_001.json", {
        "id": "msg_001",
        "sessionID": "ses_main",
        "role": "user",
        "time": {"created": ms(2025, 1, 22, 8, 0, 0)},
        "model": {"providerID": "anthropic", "modelID": "claude-sonnet-4"},
    })
    _write(msg_main / "msg_002.json", {
        "id": "msg_002",
        "sessionID": "ses_main",
        "role": "assistant",
        "time": {"created": ms(2025, 1, 22, 8, 0, 30), "completed": ms(2025, 1, 22, 8, 0, 40)},
        "modelID": "claude-sonnet-4",
        "providerID": "anthropic",
        "mode": "build",
        "cost": 0.01,
        "tokens": {"input": 1200, "output": 300, "reasoning": 0, "cache": {"read": 50, "write": 0}},
    })
    _write(msg_main / "msg_003.json", {
        "id": "msg_003",
        "sessionID": "ses_main",
        "role": "assistant",
        "time": {"created": ms(2025, 1, 22, 8, 1, 0)},
        "modelID": "claude-sonnet-4",
        "tokens": {"input": 800, "output": 200, "cache": {"read": 0, "write": 25}},
    })

    msg_child = storage / "message" / "ses_child"
    _write(msg_child / "msg_c01.json", {
        "id": "msg_c01",
        "sessionID": "ses_child",
        "role": "user",
        "time": {"created": ms(2025, 1, 22, 8, 0, 46)},
    })
    _write(msg_child / "msg_c02.json", {
        "id": "msg_c02",
        "sessionID": "ses_child",
        "role": "assistant",
        "time": {"created": ms(2025, 1, 22, 8, 0, 50)},
        "modelID": "claude-haiku",
        "tokens": {"input": 5000, "output": 700},
    })

    part = storage / "part"
    _write(part / "msg_001" / "prt_001.json", {
        "id": "prt_001", "sessionID": "ses_main", "messageID": "msg_001",
        "type": "text", "text": "Why does login fail?",
    })
    _write(part / "msg_002" / "prt_001.json", {
        "id": "prt_001", "sessionID": "ses_main", "messageID": "msg_002",
        "type": "step-start", "snapshot": "abc123",
    })
    _write(part / "msg_002" / "prt_002.json", {
        "id": "prt_002", "sessionID": "ses_main", "messageID": "msg_002",
        "type": "text", "text": "Let me run the tests.",
    })
    _write(part / "msg_002" / "prt_003.json", {
        "id": "prt_003", "sessionID": "ses_main", "messageID": "msg_002",
        "type": "tool", "tool": "bash", "callID": "call_1",
        "state": {
            "status": "completed",
            "input": {"command": "npm test", "description": "Run tests"},
            "output": "1 failing",
            "title": "npm test",
        },
    })
    _write(part / "msg_003" / "prt_001.json", {
        "id": "prt_001", "sessionID": "ses_main", "messageID": "msg_003",
        "type": "tool", "tool": "grep",
        "state": {
            "status": "completed",
            "input": {"pattern": "login", "path": "src"},
            "output": "src/auth.ts:10: login()",
        },
    })
    _write(part / "msg_003" / "prt_002.json", {
        "id": "prt_002", "sessionID": "ses_main", "messageID": "msg_003",
        "type": "step-finish", "reason": "stop", "tokens": {"input": 800, "output": 200},
    })
    _write(part / "msg_c02" / "prt_001.json", {
        "id": "prt_001", "sessionID": "ses_child", "messageID": "msg_c02",
        "type": "text", "text": "Found auth code in src/auth.ts",
    })

    _write(storage / "session_diff" / "ses_main.json", [
        {"file": "src/auth.ts", "before": "a", "after": "b", "additions": 3, "deletions": 1, "status": "modified"},
    ])
    _write(storage / "todo" / "ses_main.json", [
        {"id": "1", "content": "Reproduce failure", "status": "completed", "priority": "high"},
        {"id": "2", "content": "Fix token check", "status": "in_progress"},
    ])
    _write(storage / "todo" / "ses_old.json", [])

    return storage
