"""Tests for the command-line interface."""

import logging
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from opencode_export.cli import main


def _run(*args):
    return CliRunner().invoke(main, list(args))


def test_list(tmp_opencode_dir):
    result = _run("list", "--storage", str(tmp_opencode_dir))
    assert result.exit_code == 0, result.output
    assert "NAME" in result.output
    assert "_global" in result.output
    myapp = next(line for line in result.output.splitlines() if line.startswith("myapp"))
    assert "/Users/testuser/dev/myapp" in myapp
    assert myapp.split()[-1] == "3"


def test_export_all(tmp_opencode_dir, tmp_path):
    out = tmp_path / "out"
    result = _run("export", "--all", "--storage", str(tmp_opencode_dir), "-o", str(out))
    assert result.exit_code == 0, result.output
    assert "Wrote 3 files" in result.output
    assert (out / "myapp" / "2025-01-22_fix-login.md").is_file()


def test_export_project_since(tmp_opencode_dir, tmp_path):
    out = tmp_path / "out"
    result = _run(
        "export", "--project", "myapp", "--since", "2024-01-01",
        "--storage", str(tmp_opencode_dir), "--output", str(out),
    )
    assert result.exit_code == 0, result.output
    assert [p.name for p in (out / "myapp").iterdir()] == ["2025-01-22_fix-login.md"]
    assert not (out / "_global").exists()


def test_export_single_session(tmp_opencode_dir, tmp_path):
    out = tmp_path / "out"
    result = _run("export", "--session", "ses_global", "--storage", str(tmp_opencode_dir), "-o", str(out))
    assert result.exit_code == 0, result.output
    assert [p.name for p in (out / "_global").iterdir()] == ["2025-02-01_Scratch.md"]


def test_export_default_output_from_env(tmp_opencode_dir, tmp_path):
    out = tmp_path / "env-out"
    with patch.dict("os.environ", {"OC_EXPORT_OUTPUT": str(out)}):
        result = _run("export", "--all", "--storage", str(tmp_opencode_dir))
    assert result.exit_code == 0, result.output
    assert (out / "_global").is_dir()


def test_export_requires_selection(tmp_opencode_dir):
    result = _run("export", "--storage", str(tmp_opencode_dir))
    assert result.exit_code == 2
    assert "Specify --all" in result.output


def test_export_bad_since(tmp_opencode_dir):
    result = _run("export", "--all", "--since", "01/02/2024", "--storage", str(tmp_opencode_dir))
    assert result.exit_code == 2
    assert "--since" in result.output


def test_export_nothing_matched(tmp_opencode_dir, tmp_path):
    result = _run("export", "--project", "no-such-project", "--storage", str(tmp_opencode_dir),
                  "-o", str(tmp_path / "out"))
    assert result.exit_code == 1
    assert "No matching sessions found." in result.output
    assert not (tmp_path / "out").exists()


def test_missing_storage(tmp_path):
    result = _run("list", "--storage", str(tmp_path / "missing"))
    assert result.exit_code == 1
    assert "Storage directory not found" in result.output


@pytest.mark.parametrize("position", ["group", "command"])
def test_verbose_before_or_after_command(tmp_opencode_dir, tmp_path, position):
    args = ["export", "--all", "--storage", str(tmp_opencode_dir), "-o", str(tmp_path / "out")]
    args = ["-v", *args] if position == "group" else [*args, "-v"]
    root = logging.getLogger()
    saved = root.level
    try:
        result = _run(*args)
        assert result.exit_code == 0, result.output
        assert root.level == logging.DEBUG
    finally:
        root.setLevel(saved)
