"""CLI entry point for opencode-export."""

import logging
from pathlib import Path

import click
import uvicorn

from .config import get_output_path, get_storage_path, parse_since
from .export import export_projects
from .resolver import resolve
from .store import RecordStore, load_store

storage_option = click.option(
    "--storage",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="OpenCode storage directory (auto-detected by default).",
)


def _set_verbose(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    if value:
        logging.getLogger().setLevel(logging.DEBUG)


# Accepted on the group and on every command, so `oc-export export -v` works too
verbose_option = click.option(
    "-v",
    "--verbose",
    is_flag=True,
    expose_value=False,
    callback=_set_verbose,
    help="Show debug logging.",
)


def _load(storage: Path | None) -> RecordStore:
    storage_dir = storage or get_storage_path()
    if not storage_dir.is_dir():
        raise click.ClickException(
            f"Storage directory not found: {storage_dir}\nSpecify with --storage <path>"
        )
    click.echo(f"Loading data from {storage_dir} ...", err=True)
    store = load_store(storage_dir)
    click.echo(f"  {len(store.projects)} projects, {len(store.sessions)} sessions loaded", err=True)
    return store


@click.group()
@verbose_option
def main():
    """Export OpenCode conversation histories to readable Markdown."""
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")


@main.command("list")
@verbose_option
@storage_option
def list_projects(storage: Path | None):
    """List available projects and their session counts."""
    store = _load(storage)
    click.echo(f"{'NAME':<12}  {'WORKTREE':<40}  SESSIONS")
    click.echo("-" * 80)
    for project in store.projects:
        count = len(store.sessions_by_project.get(project.id, []))
        click.echo(f"{project.display_name:<12}  {project.worktree:<40}  {count}")


@main.command()
@click.option("--all", "export_all", is_flag=True, help="Export all projects and sessions.")
@click.option("--project", default=None, help="Project to export (worktree path, project ID or name).")
@click.option("--session", default=None, help="Export a single session by ID.")
@click.option("--since", default=None, help="Only sessions created on or after this date (YYYY-MM-DD).")
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Output directory (default: ./opencode-export).",
)
@verbose_option
@storage_option
def export(
    export_all: bool,
    project: str | None,
    session: str | None,
    since: str | None,
    output: Path | None,
    storage: Path | None,
):
    """Write one Markdown document per session."""
    if not export_all and project is None and session is None:
        raise click.UsageError(
            "Specify --all, --project <name>, or --session <id>.\n"
            "Use 'oc-export list' to see available projects."
        )

    since_ms = None
    if since is not None:
        try:
            since_ms = parse_since(since)
        except ValueError as e:
            raise click.BadParameter(f"{since!r}: {e} (expected YYYY-MM-DD)", param_hint="--since")

    store = _load(storage)
    resolved = resolve(store, project_filter=project, session_filter=session, since_ms=since_ms)
    if not resolved:
        raise click.ClickException("No matching sessions found.")

    output_dir = output or get_output_path()
    total = sum(len(rp.sessions) for rp in resolved)
    click.echo(f"Exporting {total} sessions ...", err=True)

    with click.progressbar(length=total, label="  Writing", file=click.get_text_stream("stderr")) as bar:
        written = export_projects(resolved, output_dir, progress=lambda _path: bar.update(1))

    click.echo(f"Wrote {len(written)} files to {output_dir}")


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@verbose_option
@storage_option
def serve(port: int, host: str, storage: Path | None):
    """Start the preview server."""
    from . import server

    if storage is not None:
        server.set_storage_path(storage)
    click.echo(f"Starting opencode-export on http://{host}:{port}")
    uvicorn.run(server.app, host=host, port=port, reload=False)
