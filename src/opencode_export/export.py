"""Write rendered sessions to Markdown files."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .core import ResolvedProject, Session
from .renderer import render_session

logger = logging.getLogger(__name__)

MAX_STEM_NAME = 60


def format_date(ms: Optional[int]) -> str:
    """Epoch milliseconds as ``YYYY-MM-DD``, or ``unknown``."""
    if ms is None:
        return "unknown"
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
    except (ValueError, OSError, OverflowError):
        return "unknown"


def file_stem(session: Session) -> str:
    """Filename stem: creation date plus a sanitized slug, title or id."""
    if session.slug is not None:
        name = session.slug
    elif session.title is not None:
        name = session.title
    else:
        name = session.id
    sanitized = "".join(c if c.isalnum() or c in "-_" else "-" for c in name)
    return f"{format_date(session.created)}_{sanitized[:MAX_STEM_NAME].rstrip('-')}"


def export_projects(
    resolved: list[ResolvedProject],
    output_dir: Path,
    progress: Optional[Callable[[Path], None]] = None,
) -> list[Path]:
    """Render each session to ``<output_dir>/<project name>/<stem>.md``.

    Returns the paths written, in order. ``progress`` is called after each file.
    """
    written = []
    for rp in resolved:
        project_dir = output_dir / rp.project.display_name
        project_dir.mkdir(parents=True, exist_ok=True)

        for rs in rp.sessions:
            path = project_dir / f"{file_stem(rs.session)}.md"
            path.write_text(render_session(rs, rp.project), encoding="utf-8")
            logger.debug("Wrote %s", path)
            written.append(path)
            if progress is not None:
                progress(path)

    return written
