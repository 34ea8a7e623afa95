"""Assemble the publish directory from build output."""

from __future__ import annotations

import re
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from cipages.errors import StagingError
from cipages.log import get_logger

logger = get_logger(__name__)

INDEX_NAME = "index.html"
REDIRECT_TEMPLATE = '<meta http-equiv=refresh content=0;url={target}>\n'

_REFRESH_URL = re.compile(
    r"""http-equiv=["']?refresh["']?[^>]*?content=["']?\s*\d+\s*;\s*url=([^"'\s>]+)""",
    re.IGNORECASE,
)


def render_redirect(target: str) -> str:
    """Entry point document forwarding visitors to ``target``."""
    return REDIRECT_TEMPLATE.format(target=target)


def existing_redirect(output_dir: Path) -> Optional[str]:
    """Target of a meta-refresh ``index.html`` the build already wrote, if any."""
    index = output_dir / INDEX_NAME
    if not index.is_file():
        return None
    match = _REFRESH_URL.search(index.read_text(encoding="utf-8", errors="replace"))
    if match is None:
        return None
    target = match.group(1)
    if target.startswith("/") or "://" in target:
        return None
    return target


def find_redirect_target(output_dir: Path, preferred: Sequence[str] = ()) -> Optional[str]:
    """Pick the documentation page the entry point should forward to.

    A redirect the build already wrote wins. Otherwise the first of
    ``preferred`` (e.g. the project name) that holds an index page, then the
    first top-level directory by name that does.
    """
    target = existing_redirect(output_dir)
    if target is not None:
        return target

    for name in preferred:
        if name and (output_dir / name / INDEX_NAME).is_file():
            return f"{name}/{INDEX_NAME}"

    for child in sorted(output_dir.iterdir(), key=lambda p: p.name):
        if child.is_dir() and (child / INDEX_NAME).is_file():
            return f"{child.name}/{INDEX_NAME}"
    return None


def _is_within(path: Path, other: Path) -> bool:
    return path == other or other in path.parents


def check_staging_dir(output_dir: Path, staging_dir: Path, workspace: Optional[Path] = None) -> None:
    """Refuse a staging directory that overlaps the build output or leaves the workspace.

    Raises:
        StagingError: If ``staging_dir`` is not safe to replace and remove.
    """
    source, target = Path(output_dir).resolve(), Path(staging_dir).resolve()
    if _is_within(source, target) or _is_within(target, source):
        raise StagingError(
            f"Staging directory {staging_dir} must be distinct from build output {output_dir}",
            details={"output_dir": str(output_dir), "staging_dir": str(staging_dir)},
        )
    if workspace is not None:
        root = Path(workspace).resolve()
        if target == root or root not in target.parents:
            raise StagingError(
                f"Staging directory {staging_dir} must be inside the workspace {workspace}",
                details={"workspace": str(workspace), "staging_dir": str(staging_dir)},
            )


def stage_artifacts(
    output_dir: Path,
    staging_dir: Path,
    redirect: Optional[str] = None,
    preferred: Sequence[str] = (),
) -> Path:
    """Copy build output into a fresh staging directory and add a redirect index.

    Any previous content of ``staging_dir`` is removed first, so staging the
    same build output twice yields identical trees.

    Args:
        output_dir: Documentation output of the build phase.
        staging_dir: Directory to publish from.
        redirect: Sub-path of the copied tree the index forwards to. When
            omitted, see :func:`find_redirect_target`.
        preferred: Directory names to try first when looking for a redirect target.

    Returns:
        Path to the staged directory.

    Raises:
        StagingError: If the build output is missing or overlaps the staging directory.
    """
    output_dir = Path(output_dir)
    staging_dir = Path(staging_dir)
    if not output_dir.is_dir():
        raise StagingError(
            f"Build output {output_dir} does not exist; the build phase did not produce documentation",
            details={"output_dir": str(output_dir)},
        )
    check_staging_dir(output_dir, staging_dir)

    if redirect is None:
        redirect = find_redirect_target(output_dir, preferred)
        if redirect is None:
            raise StagingError(
                f"No documentation index found under {output_dir}; set deploy.redirect",
                details={"output_dir": str(output_dir)},
            )

    if staging_dir.exists():
        shutil.rmtree(staging_dir)
    staging_dir.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(output_dir, staging_dir)
    (staging_dir / INDEX_NAME).write_text(render_redirect(redirect), encoding="utf-8")

    logger.info("Staged %s into %s (index -> %s)", output_dir, staging_dir, redirect)
    return staging_dir


@contextmanager
def staging_workspace(staging_dir: Path, clean: bool) -> Iterator[Path]:
    """Scope a staging directory, removing it on exit when ``clean`` is set.

    Removal happens whether the body succeeds or raises. Callers validate
    the directory with :func:`check_staging_dir` before entering.
    """
    try:
        yield Path(staging_dir)
    finally:
        if clean and Path(staging_dir).exists():
            shutil.rmtree(staging_dir)
            logger.info("Removed staging directory %s", staging_dir)
