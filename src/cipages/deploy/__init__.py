"""Registry of deploy providers."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping, Optional

from cipages.datatypes import DeploySpec

from .pages import PublishResult, publish as publish_pages
from .staging import check_staging_dir, stage_artifacts, staging_workspace

Publisher = Callable[[Path, DeploySpec, Mapping[str, str], Optional[str]], PublishResult]

PROVIDERS: dict[str, Publisher] = {
    "pages": publish_pages,
}

__all__ = ["PROVIDERS", "PublishResult", "check_staging_dir", "stage_artifacts", "staging_workspace"]
