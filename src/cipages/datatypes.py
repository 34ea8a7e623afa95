"""Core data types for the pipeline descriptor.

This module defines the declarative plan produced by the configuration
loader: the pipeline itself, its toolchain variants and the optional
deployment block.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple


# Documentation output produced by each toolchain's doc generator.
DEFAULT_OUTPUT_DIRS: Dict[str, str] = {
    "rust": "target/doc",
    "python": "docs/_build/html",
}

DEFAULT_TARGET_BRANCH = "gh-pages"
DEFAULT_DEPLOY_BRANCH = "master"


@dataclass(frozen=True)
class Toolchain:
    """One entry of the toolchain matrix.

    Attributes:
        language: Toolchain identifier, e.g. ``rust``.
        channel: Release track of the toolchain, e.g. ``nightly``.
        env: Variables specific to this variant.
        allow_failure: Whether a failing leg for this variant is tolerated.
    """
    language: str
    channel: str
    env: Tuple[Tuple[str, str], ...] = ()
    allow_failure: bool = False

    @property
    def label(self) -> str:
        label = f"{self.language}:{self.channel}"
        if self.env:
            label += " " + " ".join(f"{k}={v}" for k, v in self.env)
        return label

    def matches(self, other: "Toolchain") -> bool:
        """Compare variants ignoring the allow-failure marker."""
        return (self.language, self.channel, self.env) == (other.language, other.channel, other.env)


@dataclass(frozen=True)
class DeploySpec:
    """Deployment block of a pipeline.

    The credential is only ever held by name; its value is looked up in the
    run environment at publish time.
    """
    provider: str
    credential_env: str
    local_dir: Path
    output_dir: Path
    branch: str = DEFAULT_DEPLOY_BRANCH
    channel: Optional[str] = None
    keep_history: bool = False
    clean_staging: bool = True
    redirect: Optional[str] = None
    repo: Optional[str] = None
    target_branch: str = DEFAULT_TARGET_BRANCH
    github_url: str = "github.com"
    fqdn: Optional[str] = None
    committer_name: str = "Deployment Bot"
    committer_email: str = "deploy@cipages.invalid"


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level pipeline plan.

    Attributes:
        language: Toolchain identifier.
        variants: Expanded toolchain matrix, never empty.
        env: Pipeline-wide environment variables.
        script: Build-phase commands, in order.
        before_deploy: Pre-deploy commands, in order.
        deploy: Deployment block, or None when the pipeline never deploys.
        privileged: Pre-run privilege flag (``sudo``), passed through.
        dist: Host distribution selector, passed through.
        notifications: Notification settings, passed through unused.
    """
    language: str
    variants: List[Toolchain]
    env: Mapping[str, str] = field(default_factory=dict)
    script: List[str] = field(default_factory=list)
    before_deploy: List[str] = field(default_factory=list)
    deploy: Optional[DeploySpec] = None
    privileged: bool = False
    dist: Optional[str] = None
    notifications: Mapping[str, Any] = field(default_factory=dict)
