"""Matrix expansion: one run context per toolchain variant."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from cipages.datatypes import PipelineConfig
from cipages.pipeline.types import RunContext

BRANCH_VARS = ("CI_BRANCH", "TRAVIS_BRANCH", "GITHUB_REF_NAME")
TAG_VARS = ("CI_TAG", "TRAVIS_TAG")


def leg_environment(
    config: PipelineConfig,
    variant_index: int,
    base_env: Mapping[str, str],
    branch: Optional[str],
) -> Dict[str, str]:
    """Resolve the environment of one leg.

    Later layers win: base environment, pipeline env, variant env, then the
    ``CI_*`` variables describing the leg itself.
    """
    variant = config.variants[variant_index]
    env: Dict[str, str] = dict(base_env)
    env.update(config.env)
    env.update(dict(variant.env))
    env["CI"] = "true"
    env["CI_TOOLCHAIN"] = variant.language
    env["CI_TOOLCHAIN_CHANNEL"] = variant.channel
    if branch:
        env["CI_BRANCH"] = branch
    else:
        env.pop("CI_BRANCH", None)
    return env


def expand_matrix(
    config: PipelineConfig,
    base_env: Mapping[str, str],
    branch: Optional[str],
    workspace: Path,
) -> List[RunContext]:
    """Map a pipeline config to independent run contexts, one per variant."""
    return [
        RunContext(
            workspace=Path(workspace),
            variant=variant,
            branch=branch,
            env=leg_environment(config, index, base_env, branch),
        )
        for index, variant in enumerate(config.variants)
    ]


def resolve_branch(env: Mapping[str, str], workspace: Path) -> Optional[str]:
    """Work out which branch is being built.

    Returns None for tag builds and detached checkouts.
    """
    if any(env.get(name) for name in TAG_VARS):
        return None
    for name in BRANCH_VARS:
        if env.get(name):
            return env[name]
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=workspace,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    name = result.stdout.strip()
    if result.returncode != 0 or not name or name == "HEAD":
        return None
    return name
