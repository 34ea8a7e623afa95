"""Deploy gate: decide whether a leg publishes."""

from __future__ import annotations

from typing import Optional

from cipages.datatypes import DeploySpec
from cipages.pipeline.types import RunContext


def should_deploy(current_branch: Optional[str], target_branch: str) -> bool:
    """True iff the build is on exactly the configured branch."""
    return current_branch is not None and current_branch == target_branch


def leg_is_eligible(context: RunContext, spec: Optional[DeploySpec]) -> bool:
    """Gate for a whole leg: a deploy block, the branch and, if set, the channel."""
    if spec is None:
        return False
    if spec.channel is not None and spec.channel != context.variant.channel:
        return False
    return should_deploy(context.branch, spec.branch)
