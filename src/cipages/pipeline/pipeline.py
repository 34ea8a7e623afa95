"""Pipeline leg orchestration.

A leg moves through the states of :class:`RunState`::

    INIT -> BUILDING -> BUILT -> PRE_DEPLOY -> STAGED -> GATE_CHECK
         -> SKIPPED | PUBLISHING -> PUBLISHED

and stops at BUILD_FAILED, PRE_DEPLOY_FAILED or PUBLISH_FAILED on the
first error of its phase.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Mapping, Optional

from cipages.datatypes import PipelineConfig
from cipages.deploy import PROVIDERS, check_staging_dir, stage_artifacts, staging_workspace
from cipages.deploy.pages import REPO_SLUG_VARS
from cipages.errors import CommandError, PipelineError
from cipages.log import get_logger
from cipages.pipeline.gate import leg_is_eligible
from cipages.pipeline.matrix import expand_matrix
from cipages.pipeline.runner import run_commands
from cipages.pipeline.types import LegOutcome, PipelineOutcome, RunContext, RunState

logger = get_logger(__name__)


def _run_phase(
    outcome: LegOutcome,
    commands: List[str],
    context: RunContext,
    phase: str,
    running: RunState,
    failed: RunState,
    done: RunState,
) -> bool:
    outcome.advance(running)
    logger.info("[%s] %s (%d command(s))", context.variant.label, running.value, len(commands))
    try:
        outcome.results.extend(run_commands(commands, context, phase=phase))
    except CommandError as exc:
        outcome.results.extend(exc.results)
        outcome.error = exc
        outcome.advance(failed)
        return False
    outcome.advance(done)
    return True


def _doc_dir_candidates(config: PipelineConfig, context: RunContext) -> List[str]:
    """Directory names the project's own documentation is likely under."""
    names: List[str] = []
    slug = config.deploy.repo if config.deploy else None
    slug = slug or next((context.env[v] for v in REPO_SLUG_VARS if context.env.get(v)), None)
    for name in (slug.rsplit("/", 1)[-1] if slug else None, context.workspace.name):
        if name:
            for candidate in (name, name.replace("-", "_")):
                if candidate not in names:
                    names.append(candidate)
    return names


def _publish(
    outcome: LegOutcome,
    config: PipelineConfig,
    context: RunContext,
    remote_url: Optional[str],
) -> None:
    spec = config.deploy
    assert spec is not None
    outcome.advance(RunState.PUBLISHING)
    output_dir = context.workspace / spec.output_dir
    staging_dir = context.workspace / spec.local_dir
    publisher = PROVIDERS[spec.provider]
    try:
        check_staging_dir(output_dir, staging_dir, context.workspace)
        with staging_workspace(staging_dir, clean=spec.clean_staging):
            stage_artifacts(output_dir, staging_dir, redirect=spec.redirect,
                            preferred=_doc_dir_candidates(config, context))
            outcome.published = publisher(staging_dir, spec, context.env, remote_url)
    except PipelineError as exc:
        logger.error("[%s] deploy failed: %s", context.variant.label, exc)
        outcome.error = exc
        outcome.advance(RunState.PUBLISH_FAILED)
        return
    outcome.advance(RunState.PUBLISHED)


def run_leg(
    config: PipelineConfig,
    context: RunContext,
    remote_url: Optional[str] = None,
) -> LegOutcome:
    """Run one leg of the pipeline to a terminal state.

    Pipeline errors end the leg in the failed state of their phase and are
    kept on the outcome rather than raised.
    """
    outcome = LegOutcome(variant=context.variant)

    if not _run_phase(outcome, config.script, context, "build",
                      RunState.BUILDING, RunState.BUILD_FAILED, RunState.BUILT):
        return outcome
    if not _run_phase(outcome, config.before_deploy, context, "before_deploy",
                      RunState.PRE_DEPLOY, RunState.PRE_DEPLOY_FAILED, RunState.STAGED):
        return outcome

    outcome.advance(RunState.GATE_CHECK)
    if not leg_is_eligible(context, config.deploy):
        logger.info(
            "[%s] deploy skipped (branch=%s, deploy=%s)",
            context.variant.label, context.branch,
            f"{config.deploy.branch}" if config.deploy else "none",
        )
        outcome.advance(RunState.SKIPPED)
        return outcome

    _publish(outcome, config, context, remote_url)
    return outcome


def run_pipeline(
    config: PipelineConfig,
    base_env: Mapping[str, str],
    branch: Optional[str],
    workspace: Path,
    variant: Optional[str] = None,
    remote_url: Optional[str] = None,
) -> PipelineOutcome:
    """Run every leg of the matrix, one after another.

    Args:
        config: Validated pipeline config.
        base_env: Environment the legs start from.
        branch: Branch being built, or None for tag/detached builds.
        workspace: Project checkout the commands run in.
        variant: Only run legs on this toolchain channel.
        remote_url: Publish destination override.
    """
    contexts = expand_matrix(config, base_env, branch, workspace)
    if variant is not None:
        contexts = [c for c in contexts if c.variant.channel == variant]

    outcome = PipelineOutcome()
    for context in contexts:
        leg = run_leg(config, context, remote_url=remote_url)
        logger.info("[%s] finished: %s", context.variant.label, leg.state.value)
        outcome.legs.append(leg)
    return outcome


def write_run_summary(outcome: PipelineOutcome, path: Path) -> Path:
    """Write a JSON summary of every leg."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    summary = {
        "exit_code": outcome.exit_code,
        "legs": [leg.to_dict() for leg in outcome.legs],
    }
    path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
    return path


__all__ = ["run_leg", "run_pipeline", "write_run_summary"]
