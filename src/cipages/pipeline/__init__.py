"""Pipeline execution for the CI descriptor.

The modules under :mod:`cipages.pipeline` expand a validated config into
independent legs and drive each leg through build, pre-deploy, the deploy
gate and publishing.
"""

from .gate import should_deploy
from .matrix import expand_matrix, resolve_branch
from .pipeline import run_leg, run_pipeline, write_run_summary
from .runner import run_commands
from .types import LegOutcome, PipelineOutcome, RunContext, RunState, StageResult

__all__ = [
    "LegOutcome",
    "PipelineOutcome",
    "RunContext",
    "RunState",
    "StageResult",
    "expand_matrix",
    "resolve_branch",
    "run_commands",
    "run_leg",
    "run_pipeline",
    "should_deploy",
    "write_run_summary",
]
