"""Sequential command execution with fail-fast semantics."""

from __future__ import annotations

import subprocess
import time
from typing import List, Sequence

from cipages.errors import CommandError
from cipages.log import get_logger
from cipages.pipeline.types import RunContext, StageResult

logger = get_logger(__name__)


def run_command(command: str, context: RunContext) -> StageResult:
    """Run one shell command in the workspace, inheriting the leg environment.

    Output is not captured; it streams to the invoking terminal as is.
    """
    logger.info("$ %s", command)
    start = time.perf_counter()
    result = subprocess.run(
        command,
        shell=True,
        cwd=context.workspace,
        env=dict(context.env),
        check=False,
    )
    return StageResult(
        command=command,
        returncode=result.returncode,
        duration=time.perf_counter() - start,
    )


def run_commands(commands: Sequence[str], context: RunContext, phase: str = "build") -> List[StageResult]:
    """Execute ``commands`` one after another, stopping at the first failure.

    Returns:
        Results of all commands, every one successful.

    Raises:
        CommandError: On the first non-zero exit status. The error carries the
            failing result and the results completed before it.
    """
    results: List[StageResult] = []
    for command in commands:
        result = run_command(command, context)
        results.append(result)
        if result.failed:
            logger.error("%s command exited with status %d: %s", phase, result.returncode, command)
            raise CommandError(phase, result, results=results)
    return results
