"""Shared dataclasses for pipeline execution."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from cipages.datatypes import Toolchain


class RunState(str, Enum):
    """States of a pipeline leg."""

    INIT = "init"
    BUILDING = "building"
    BUILD_FAILED = "build_failed"
    BUILT = "built"
    PRE_DEPLOY = "pre_deploy"
    PRE_DEPLOY_FAILED = "pre_deploy_failed"
    STAGED = "staged"
    GATE_CHECK = "gate_check"
    SKIPPED = "skipped"
    PUBLISHING = "publishing"
    PUBLISH_FAILED = "publish_failed"
    PUBLISHED = "published"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def failed(self) -> bool:
        return self in FAILED_STATES


FAILED_STATES = frozenset({RunState.BUILD_FAILED, RunState.PRE_DEPLOY_FAILED, RunState.PUBLISH_FAILED})
TERMINAL_STATES = FAILED_STATES | {RunState.SKIPPED, RunState.PUBLISHED}


@dataclass(frozen=True)
class RunContext:
    """Everything one pipeline leg runs with.

    The environment is resolved once per leg and handed to every command
    explicitly; the process environment is never modified.
    """

    workspace: Path
    variant: Toolchain
    branch: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.env, MappingProxyType):
            object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


@dataclass(frozen=True)
class StageResult:
    """Exit status of one executed command."""

    command: str
    returncode: int
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return self.returncode != 0


@dataclass
class LegOutcome:
    """Result of one pipeline leg."""

    variant: Toolchain
    state: RunState = RunState.INIT
    history: List[RunState] = field(default_factory=lambda: [RunState.INIT])
    results: List[StageResult] = field(default_factory=list)
    error: Optional[Exception] = None
    published: Optional[Any] = None

    def advance(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def failed(self) -> bool:
        return self.state.failed

    def to_dict(self) -> Dict[str, Any]:
        error = None
        if self.error is not None:
            to_dict = getattr(self.error, "to_dict", None)
            error = to_dict() if to_dict else {"type": type(self.error).__name__, "message": str(self.error)}
        return {
            "variant": self.variant.label,
            "allow_failure": self.variant.allow_failure,
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "commands": [
                {"command": r.command, "returncode": r.returncode, "duration": round(r.duration, 3)}
                for r in self.results
            ],
            "error": error,
            "published": dataclasses.asdict(self.published) if self.published is not None else None,
        }


@dataclass
class PipelineOutcome:
    """Outcome of every leg of an invocation."""

    legs: List[LegOutcome] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(leg.failed and not leg.variant.allow_failure for leg in self.legs)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0
