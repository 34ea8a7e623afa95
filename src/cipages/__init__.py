"""Declarative CI pipeline runner with pages deployment.

Builds a project, generates its documentation and publishes the result to
a pages branch when the designated branch is built.
"""

__version__ = "0.1.0"

from cipages.datatypes import (
    DeploySpec,
    PipelineConfig,
    Toolchain,
)
from cipages.errors import (
    AuthError,
    CommandError,
    ConfigError,
    PipelineError,
    PublishError,
    StagingError,
)

__all__ = [
    "DeploySpec",
    "PipelineConfig",
    "Toolchain",
    "PipelineError",
    "ConfigError",
    "CommandError",
    "StagingError",
    "AuthError",
    "PublishError",
]
