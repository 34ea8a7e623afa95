"""Configuration utilities for the pipeline descriptor.

This module loads a declarative pipeline document (YAML or TOML) and turns
it into a validated :class:`~cipages.datatypes.PipelineConfig`.
"""

from __future__ import annotations

import re
import shlex
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from cipages.datatypes import (
    DEFAULT_DEPLOY_BRANCH,
    DEFAULT_OUTPUT_DIRS,
    DEFAULT_TARGET_BRANCH,
    DeploySpec,
    PipelineConfig,
    Toolchain,
)
from cipages.deploy import PROVIDERS
from cipages.errors import ConfigError
from cipages.log import get_logger

logger = get_logger(__name__)

_CREDENTIAL_REF = re.compile(r"^\$(?:\{(?P<braced>[^}]*)\}|(?P<bare>.*))$")
_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _normalize_keys(value: Any) -> Any:
    """Make ``-`` and ``_`` interchangeable in mapping keys, recursively."""
    if isinstance(value, Mapping):
        return {
            (str(k).replace("-", "_") if isinstance(k, str) else k): _normalize_keys(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_normalize_keys(v) for v in value]
    return value


def _command_list(data: Mapping[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigError(f"'{key}' must be a command string or a list of command strings")


def _scalar(value: Any, what: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"{what} must be a scalar value, got {type(value).__name__}")


def parse_env(value: Any) -> Dict[str, str]:
    """Parse an ``env`` entry into a name -> value mapping.

    Accepts a mapping, or a list of ``NAME=value`` strings where a single
    string may carry several shell-quoted assignments.
    """
    if value is None:
        return {}
    if isinstance(value, str):
        value = [value]

    env: Dict[str, str] = {}
    if isinstance(value, Mapping):
        for name, raw in value.items():
            name = str(name)
            if not _ENV_NAME.match(name):
                raise ConfigError(f"Invalid environment variable name '{name}'")
            env[name] = _scalar(raw, f"Environment variable '{name}'")
        return env

    if not isinstance(value, list):
        raise ConfigError("'env' must be a mapping or a list of NAME=value strings")

    for entry in value:
        if not isinstance(entry, str):
            raise ConfigError(f"Environment entry {entry!r} is not a NAME=value string")
        try:
            assignments = shlex.split(entry)
        except ValueError as exc:
            raise ConfigError(f"Cannot parse environment entry {entry!r}: {exc}") from exc
        for assignment in assignments:
            name, sep, raw = assignment.partition("=")
            if not sep or not _ENV_NAME.match(name):
                raise ConfigError(f"Environment entry {assignment!r} is not NAME=value")
            env[name] = raw
    return env


def parse_credential_ref(value: Any) -> str:
    """Return the environment variable name a credential reference points at.

    Raises:
        ConfigError: If the value is not a ``$NAME`` reference or the name is empty.
    """
    if not isinstance(value, str):
        raise ConfigError("Deploy credential must be an environment reference such as $GITHUB_TOKEN")
    match = _CREDENTIAL_REF.match(value.strip())
    if match is None:
        raise ConfigError(
            "Deploy credential must reference an environment variable ($NAME); "
            "literal secrets are not accepted"
        )
    name = (match.group("braced") if match.group("braced") is not None else match.group("bare")).strip()
    if not name:
        raise ConfigError("Deploy credential reference names an empty environment variable")
    if not _ENV_NAME.match(name):
        raise ConfigError(f"Invalid credential environment variable name '{name}'")
    return name


def _selector(language: str) -> str:
    """Key of the channel selector once document keys are normalized."""
    return language.replace("-", "_")


def _channels(value: Any, language: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [_scalar(v, f"'{language}' channel") for v in value]
    return [_scalar(value, f"'{language}' channel")]


def _variant_from_entry(entry: Any, language: str, what: str) -> Toolchain:
    if not isinstance(entry, Mapping):
        raise ConfigError(f"Each matrix {what} entry must be a mapping")
    channels = _channels(entry.get(_selector(language)), language)
    if len(channels) != 1:
        raise ConfigError(f"Each matrix {what} entry must name exactly one '{language}' channel")
    env = parse_env(entry.get("env"))
    return Toolchain(language=language, channel=channels[0], env=tuple(sorted(env.items())))


def _entry_matches(entry: Mapping[str, Any], variant: Toolchain) -> bool:
    """A matrix exclude/allow_failures entry matches on every key it names."""
    language = variant.language
    key = _selector(language)
    if key in entry and _channels(entry[key], language) != [variant.channel]:
        return False
    if "env" in entry and tuple(sorted(parse_env(entry["env"]).items())) != variant.env:
        return False
    return True


def parse_matrix(data: Mapping[str, Any], language: str) -> List[Toolchain]:
    """Expand the channel selector and the ``matrix`` block into variants."""
    channels = _channels(data.get(_selector(language)), language)
    variants = [Toolchain(language=language, channel=c) for c in channels]

    matrix = data.get("matrix") or {}
    if not isinstance(matrix, Mapping):
        raise ConfigError("'matrix' must be a mapping")

    for entry in matrix.get("include") or []:
        variants.append(_variant_from_entry(entry, language, "include"))

    excludes: Iterable[Any] = matrix.get("exclude") or []
    for entry in excludes:
        if not isinstance(entry, Mapping):
            raise ConfigError("Each matrix exclude entry must be a mapping")
        variants = [v for v in variants if not _entry_matches(entry, v)]

    unique: List[Toolchain] = []
    for variant in variants:
        if not any(variant.matches(seen) for seen in unique):
            unique.append(variant)

    allowed: Iterable[Any] = matrix.get("allow_failures") or []
    for entry in allowed:
        if not isinstance(entry, Mapping):
            raise ConfigError("Each matrix allow_failures entry must be a mapping")
        unique = [
            Toolchain(v.language, v.channel, v.env, allow_failure=True) if _entry_matches(entry, v) else v
            for v in unique
        ]

    if not unique:
        raise ConfigError(f"Toolchain matrix is empty: set '{language}' or matrix.include")
    return unique


_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _flag(data: Mapping[str, Any], key: str, default: bool) -> bool:
    """Read a boolean option, accepting true/false spelled as strings."""
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ConfigError(f"'deploy.{key}' must be true or false, got {value!r}")


def _staging_path(local_dir: Any, output_dir: Path) -> Path:
    """Validate ``local_dir``: a relative directory inside the workspace, apart from the build output."""
    if not isinstance(local_dir, str) or not local_dir.strip():
        raise ConfigError("Deploy block needs a non-empty 'local_dir'")
    path = Path(local_dir.strip())
    if path.is_absolute() or ".." in path.parts or path == Path("."):
        raise ConfigError(
            f"'deploy.local_dir' must be a subdirectory of the workspace, got {local_dir!r}"
        )
    if path == output_dir or output_dir in path.parents or path in output_dir.parents:
        raise ConfigError(
            f"'deploy.local_dir' {local_dir!r} overlaps the build output {str(output_dir)!r}"
        )
    return path


def parse_deploy(data: Any, language: str) -> DeploySpec:
    """Validate a ``deploy`` block.

    Raises:
        ConfigError: If the provider is unknown or required keys are missing.
    """
    if not isinstance(data, Mapping):
        raise ConfigError("'deploy' must be a mapping")

    provider = data.get("provider")
    if not provider:
        raise ConfigError("Deploy block is missing 'provider'")
    if provider not in PROVIDERS:
        raise ConfigError(
            f"Unknown deploy provider '{provider}'; expected one of {sorted(PROVIDERS)}"
        )

    token = data.get("github_token", data.get("token"))
    if token is None:
        raise ConfigError("Deploy block is missing the credential reference 'github_token'")
    credential_env = parse_credential_ref(token)

    output_dir = data.get("output_dir", DEFAULT_OUTPUT_DIRS.get(language))
    if not output_dir:
        raise ConfigError(
            f"No default documentation output for toolchain '{language}'; set deploy.output_dir"
        )
    output_path = Path(output_dir)
    local_dir = _staging_path(data.get("local_dir"), output_path)

    # YAML 1.1 reads a bare `on:` key as the boolean True
    on = data.get("on", data.get(True, DEFAULT_DEPLOY_BRANCH))
    channel: Optional[str] = None
    if isinstance(on, str):
        branch = on
    elif isinstance(on, Mapping):
        branch = on.get("branch", DEFAULT_DEPLOY_BRANCH)
        if _selector(language) in on:
            channel = _scalar(on[_selector(language)], f"deploy.on.{language}")
    else:
        raise ConfigError("'deploy.on' must be a branch name or a mapping")
    if not isinstance(branch, str) or not branch:
        raise ConfigError("'deploy.on.branch' must be a single branch name")

    redirect = data.get("redirect")
    if redirect is not None and (not isinstance(redirect, str) or redirect.startswith("/")):
        raise ConfigError("'deploy.redirect' must be a relative path")

    return DeploySpec(
        provider=str(provider),
        credential_env=credential_env,
        local_dir=local_dir,
        output_dir=output_path,
        branch=branch,
        channel=channel,
        keep_history=_flag(data, "keep_history", False),
        clean_staging=not _flag(data, "skip_cleanup", False),
        redirect=redirect,
        repo=data.get("repo"),
        target_branch=str(data.get("target_branch", DEFAULT_TARGET_BRANCH)),
        github_url=str(data.get("github_url", "github.com")),
        fqdn=data.get("fqdn"),
        committer_name=str(data.get("name", "Deployment Bot")),
        committer_email=str(data.get("email", "deploy@cipages.invalid")),
    )


def _privileged(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"required", "true", "yes", "1"}
    return bool(value)


def parse_config(data: Mapping[str, Any]) -> PipelineConfig:
    """Parse a pipeline document into a PipelineConfig.

    Args:
        data: Decoded pipeline document.

    Returns:
        Validated PipelineConfig instance.

    Raises:
        ConfigError: If required fields are missing or invalid.
    """
    if not isinstance(data, Mapping):
        raise ConfigError("Pipeline document must be a mapping at the top level")
    data = _normalize_keys(data)

    language = data.get("language")
    if not isinstance(language, str) or not language:
        raise ConfigError("Required key 'language' is missing")

    variants = parse_matrix(data, language)
    script = _command_list(data, "script")
    before_deploy = _command_list(data, "before_deploy")

    deploy: Optional[DeploySpec] = None
    if data.get("deploy") is not None:
        deploy = parse_deploy(data["deploy"], language)
        if not script and not before_deploy:
            logger.warning(
                "Deploy block present but no build commands are configured; "
                "staging will fail unless %s already exists", deploy.output_dir
            )

    notifications = data.get("notifications") or {}
    if not isinstance(notifications, Mapping):
        notifications = {"value": notifications}

    return PipelineConfig(
        language=language,
        variants=variants,
        env=parse_env(data.get("env")),
        script=script,
        before_deploy=before_deploy,
        deploy=deploy,
        privileged=_privileged(data.get("sudo", False)),
        dist=data.get("dist"),
        notifications=dict(notifications),
    )


def load_document(config_path: Path) -> Mapping[str, Any]:
    """Read a YAML or TOML pipeline document from disk."""
    config_path = Path(config_path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read pipeline document {config_path}: {exc}") from exc

    try:
        if config_path.suffix == ".toml":
            return tomllib.loads(text)
        return yaml.safe_load(text) or {}
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Cannot parse pipeline document {config_path}: {exc}") from exc


def load_pipeline_config(config_path: Path) -> PipelineConfig:
    """Load and validate a pipeline document."""
    config = parse_config(load_document(config_path))
    logger.debug(
        "Loaded %s: %d variant(s), %d build command(s), deploy=%s",
        config_path, len(config.variants), len(config.script),
        config.deploy.provider if config.deploy else None,
    )
    return config


def describe(config: PipelineConfig) -> List[Tuple[str, str]]:
    """Flatten a config into labelled lines for display."""
    lines: List[Tuple[str, str]] = [
        ("language", config.language),
        ("variants", ", ".join(v.label for v in config.variants)),
        ("env", " ".join(f"{k}={v}" for k, v in config.env.items()) or "-"),
        ("privileged", str(config.privileged).lower()),
    ]
    lines += [("script", cmd) for cmd in config.script]
    lines += [("before_deploy", cmd) for cmd in config.before_deploy]
    if config.deploy is None:
        lines.append(("deploy", "never"))
    else:
        d = config.deploy
        lines += [
            ("deploy", f"{d.provider} -> {d.repo or '<repository slug>'}:{d.target_branch}"),
            ("deploy.on", d.branch + (f" ({config.language} {d.channel})" if d.channel else "")),
            ("deploy.credential", f"${d.credential_env}"),
            ("deploy.local_dir", str(d.local_dir)),
            ("deploy.output_dir", str(d.output_dir)),
            ("deploy.keep_history", str(d.keep_history).lower()),
            ("deploy.clean_staging", str(d.clean_staging).lower()),
        ]
    return lines
