"""Publish a staged directory to a git-hosted pages branch.

Without history the destination branch is replaced by a single fresh
commit (force push). With history the existing branch is cloned, its tree
replaced by the staged content and a new commit pushed on top.
"""

from __future__ import annotations

import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from cipages.datatypes import DeploySpec
from cipages.errors import AuthError, PublishError, StagingError
from cipages.log import get_logger

logger = get_logger(__name__)

REPO_SLUG_VARS = ("CI_REPO_SLUG", "TRAVIS_REPO_SLUG", "GITHUB_REPOSITORY")

_URL_USERINFO = re.compile(r"(?<=://)[^/@\s]+@")


@dataclass(frozen=True)
class PublishResult:
    """Where a publish landed."""

    destination: str
    branch: str
    revision: str


def resolve_credential(spec: DeploySpec, env: Mapping[str, str]) -> str:
    """Look up the deploy credential by name in the run environment."""
    token = env.get(spec.credential_env)
    if not token:
        raise AuthError(
            f"Deploy credential ${spec.credential_env} is not set in the environment",
            details={"credential_env": spec.credential_env},
        )
    return token


def resolve_repo_slug(spec: DeploySpec, env: Mapping[str, str]) -> str:
    if spec.repo:
        return spec.repo
    for name in REPO_SLUG_VARS:
        if env.get(name):
            return env[name]
    raise PublishError(
        "Cannot determine the repository to publish to; set deploy.repo or "
        + "/".join(REPO_SLUG_VARS)
    )


def remote_for(spec: DeploySpec, slug: str, token: str) -> str:
    return f"https://x-access-token:{token}@{spec.github_url}/{slug}.git"


class _Git:
    """Runs git in one working tree, redacting the credential from diagnostics."""

    def __init__(self, cwd: Path, env: Mapping[str, str], secret: str, spec: DeploySpec):
        self.cwd = cwd
        self.env: Dict[str, str] = dict(env)
        self.env["GIT_TERMINAL_PROMPT"] = "0"
        for role in ("AUTHOR", "COMMITTER"):
            self.env[f"GIT_{role}_NAME"] = spec.committer_name
            self.env[f"GIT_{role}_EMAIL"] = spec.committer_email
        self.secret = secret

    def redact(self, text: str) -> str:
        text = _URL_USERINFO.sub("***@", text)
        if self.secret:
            text = re.sub(rf"(?<![\w-]){re.escape(self.secret)}(?![\w-])", "***", text)
        return text

    def __call__(self, *args: str, cwd: Optional[Path] = None) -> str:
        cmd: List[str] = ["git", *args]
        result = subprocess.run(
            cmd,
            cwd=cwd or self.cwd,
            env=self.env,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise PublishError(
                f"git {args[0]} failed: {self.redact(result.stderr.strip() or result.stdout.strip())}",
                details={"command": self.redact(" ".join(cmd)), "returncode": result.returncode},
            )
        return result.stdout


def _replace_tree(worktree: Path, staged_dir: Path) -> None:
    for child in worktree.iterdir():
        if child.name == ".git":
            continue
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
    shutil.copytree(staged_dir, worktree, dirs_exist_ok=True)


def publish(
    staged_dir: Path,
    spec: DeploySpec,
    env: Mapping[str, str],
    remote_url: Optional[str] = None,
) -> PublishResult:
    """Upload the full contents of ``staged_dir`` to the pages branch.

    Args:
        staged_dir: Directory produced by the artifact stager.
        spec: Deployment block.
        env: Run environment; the credential and repository slug come from here.
        remote_url: Push here instead of the hosting provider URL.

    Returns:
        PublishResult with the pushed revision.

    Raises:
        StagingError: If the staged directory is missing or empty.
        AuthError: If the credential is absent from ``env``.
        PublishError: If any git operation is rejected.
    """
    staged_dir = Path(staged_dir)
    if not staged_dir.is_dir() or not any(staged_dir.iterdir()):
        raise StagingError(
            f"Refusing to publish: {staged_dir} is missing or empty",
            details={"local_dir": str(staged_dir)},
        )

    token = resolve_credential(spec, env)
    slug = resolve_repo_slug(spec, env) if remote_url is None else (spec.repo or remote_url)
    remote = remote_url or remote_for(spec, slug, token)
    destination = f"{spec.github_url}/{slug}" if remote_url is None else remote_url

    workdir = Path(tempfile.mkdtemp(prefix="cipages-"))
    worktree = workdir / "site"
    git = _Git(worktree, env, token, spec)
    ref = f"refs/heads/{spec.target_branch}"
    try:
        existing = spec.keep_history and bool(
            git("ls-remote", "--heads", remote, ref, cwd=workdir).strip()
        )
        if existing:
            git("clone", "--quiet", "--branch", spec.target_branch, "--single-branch",
                remote, str(worktree), cwd=workdir)
        else:
            worktree.mkdir()
            git("init", "--quiet")
            git("symbolic-ref", "HEAD", ref)

        _replace_tree(worktree, staged_dir)
        if spec.fqdn:
            (worktree / "CNAME").write_text(spec.fqdn + "\n", encoding="utf-8")

        git("add", "--all", ".")
        git("commit", "--quiet", "--allow-empty",
            "-m", f"Deploy {slug} to {spec.github_url}:{spec.target_branch}")
        revision = git("rev-parse", "HEAD").strip()

        push = ["push", "--quiet"]
        if not spec.keep_history:
            push.append("--force")
        git(*push, remote, f"HEAD:{ref}")
    finally:
        shutil.rmtree(workdir, ignore_errors=True)

    logger.info("Published %s to %s:%s at %s", staged_dir, destination, spec.target_branch, revision[:12])
    return PublishResult(destination=destination, branch=spec.target_branch, revision=revision)
