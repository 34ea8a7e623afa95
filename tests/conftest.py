"""Shared fixtures for pipeline tests."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from cipages.datatypes import DeploySpec, PipelineConfig, Toolchain

TRAVIS_DOCUMENT = """\
sudo: required
language: rust
rust:
    - nightly
dist: xenial
notifications:
  email: false
matrix:
  include:
    - rust: nightly
env:
    - SYSTEM_CARGO=1
script:
  - cargo build
  - cargo doc --all --document-private-items
before_deploy:
  - cargo doc --all --document-private-items
  - echo '<meta http-equiv=refresh content=0;url=lists/index.html>' > target/doc/index.html
  - mkdir public
  - cp -r target/doc public/
deploy:
  provider: pages
  skip-cleanup: true
  github-token: $GITHUB_TOKEN
  keep-history: false
  local-dir: public
  on:
    branch: master
"""

BUILD_DOCS = "mkdir -p target/doc/lists && echo '<h1>lists</h1>' > target/doc/lists/index.html"

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def make_deploy(**overrides) -> DeploySpec:
    fields = dict(
        provider="pages",
        credential_env="GITHUB_TOKEN",
        local_dir=Path("public"),
        output_dir=Path("target/doc"),
        redirect="lists/index.html",
        repo="owner/project",
    )
    fields.update(overrides)
    return DeploySpec(**fields)


def make_config(script=(BUILD_DOCS,), before_deploy=(), deploy="default", variants=None, env=None) -> PipelineConfig:
    if deploy == "default":
        deploy = make_deploy()
    return PipelineConfig(
        language="rust",
        variants=variants or [Toolchain("rust", "nightly")],
        env=env or {},
        script=list(script),
        before_deploy=list(before_deploy),
        deploy=deploy,
    )


def git(*args: str, cwd=None) -> str:
    env = dict(os.environ)
    for role in ("AUTHOR", "COMMITTER"):
        env[f"GIT_{role}_NAME"] = "Test"
        env[f"GIT_{role}_EMAIL"] = "test@example.com"
    result = subprocess.run(["git", *args], cwd=cwd, env=env, capture_output=True, text=True, check=True)
    return result.stdout


@pytest.fixture
def base_env() -> dict:
    return {"PATH": os.environ.get("PATH", "/usr/bin:/bin"), "HOME": os.environ.get("HOME", "/tmp")}


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    remote = tmp_path / "remote.git"
    git("init", "--bare", "--quiet", str(remote))
    return remote


def commit_count(remote: Path, branch: str = "gh-pages") -> int:
    return int(git("--git-dir", str(remote), "rev-list", "--count", branch).strip())


def published_files(remote: Path, branch: str = "gh-pages") -> list:
    return sorted(git("--git-dir", str(remote), "ls-tree", "-r", "--name-only", branch).split())
