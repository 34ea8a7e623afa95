"""Tests for the deploy gate."""

from pathlib import Path

import pytest

from cipages.datatypes import Toolchain
from cipages.pipeline.gate import leg_is_eligible, should_deploy
from cipages.pipeline.types import RunContext

from conftest import make_deploy


@pytest.mark.parametrize(
    "current, target, expected",
    [
        ("master", "master", True),
        ("feature-x", "master", False),
        ("Master", "master", False),
        ("master ", "master", False),
        (None, "master", False),
        ("", "master", False),
    ],
)
def test_exact_branch_match(current, target, expected) -> None:
    assert should_deploy(current, target) is expected
    assert should_deploy(current, target) is should_deploy(current, target)


class TestLegEligibility:
    """Gate decisions for a whole leg."""

    def _context(self, branch, channel="nightly"):
        return RunContext(workspace=Path("."), variant=Toolchain("rust", channel), branch=branch)

    def test_no_deploy_block(self):
        assert leg_is_eligible(self._context("master"), None) is False

    def test_branch_match(self):
        assert leg_is_eligible(self._context("master"), make_deploy()) is True

    def test_detached_build(self):
        assert leg_is_eligible(self._context(None), make_deploy()) is False

    def test_channel_restriction(self):
        spec = make_deploy(channel="stable")
        assert leg_is_eligible(self._context("master", "nightly"), spec) is False
        assert leg_is_eligible(self._context("master", "stable"), spec) is True
