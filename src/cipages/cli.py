"""Command-line interface for the pipeline runner.

This module provides the ``cipages`` entry point: run a pipeline document,
validate it, or list the legs its matrix expands into.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click

from cipages.config import describe, load_pipeline_config
from cipages.datatypes import PipelineConfig
from cipages.errors import ConfigError
from cipages.log import setup_logging
from cipages.pipeline import expand_matrix, resolve_branch, run_pipeline, write_run_summary

CONFIG_ERROR_EXIT = 2

config_option = click.option(
    '--config', '-c', 'config_path',
    type=click.Path(path_type=Path), default=Path('.travis.yml'), show_default=True,
    help='Pipeline document (YAML or TOML)',
)


def _load(config_path: Path) -> PipelineConfig:
    try:
        return load_pipeline_config(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(CONFIG_ERROR_EXIT)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--log-file', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='Also write log records to this file')
@click.version_option(package_name='cipages')
def main(verbose: bool, log_file: Optional[Path]):
    """Run a declarative CI pipeline and publish its documentation."""
    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file=str(log_file) if log_file else None)


@main.command()
@config_option
@click.option('--workspace', type=click.Path(exists=True, file_okay=False, path_type=Path), default=None,
              help='Project checkout (defaults to the current directory)')
@click.option('--branch', type=str, default=None,
              help='Branch being built (defaults to CI variables, then git)')
@click.option('--variant', type=str, default=None, help='Only run legs on this toolchain channel')
@click.option('--summary', 'summary_path', type=click.Path(path_type=Path), default=None,
              help='Write a JSON run summary here')
def run(config_path: Path, workspace: Optional[Path], branch: Optional[str],
        variant: Optional[str], summary_path: Optional[Path]):
    """Build, document and (on the deploy branch) publish."""
    cfg = _load(config_path)
    workspace = workspace or Path.cwd()
    env = dict(os.environ)
    if branch is None:
        branch = resolve_branch(env, workspace)

    if variant is not None and not any(v.channel == variant for v in cfg.variants):
        click.echo(f"Configuration error: no '{cfg.language}' variant on channel '{variant}'", err=True)
        sys.exit(CONFIG_ERROR_EXIT)

    outcome = run_pipeline(cfg, env, branch, workspace, variant=variant)

    click.echo("=" * 60)
    for leg in outcome.legs:
        marker = " (allowed to fail)" if leg.failed and leg.variant.allow_failure else ""
        click.echo(f"{leg.variant.label:30s} {leg.state.value.upper()}{marker}")
        if leg.error is not None:
            click.echo(f"  {leg.error}", err=True)
        if leg.published is not None:
            click.echo(f"  published {leg.published.revision[:12]} to "
                       f"{leg.published.destination}:{leg.published.branch}")
    click.echo("=" * 60)

    if summary_path is not None:
        click.echo(f"Summary: {write_run_summary(outcome, summary_path)}")

    sys.exit(outcome.exit_code)


@main.command()
@config_option
def validate(config_path: Path):
    """Parse the pipeline document and print the resulting plan."""
    cfg = _load(config_path)
    for key, value in describe(cfg):
        click.echo(f"{key:20s} {value}")


@main.command()
@config_option
@click.option('--branch', type=str, default=None, help='Branch to resolve the legs for')
def matrix(config_path: Path, branch: Optional[str]):
    """List the pipeline legs the toolchain matrix expands into."""
    cfg = _load(config_path)
    for index, ctx in enumerate(expand_matrix(cfg, {}, branch, Path.cwd())):
        flags = " allow_failure" if ctx.variant.allow_failure else ""
        click.echo(f"{index}: {ctx.variant.label}{flags}")


if __name__ == '__main__':
    main()
