"""Command-line interface for chop.

This module defines the CLI commands using Click framework.

Commands:
- build: Build every output target into the destination directory.
- clean-cache: Remove the optimized asset cache.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

import click

from . import __version__
from .config import DEFAULT_MAX_IMAGE_WIDTH, DEFAULT_OPTIMIZER_TIMEOUT, BuildOptions

_root_option = click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project root directory",
)


def _setup_logging(verbose: bool) -> None:
    """Send chop's log records to stderr."""
    logger = logging.getLogger("chop")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(version=__version__, prog_name="chop")
def cli():
    """chop static site builder."""


@cli.command()
@_root_option
@click.option(
    "--jobs",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Concurrent optimizer jobs [default: CPU count]",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_OPTIMIZER_TIMEOUT,
    show_default=True,
    help="Seconds before an optimizer run is abandoned",
)
@click.option("--cache-dir", default=".cache", show_default=True, help="Asset cache directory")
@click.option(
    "--max-image-width",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_IMAGE_WIDTH,
    show_default=True,
    help="Scale wider images down to this width",
)
@click.option(
    "--raw-typography/--no-raw-typography",
    default=True,
    show_default=True,
    help="Apply smart punctuation to the raw content variable",
)
@click.option("--strict", is_flag=True, help="Fail on optimizer errors too")
@click.option("--verbose", "-v", is_flag=True, help="Show debug output")
def build(
    root: Path,
    jobs: int | None,
    timeout: float,
    cache_dir: str,
    max_image_width: int,
    raw_typography: bool,
    strict: bool,
    verbose: bool,
):
    """Build the site into the destination directory."""
    _setup_logging(verbose)
    project_root = root.resolve()
    from .build import build_site
    from .errors import MalformedFrontmatterError

    options = BuildOptions(
        project_root=project_root,
        cache_dir=cache_dir,
        jobs=jobs or os.cpu_count() or 1,
        optimizer_timeout=timeout,
        max_image_width=max_image_width,
        typography_raw_content=raw_typography,
    )
    try:
        result = build_site(options=options)
    except MalformedFrontmatterError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        rel_path = _display_path(exc.source_path, project_root)
        click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None

    if not result.targets:
        click.echo(f"No output targets found in {options.templates_root}")
    for target in result.targets:
        status = click.style("ok", fg="green") if target.ok else click.style("errors", fg="red")
        click.echo(
            f"{target.target.name}: {target.written} files, "
            f"{target.assets.copied} assets ({target.assets.cache_hits} cached) [{status}]"
        )

    report = result.report
    if report.error_count:
        counts = ", ".join(
            f"{n} {category}" for category, n in sorted(report.counts().items())
        )
        click.echo(click.style(f"{report.error_count} errors: {counts}", fg="red"), err=True)
        for target_name, error in report.errors:
            click.echo(
                f"  [{target_name}] {error.source_path}: {error.message}", err=True
            )
    code = report.exit_code(strict=strict)
    if code:
        raise SystemExit(code)


@cli.command("clean-cache")
@_root_option
@click.option("--cache-dir", default=".cache", show_default=True, help="Asset cache directory")
def clean_cache(root: Path, cache_dir: str):
    """Remove the optimized asset cache."""
    cache_root = root.resolve() / cache_dir
    if not cache_root.exists():
        click.echo(f"No cache at {cache_root}")
        return
    shutil.rmtree(cache_root)
    click.echo(f"Removed {cache_root}")


def _display_path(path: Path, project_root: Path) -> Path:
    try:
        return path.relative_to(project_root)
    except ValueError:
        return path


def main():
    """Entry point for the CLI application."""
    cli()
