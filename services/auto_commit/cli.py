#!/usr/bin/env python3
"""
Auto-Commit CLI Tool
Part of the Post-build Auto-Commit Service

Invoked by the build system after a successful build:

    post-build-commit <repo_root> <target_name> <dest_dir>

The command always exits with status 0 so a failing auto-commit never
breaks the build; problems are reported through log lines instead.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from config.settings import DEFAULT_LOG_FORMAT, DEFAULT_LOG_TAG, Settings, get_settings
from services.auto_commit.main import RunnerConfig, AutoCommitRunner
from shared.models import PhaseStatus, RunReport

logger = logging.getLogger(__name__)

console = Console()

STATUS_STYLES = {
    PhaseStatus.SUCCESS: "green",
    PhaseStatus.SKIPPED: "yellow",
    PhaseStatus.WARNING: "red",
}


def configure_logging(settings: Optional[Settings] = None) -> None:
    if settings is None:
        logging.basicConfig(level=logging.INFO, format=DEFAULT_LOG_FORMAT)
        return
    logging.basicConfig(
        level=getattr(logging, settings.monitoring.log_level),
        format=settings.monitoring.log_format,
    )


def load_settings() -> Optional[Settings]:
    """Load settings from the environment; None when they do not validate."""
    try:
        return get_settings()
    except ValidationError as e:
        configure_logging()
        logger.error(f"{DEFAULT_LOG_TAG} Invalid configuration, skipping auto-commit: {e}")
        return None


def display_report(report: RunReport):
    """Display the phases of a run in a table."""
    table = Table(title="Auto-Commit Run", show_header=True, header_style="bold magenta")
    table.add_column("Phase", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Message", style="white")

    for result in report.phases:
        style = STATUS_STYLES.get(result.status, "white")
        table.add_row(
            result.phase.value,
            f"[{style}]{result.status.value}[/{style}]",
            result.message,
        )

    console.print(table)

    if report.committed:
        console.print(
            f"[green]Run #{report.counter} committed[/green]"
            + (" and pushed" if report.pushed else "")
        )


def execute(
    repo_root: Path,
    target_name: str,
    dest_dir: Path,
    script_path: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> Optional[RunReport]:
    """Run the pipeline, converting any unexpected error into a logged message."""
    tag = settings.monitoring.log_tag if settings is not None else DEFAULT_LOG_TAG
    try:
        config = RunnerConfig(
            repo_root=repo_root,
            target_name=target_name,
            dest_dir=dest_dir,
            script_path=script_path,
            settings=settings or get_settings(),
        )
        return AutoCommitRunner(config).run()
    except Exception as e:
        logger.error(f"{tag} Auto-commit aborted: {e}")
        return None


@click.command()
@click.argument("repo_root", type=click.Path(file_okay=False, path_type=Path))
@click.argument("target_name", type=str)
@click.argument("dest_dir", type=click.Path(file_okay=False, path_type=Path))
def cli(repo_root: Path, target_name: str, dest_dir: Path):
    """Run TARGET_NAME from DEST_DIR and commit its output into REPO_ROOT."""
    settings = load_settings()
    if settings is None:
        sys.exit(0)
    configure_logging(settings)

    script_path = Path(sys.argv[0]) if sys.argv and sys.argv[0] else None
    report = execute(repo_root, target_name, dest_dir, script_path, settings)
    if report is not None:
        display_report(report)
    sys.exit(report.exit_code if report is not None else 0)


if __name__ == "__main__":
    cli()
