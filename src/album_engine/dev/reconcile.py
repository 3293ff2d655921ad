"""CLI to report, and optionally repair, metadata/blob parity."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from album_engine.config import load_settings
from album_engine.engine import AlbumEngine
from album_engine.models import ReconcileReport
from utils.logging import get_logger

LOGGER = get_logger(__name__)


async def _reconcile(repair: bool, settings_path: Optional[Path]) -> ReconcileReport:
    async with AlbumEngine(load_settings(settings_path)) as engine:
        return await engine.reconcile(repair=repair)


def main(
    repair: bool = typer.Option(
        False,
        "--repair/--no-repair",
        help="Delete orphan rows and orphan blob pairs instead of only reporting them.",
    ),
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="Settings YAML to use."),
) -> None:
    """Compare photo rows with stored blob pairs."""

    report = asyncio.run(_reconcile(repair, settings_path))
    typer.echo(f"orphan_metadata={report.orphan_metadata}")
    typer.echo(f"orphan_blobs={report.orphan_blobs}")
    if not report.consistent and not report.repaired:
        LOGGER.warning("reconcile_inconsistent", extra={"repair": repair})
        raise typer.Exit(code=1)


if __name__ == "__main__":
    typer.run(main)


__all__ = ["main"]
