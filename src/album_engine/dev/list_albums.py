"""CLI to print albums with their photo counts."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from album_engine.config import load_settings
from album_engine.engine import AlbumEngine
from album_engine.models import AlbumSummary, SortMode


async def _list(sort: SortMode, settings_path: Optional[Path]) -> list[AlbumSummary]:
    async with AlbumEngine(load_settings(settings_path)) as engine:
        return await engine.list_albums_with_photo_counts(sort)


def main(
    sort: SortMode = typer.Option(SortMode.CUSTOM, "--sort", help="Ordering: custom, date, or date_asc."),
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="Settings YAML to use."),
) -> None:
    """Print one tab-separated line per album."""

    for summary in asyncio.run(_list(sort, settings_path)):
        album = summary.album
        position = "-" if album.position is None else str(album.position)
        typer.echo(f"{album.id}\t{position}\t{album.date.isoformat()}\t{summary.photo_count}\t{album.name}")


if __name__ == "__main__":
    typer.run(main)


__all__ = ["main"]
