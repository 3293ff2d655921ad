"""CLI to create the metadata schema and the blob root."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from album_engine.config import load_settings
from album_engine.engine import AlbumEngine
from utils.logging import get_logger

LOGGER = get_logger(__name__)


async def _init(settings_path: Optional[Path]) -> None:
    settings = load_settings(settings_path)
    async with AlbumEngine(settings) as engine:
        albums = await engine.metadata.count_albums()
    LOGGER.info(
        "init_store_complete",
        extra={
            "metadata_url": settings.storage.metadata_url,
            "blob_root": settings.storage.blob_root,
            "albums": albums,
        },
    )


def main(
    settings_path: Optional[Path] = typer.Option(
        None,
        "--settings",
        help="Settings YAML to use instead of the default lookup.",
    ),
) -> None:
    """Create the metadata database schema and the blob root directory."""

    asyncio.run(_init(settings_path))


if __name__ == "__main__":
    typer.run(main)


__all__ = ["main"]
