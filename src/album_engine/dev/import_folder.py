"""CLI to upload every supported image under a folder into one album."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from album_engine.config import load_settings
from album_engine.engine import AlbumEngine
from album_engine.models import EXTENSION_MIME_TYPES, UploadFile
from album_engine.scheduler import UploadProgress, UploadReport
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def collect_uploads(root: Path) -> list[UploadFile]:
    """Supported image files under ``root`` in stable path order."""

    return [
        UploadFile.from_path(path)
        for path in sorted(root.rglob("*"))
        if path.is_file() and path.suffix.lower() in EXTENSION_MIME_TYPES
    ]


def _log_progress(progress: UploadProgress) -> None:
    LOGGER.info(
        "import_progress",
        extra={
            "current": progress.current,
            "total": progress.total,
            "file_name": progress.outcome.file_name,
            "status": progress.outcome.status,
        },
    )


async def _import(
    root: Path,
    album_id: Optional[int],
    album_name: Optional[str],
    album_date: Optional[str],
    settings_path: Optional[Path],
) -> UploadReport:
    settings = load_settings(settings_path)
    uploads = collect_uploads(root)
    async with AlbumEngine(settings) as engine:
        if album_id is None:
            album = await engine.create_album(album_name, album_date)
            album_id = album.id
        LOGGER.info("import_start", extra={"album_id": album_id, "root": str(root), "files": len(uploads)})
        return await engine.upload_photos(album_id, uploads, on_progress=_log_progress)


def main(
    root: Path = typer.Option(
        ...,
        "--root",
        file_okay=False,
        dir_okay=True,
        exists=True,
        readable=True,
        help="Folder to scan recursively for JPEG, PNG, WebP and HEIC files.",
    ),
    album_id: Optional[int] = typer.Option(None, "--album-id", help="Upload into an existing album."),
    album_name: Optional[str] = typer.Option(None, "--album-name", help="Name of the album to create."),
    album_date: Optional[str] = typer.Option(None, "--album-date", help="Album date as YYYY-MM-DD."),
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="Settings YAML to use."),
) -> None:
    """Import a folder into a new album, or into ``--album-id`` when given."""

    if album_id is None and (not album_name or not album_date):
        raise typer.BadParameter("pass --album-id, or both --album-name and --album-date")

    report = asyncio.run(_import(root, album_id, album_name, album_date, settings_path))
    for outcome in report.failed:
        typer.echo(f"failed\t{outcome.file_name}\t{outcome.error_kind}\t{outcome.error}")
    typer.echo(
        f"succeeded={len(report.succeeded)} duplicates={len(report.duplicates)} failed={len(report.failed)}"
    )
    if report.failed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    typer.run(main)


__all__ = ["collect_uploads", "main"]
