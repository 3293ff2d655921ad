from __future__ import annotations

import typer
from typer.testing import CliRunner

from album_engine.dev import import_folder, list_albums, reconcile

runner = CliRunner()


def _app(main):
    app = typer.Typer()
    app.command()(main)
    return app


def _settings_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        f"storage:\n  metadata_url: {tmp_path / 'albums.db'}\n  blob_root: {tmp_path / 'blobs'}\n",
        encoding="utf-8",
    )
    return path


def test_collect_uploads_filters_by_extension(tmp_path):
    (tmp_path / "nested").mkdir()
    (tmp_path / "a.JPG").write_bytes(b"1")
    (tmp_path / "nested" / "b.png").write_bytes(b"2")
    (tmp_path / "notes.txt").write_text("skip")

    uploads = import_folder.collect_uploads(tmp_path)

    assert [(u.name, u.mime_type) for u in uploads] == [("a.JPG", "image/jpeg"), ("b.png", "image/png")]


def test_import_list_and_reconcile_commands(tmp_path, make_image):
    settings = _settings_file(tmp_path)
    photos = tmp_path / "photos"
    photos.mkdir()
    (photos / "red.png").write_bytes(make_image((255, 0, 0)))
    (photos / "blue.png").write_bytes(make_image((0, 0, 255)))

    imported = runner.invoke(
        _app(import_folder.main),
        ["--root", str(photos), "--album-name", "Imported", "--album-date", "2024-01-01", "--settings", str(settings)],
    )
    listed = runner.invoke(_app(list_albums.main), ["--sort", "date", "--settings", str(settings)])
    checked = runner.invoke(_app(reconcile.main), ["--settings", str(settings)])

    assert imported.exit_code == 0, imported.output
    assert "succeeded=2 duplicates=0 failed=0" in imported.output
    assert listed.exit_code == 0, listed.output
    assert "\t2\tImported" in listed.output
    assert checked.exit_code == 0
    assert "orphan_metadata=[]" in checked.output


def test_import_requires_album_identity(tmp_path):
    result = runner.invoke(_app(import_folder.main), ["--root", str(tmp_path)])

    assert result.exit_code != 0
