"""Relational store for albums, photos, and album ordering."""

from __future__ import annotations

import asyncio
import datetime as dt
import sqlite3
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TypeVar

from sqlalchemy import Select, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from album_engine.db import AlbumOrderRow, AlbumRow, PhotoRow, create_metadata_engine
from album_engine.errors import (
    AlbumEngineError,
    CapacityError,
    ConflictError,
    DuplicateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from album_engine.models import Album, AlbumStats, Photo, PhotoFormat
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "metadata_store"})

T = TypeVar("T")

_SQLITE_FULL = getattr(sqlite3, "SQLITE_FULL", 13)


def _to_photo(row: PhotoRow) -> Photo:
    return Photo(
        id=row.id,
        album_id=row.album_id,
        filename=row.filename,
        content_hash=row.content_hash,
        uploaded_at=row.uploaded_at,
        size_bytes=row.size_bytes,
        format=PhotoFormat(row.format),
        width=row.width,
        height=row.height,
    )


def _to_album(row: AlbumRow, position: int | None) -> Album:
    return Album(
        id=row.id,
        name=row.name,
        date=row.date,
        position=position,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _find_photo_id(session: Session, album_id: int, content_hash: str) -> int | None:
    return session.scalar(
        select(PhotoRow.id).where(PhotoRow.album_id == album_id, PhotoRow.content_hash == content_hash)
    )


def translate_driver_error(exc: DBAPIError) -> AlbumEngineError:
    """Map a SQLAlchemy driver error to the engine's typed errors.

    A full database (``SQLITE_FULL``) is a :class:`CapacityError`; other
    operational failures are :class:`StorageError`; constraint violations
    are :class:`ConflictError`.
    """

    if isinstance(exc, IntegrityError):
        return ConflictError(f"Metadata write rejected: {exc.orig}")
    if isinstance(exc, OperationalError):
        code = getattr(exc.orig, "sqlite_errorcode", None)
        if code == _SQLITE_FULL or "database or disk is full" in str(exc.orig):
            return CapacityError(
                "Storage quota exceeded while writing album data. Please delete some photos to free up space."
            )
    return StorageError(f"Metadata store failure: {exc.orig}")


def _album_select() -> Select[Any]:
    return select(AlbumRow, AlbumOrderRow.position).outerjoin(
        AlbumOrderRow, AlbumOrderRow.album_id == AlbumRow.id
    )


class MetadataStore:
    """Persist album and photo metadata via SQLAlchemy.

    Every public method is a coroutine that runs one transaction in a worker
    thread and commits before returning, so callers get read-after-write
    consistency. Operations are serialized by an internal lock; capacity
    limits passed to the insert methods are therefore checked atomically with
    the write.
    """

    def __init__(self, target: str | Path) -> None:
        self._target = target
        self._engine: Engine | None = None
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        if self._engine is None:
            self._engine = await asyncio.to_thread(create_metadata_engine, self._target)

    async def close(self) -> None:
        if self._engine is not None:
            engine, self._engine = self._engine, None
            async with self._lock:
                await asyncio.to_thread(engine.dispose)

    async def __aenter__(self) -> MetadataStore:
        await self.open()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def _execute(self, operation: Callable[[Session], T]) -> T:
        engine = self._engine
        if engine is None:
            raise RuntimeError("MetadataStore is not open; call open() first.")
        async with self._lock:
            return await asyncio.to_thread(self._run_transaction, engine, operation)

    @staticmethod
    def _run_transaction(engine: Engine, operation: Callable[[Session], T]) -> T:
        try:
            with Session(engine, expire_on_commit=False) as session:
                with session.begin():
                    return operation(session)
        except DBAPIError as exc:
            error = translate_driver_error(exc)
            LOGGER.error("metadata_driver_error", extra={"error_kind": error.kind, "error": str(exc.orig)})
            raise error from exc

    # --- albums -----------------------------------------------------------------

    async def insert_album(self, name: str, date: dt.date, *, max_albums: int | None = None) -> Album:
        """Insert an album at the end of the current ordering."""

        def _op(session: Session) -> Album:
            if max_albums is not None:
                count = session.scalar(select(func.count()).select_from(AlbumRow)) or 0
                if count >= max_albums:
                    raise ValidationError(f"Maximum album limit ({max_albums}) reached")

            now = time.time()
            row = AlbumRow(name=name, date=date, created_at=now, updated_at=now)
            session.add(row)
            session.flush()

            max_position = session.scalar(select(func.max(AlbumOrderRow.position)))
            position = 0 if max_position is None else max_position + 1
            session.add(AlbumOrderRow(album_id=row.id, position=position, updated_at=now))
            session.flush()
            return _to_album(row, position)

        album = await self._execute(_op)
        LOGGER.info("album_inserted", extra={"album_id": album.id, "position": album.position})
        return album

    async def get_album(self, album_id: int) -> Album | None:
        def _op(session: Session) -> Album | None:
            result = session.execute(_album_select().where(AlbumRow.id == album_id)).first()
            if result is None:
                return None
            return _to_album(result[0], result[1])

        return await self._execute(_op)

    async def update_album(self, album_id: int, name: str, date: dt.date) -> Album:
        def _op(session: Session) -> Album:
            row = session.get(AlbumRow, album_id)
            if row is None:
                raise NotFoundError("album", album_id)
            row.name = name
            row.date = date
            row.updated_at = time.time()
            session.flush()
            order = session.get(AlbumOrderRow, album_id)
            return _to_album(row, order.position if order is not None else None)

        return await self._execute(_op)

    async def delete_album(self, album_id: int) -> list[int]:
        """Delete an album with its photos and order record in one transaction.

        Returns the ids of the deleted photos so the caller can drop their blobs.
        """

        def _op(session: Session) -> list[int]:
            if session.get(AlbumRow, album_id) is None:
                raise NotFoundError("album", album_id)
            photo_ids = list(session.scalars(select(PhotoRow.id).where(PhotoRow.album_id == album_id)))
            session.execute(delete(PhotoRow).where(PhotoRow.album_id == album_id))
            session.execute(delete(AlbumOrderRow).where(AlbumOrderRow.album_id == album_id))
            session.execute(delete(AlbumRow).where(AlbumRow.id == album_id))
            return photo_ids

        photo_ids = await self._execute(_op)
        LOGGER.info("album_deleted", extra={"album_id": album_id, "photo_count": len(photo_ids)})
        return photo_ids

    async def count_albums(self) -> int:
        return await self._execute(lambda session: session.scalar(select(func.count()).select_from(AlbumRow)) or 0)

    async def list_albums_by_position(self) -> list[Album]:
        """Albums by position ascending; unpositioned albums follow, newest date first."""

        stmt = _album_select().order_by(
            AlbumOrderRow.position.is_(None),
            AlbumOrderRow.position.asc(),
            AlbumRow.date.desc(),
            AlbumRow.name.asc(),
            AlbumRow.id.asc(),
        )
        return await self._execute(lambda session: [_to_album(row, pos) for row, pos in session.execute(stmt)])

    async def list_albums_by_date(self, *, descending: bool = True) -> list[Album]:
        """Albums by date with name ascending as the tie-break."""

        date_order = AlbumRow.date.desc() if descending else AlbumRow.date.asc()
        stmt = _album_select().order_by(date_order, AlbumRow.name.asc(), AlbumRow.id.asc())
        return await self._execute(lambda session: [_to_album(row, pos) for row, pos in session.execute(stmt)])

    async def set_positions(self, ordered_ids: Sequence[int]) -> list[Album]:
        """Assign positions ``0..k-1`` to ``ordered_ids`` in one transaction.

        Albums not listed keep their relative order after the listed ones;
        albums that never had a position stay unpositioned. Any unknown id
        aborts the whole call before anything is written.
        """

        def _op(session: Session) -> list[Album]:
            known = set(session.scalars(select(AlbumRow.id).where(AlbumRow.id.in_(ordered_ids))))
            missing = [album_id for album_id in ordered_ids if album_id not in known]
            if missing:
                raise NotFoundError("album", missing[0])

            listed = set(ordered_ids)
            remaining = [
                album_id
                for album_id in session.scalars(select(AlbumOrderRow.album_id).order_by(AlbumOrderRow.position))
                if album_id not in listed
            ]

            # Rewrite the whole table so the unique position index never sees a transient tie.
            session.execute(delete(AlbumOrderRow))
            session.flush()
            now = time.time()
            for position, album_id in enumerate([*ordered_ids, *remaining]):
                session.add(AlbumOrderRow(album_id=album_id, position=position, updated_at=now))
            session.flush()

            stmt = _album_select().order_by(
                AlbumOrderRow.position.is_(None), AlbumOrderRow.position.asc(), AlbumRow.date.desc(), AlbumRow.name
            )
            return [_to_album(row, pos) for row, pos in session.execute(stmt)]

        albums = await self._execute(_op)
        LOGGER.info("album_positions_set", extra={"listed": len(ordered_ids), "total": len(albums)})
        return albums

    async def clear_positions(self) -> int:
        def _op(session: Session) -> int:
            return session.execute(delete(AlbumOrderRow)).rowcount or 0

        return await self._execute(_op)

    # --- photos -----------------------------------------------------------------

    async def insert_photo(
        self,
        *,
        album_id: int,
        filename: str,
        content_hash: str,
        size_bytes: int,
        format: PhotoFormat,
        width: int,
        height: int,
        max_photos: int | None = None,
    ) -> Photo:
        """Insert a photo row, enforcing album existence, capacity, and uniqueness.

        Raises:
            NotFoundError: The album does not exist.
            ValidationError: The album already holds ``max_photos`` photos.
            DuplicateError: The album already holds this content fingerprint.
        """

        def _op(session: Session) -> Photo:
            if session.get(AlbumRow, album_id) is None:
                raise NotFoundError("album", album_id)

            if max_photos is not None:
                count = session.scalar(select(func.count()).where(PhotoRow.album_id == album_id)) or 0
                if count >= max_photos:
                    raise ValidationError(f"Album has reached maximum photo limit ({max_photos})")

            existing_id = _find_photo_id(session, album_id, content_hash)
            if existing_id is not None:
                raise DuplicateError(filename, album_id, existing_id)

            row = PhotoRow(
                album_id=album_id,
                filename=filename,
                content_hash=content_hash,
                uploaded_at=time.time(),
                size_bytes=size_bytes,
                format=format.value,
                width=width,
                height=height,
            )
            session.add(row)
            try:
                session.flush()
            except IntegrityError as exc:
                if "photos.content_hash" in str(exc.orig):
                    raise DuplicateError(filename, album_id) from exc
                raise ConflictError(f"Photo insert rejected for album {album_id}: {exc.orig}") from exc
            return _to_photo(row)

        return await self._execute(_op)

    async def get_photo(self, photo_id: int) -> Photo | None:
        def _op(session: Session) -> Photo | None:
            row = session.get(PhotoRow, photo_id)
            return _to_photo(row) if row is not None else None

        return await self._execute(_op)

    async def delete_photo(self, photo_id: int) -> Photo:
        def _op(session: Session) -> Photo:
            row = session.get(PhotoRow, photo_id)
            if row is None:
                raise NotFoundError("photo", photo_id)
            photo = _to_photo(row)
            session.delete(row)
            return photo

        return await self._execute(_op)

    async def delete_photos(self, photo_ids: Sequence[int]) -> int:
        if not photo_ids:
            return 0

        def _op(session: Session) -> int:
            return session.execute(delete(PhotoRow).where(PhotoRow.id.in_(photo_ids))).rowcount or 0

        return await self._execute(_op)

    async def list_photos(self, album_id: int) -> list[Photo]:
        """Photos in upload order."""

        stmt = (
            select(PhotoRow)
            .where(PhotoRow.album_id == album_id)
            .order_by(PhotoRow.uploaded_at.asc(), PhotoRow.id.asc())
        )
        return await self._execute(lambda session: [_to_photo(row) for row in session.scalars(stmt)])

    async def count_photos(self, album_id: int) -> int:
        stmt = select(func.count()).where(PhotoRow.album_id == album_id)
        return await self._execute(lambda session: session.scalar(stmt) or 0)

    async def photo_counts(self) -> dict[int, int]:
        """Photo count per album id; albums without photos are absent."""

        stmt = select(PhotoRow.album_id, func.count()).group_by(PhotoRow.album_id)
        return await self._execute(lambda session: {album_id: count for album_id, count in session.execute(stmt)})

    async def find_photo_by_hash(self, album_id: int, content_hash: str) -> Photo | None:
        stmt = select(PhotoRow).where(PhotoRow.album_id == album_id, PhotoRow.content_hash == content_hash).limit(1)

        def _op(session: Session) -> Photo | None:
            row = session.scalars(stmt).first()
            return _to_photo(row) if row is not None else None

        return await self._execute(_op)

    async def find_any_photo_by_hash(self, content_hash: str) -> Photo | None:
        """First photo with this fingerprint in any album, oldest first."""

        stmt = select(PhotoRow).where(PhotoRow.content_hash == content_hash).order_by(PhotoRow.id).limit(1)

        def _op(session: Session) -> Photo | None:
            row = session.scalars(stmt).first()
            return _to_photo(row) if row is not None else None

        return await self._execute(_op)

    async def album_stats(self, album_id: int) -> AlbumStats:
        stmt = select(func.count(), func.coalesce(func.sum(PhotoRow.size_bytes), 0)).where(
            PhotoRow.album_id == album_id
        )

        def _op(session: Session) -> AlbumStats:
            count, total = session.execute(stmt).one()
            return AlbumStats(album_id=album_id, photo_count=int(count), total_size=int(total))

        return await self._execute(_op)

    async def all_photo_ids(self) -> set[int]:
        return await self._execute(lambda session: set(session.scalars(select(PhotoRow.id))))


__all__ = ["MetadataStore"]
