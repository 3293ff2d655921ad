"""SQLAlchemy schema definitions and engine construction for the metadata store."""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any

from sqlalchemy import (
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AlbumRow(Base):
    """Album metadata; the user-defined position lives in :class:`AlbumOrderRow`."""

    __tablename__ = "albums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (Index("idx_albums_date", "date"),)


class PhotoRow(Base):
    """Photo metadata; payloads are stored in the blob store under ``id``."""

    __tablename__ = "photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    album_id: Mapped[int] = mapped_column(Integer, ForeignKey("albums.id", ondelete="CASCADE"), nullable=False)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    uploaded_at: Mapped[float] = mapped_column(Float, nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    format: Mapped[str] = mapped_column(String, nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("album_id", "content_hash", name="uq_photos_album_hash"),
        Index("idx_photos_album_id", "album_id"),
        Index("idx_photos_content_hash", "content_hash"),
    )


class AlbumOrderRow(Base):
    """User-assigned album position; no two albums share a position."""

    __tablename__ = "album_order"

    album_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("albums.id", ondelete="CASCADE"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (Index("idx_album_order_position", "position", unique=True),)


def normalize_metadata_url(target: str | Path) -> str:
    """Normalize a database URL or filesystem path to an absolute SQLAlchemy URL."""

    if isinstance(target, Path):
        return f"sqlite:///{target.resolve()}"

    raw = str(target).strip()
    if not raw:
        raise ValueError("database target cannot be empty")

    if raw == ":memory:":
        return "sqlite://"

    if "://" not in raw:
        return f"sqlite:///{Path(raw).resolve()}"

    url = make_url(raw)
    if url.drivername.startswith("sqlite"):
        database = url.database or ""
        if database not in {":memory:", ""}:
            db_path = Path(database)
            if not db_path.is_absolute():
                db_path = (Path.cwd() / db_path).resolve()
            url = url.set(database=str(db_path))
    return url.render_as_string(hide_password=False)


def is_memory_url(url: str) -> bool:
    database = make_url(url).database
    return database in {None, "", ":memory:"}


def create_metadata_engine(target: str | Path) -> Engine:
    """Create an engine for ``target`` and make sure the schema exists.

    In-memory SQLite uses a single shared connection so every session sees
    the same database. Foreign keys are enabled on every connection because
    album deletes rely on ``ON DELETE CASCADE``.
    """

    normalized = normalize_metadata_url(target)
    sa_url = make_url(normalized)
    if not sa_url.drivername.startswith("sqlite"):
        raise ValueError(f"Only SQLite metadata stores are supported, received {sa_url.drivername!r}")

    engine_kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False, "timeout": 30.0}}
    in_memory = is_memory_url(normalized)
    if in_memory:
        engine_kwargs["poolclass"] = StaticPool
    else:
        db_path = Path(sa_url.database or "")
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.error("db_parent_directory_error", extra={"path": str(db_path), "error": str(exc)})
            raise

    engine = create_engine(normalized, **engine_kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=FULL")
        finally:
            cursor.close()

    Base.metadata.create_all(engine)
    LOGGER.info("metadata_engine_ready", extra={"url": normalized})
    return engine


__all__ = [
    "AlbumOrderRow",
    "AlbumRow",
    "Base",
    "PhotoRow",
    "create_metadata_engine",
    "is_memory_url",
    "normalize_metadata_url",
]
