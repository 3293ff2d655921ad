"""User-defined album ordering and sort-mode resolution."""

from __future__ import annotations

from collections.abc import Sequence

from album_engine.errors import ValidationError
from album_engine.metadata_store import MetadataStore
from album_engine.models import Album, SortMode
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "ordering"})


class OrderingService:
    def __init__(self, metadata: MetadataStore) -> None:
        self._metadata = metadata

    async def reorder(self, album_ids: Sequence[int]) -> list[Album]:
        """Give ``album_ids`` positions ``0..k-1`` in list order.

        The write is all-or-nothing: an unknown id raises ``NotFoundError``
        and a repeated id raises ``ValidationError``, leaving every position
        untouched. Albums missing from the list keep their relative order and
        follow the listed ones.
        """

        ids = list(album_ids)
        if any(isinstance(album_id, bool) or not isinstance(album_id, int) for album_id in ids):
            raise ValidationError("Album order must be a list of integer album ids")
        if len(set(ids)) != len(ids):
            raise ValidationError("Album order contains duplicate ids")

        albums = await self._metadata.set_positions(ids)
        LOGGER.info("albums_reordered", extra={"album_ids": ids})
        return albums

    async def resolve_order(self, sort_mode: SortMode | str = SortMode.CUSTOM) -> list[Album]:
        mode = SortMode.parse(sort_mode)
        if mode is SortMode.CUSTOM:
            return await self._metadata.list_albums_by_position()
        return await self._metadata.list_albums_by_date(descending=mode is SortMode.DATE)

    async def reset(self) -> int:
        """Drop every stored position so ``custom`` falls back to date order."""

        cleared = await self._metadata.clear_positions()
        LOGGER.info("album_order_reset", extra={"cleared": cleared})
        return cleared


__all__ = ["OrderingService"]
