"""
The tile store: the cache directory, its index, and the read caches in front
of it.
"""

import threading
from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError

from .core import (
    PullableTile,
    PushableTile,
    StoreUnavailableError,
    TileNotFoundError,
    TileProvider,
    Tiles,
)
from .filesystem import FilesystemTileProvider
from .index import TileIndex


class TileStore:
    filesystem: FilesystemTileProvider
    index: TileIndex
    tiles: Tiles

    def __init__(
        self,
        filesystem: FilesystemTileProvider,
        index: TileIndex,
        caches: list[TileProvider] | None = None,
    ):
        self.filesystem = filesystem
        self.index = index
        caches = caches or []
        self.tiles = Tiles(pullable=caches + [filesystem], pushable=caches)
        self.logger = structlog.get_logger()
        # Caches are shared by the threads composing a level.
        self._cache_lock = threading.Lock()

    def check(self):
        """
        Make sure the cache directory and the index can be used at all.
        """
        log = self.logger.bind(root=str(self.filesystem.root))

        try:
            self.filesystem.root.mkdir(parents=True, exist_ok=True)
            self.index.create()
        except (OSError, SQLAlchemyError) as e:
            log.error("store.unavailable", error=str(e))
            raise StoreUnavailableError(
                f"Tile store at {self.filesystem.root} is unavailable"
            ) from e

        log.debug("store.available")

    def write(self, tile: PushableTile):
        """
        Persist a tile, replacing any existing tile with the same key.
        """
        self.filesystem.push(tile)

        # The caches follow the disk even if the index cannot be updated.
        with self._cache_lock:
            self.tiles.push([tile])

        self.index.record(
            level=tile.level,
            start=tile.start,
            end=tile.end,
            provisional=tile.provisional,
        )

    def read(self, level: int, start: datetime) -> PushableTile:
        """
        Read a tile. Raises ``TileNotFoundError`` when there is no such tile.
        """
        with self._cache_lock:
            tile, pushables = self.tiles.pull(PullableTile(level=level, start=start))
            self.tiles.push(pushables)

        return tile

    def exists(self, level: int, start: datetime) -> bool:
        return self.filesystem.exists(PullableTile(level=level, start=start))

    def latest_before(self, level: int, now: datetime) -> datetime | None:
        return self.index.latest_before(level=level, now=now)

    def reindex(self, duration) -> int:
        return self.index.rebuild(self.filesystem, duration=duration)

