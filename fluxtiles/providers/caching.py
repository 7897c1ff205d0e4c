"""
Read caches for tiles.
"""

from cachetools import LFUCache
from pymemcache.client.base import Client

from fluxtiles.processing.encoding import decode_png, encode_png, format_time, parse_time

from .core import PullableTile, PushableTile, TileNotFoundError, TileProvider


def tile_size(tile: PushableTile) -> int:
    return tile.data.nbytes


class PassThroughCache(TileProvider):
    """
    Used when caching is disabled: every pull misses and pushes are dropped.
    """

    def __init__(self, internal_provider_id: str | None = None):
        super().__init__(internal_provider_id=internal_provider_id or "passthrough")

    def pull(self, tile: PullableTile):
        log = self.logger.bind(tile_hash=tile.hash)
        log.debug("provider.passthrough.pull")
        raise TileNotFoundError(f"Tile {tile.hash} is never cached")

    def push(self, tile: PushableTile):
        log = self.logger.bind(tile_hash=tile.hash)
        log.debug("provider.passthrough.push")


class InMemoryCache(TileProvider):
    """
    Decoded tiles kept in process, evicting the least frequently read.
    The size of the cache is counted in bytes of pixel data.
    """

    cache: LFUCache

    def __init__(
        self, cache_size: int = 256 * 2**20, internal_provider_id: str | None = None
    ):
        self.cache = LFUCache(maxsize=cache_size, getsizeof=tile_size)
        super().__init__(internal_provider_id=internal_provider_id)

    def pull(self, tile: PullableTile):
        log = self.logger.bind(tile_hash=tile.hash)

        held = self.cache.get(tile.hash)

        if held is None:
            log.debug("provider.inmemory.miss")
            raise TileNotFoundError(f"Tile {tile.hash} not found in cache")

        log.debug("provider.inmemory.pulled")
        return held

    def push(self, tile: PushableTile):
        log = self.logger.bind(tile_hash=tile.hash)

        if tile.source == self.internal_provider_id:
            log.debug("provider.inmemory.present")
            return

        if tile_size(tile) > self.cache.maxsize:
            log.debug("provider.inmemory.too_large")
            self.cache.pop(tile.hash, None)
            return

        self.cache[tile.hash] = tile.model_copy(
            update={"source": self.internal_provider_id}
        )
        log.debug("provider.inmemory.pushed")


class MemcachedCache(TileProvider):
    """
    A cache that uses Memcached for storing tiles, as PNG bytes.
    """

    client: Client

    def __init__(self, client: Client, internal_provider_id: str | None = None):
        self.client = client
        super().__init__(internal_provider_id=internal_provider_id or "memcached")

    def pull(self, tile: PullableTile):
        log = self.logger.bind(tile_hash=tile.hash)

        content = self.client.get(tile.hash)

        if content is None:
            log.debug("provider.memcached.miss")
            raise TileNotFoundError(f"Tile {tile.hash} not found in cache")

        data, metadata = decode_png(content)

        log.debug("provider.memcached.pulled")

        return PushableTile(
            level=tile.level,
            start=tile.start,
            end=parse_time(metadata["endDate"]) if "endDate" in metadata else tile.start,
            data=data,
            source=self.internal_provider_id,
        )

    def push(self, tile: PushableTile):
        log = self.logger.bind(tile_hash=tile.hash)

        if tile.source == self.internal_provider_id:
            log.debug("provider.memcached.present")
            return

        content = encode_png(
            tile.data,
            metadata={"endDate": format_time(tile.end)},
        )
        self.client.set(tile.hash, content, noreply=True)
        log.debug("provider.memcached.pushed")
