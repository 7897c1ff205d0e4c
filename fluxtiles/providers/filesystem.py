"""
Tiles on disk: one directory per zoom level, one PNG per tile named by the
epoch milliseconds of its start time.
"""

from pathlib import Path
from typing import Iterator

from fluxtiles.processing.encoding import (
    decode_png,
    encode_png,
    parse_time,
    tile_metadata,
)
from fluxtiles.processing.zoom import to_epoch_ms

from .core import PullableTile, PushableTile, TileNotFoundError, TileProvider


class FilesystemTileProvider(TileProvider):
    root: Path
    suffix: str = ".png"

    def __init__(self, root: Path, internal_provider_id: str | None = None):
        self.root = Path(root)
        super().__init__(internal_provider_id=internal_provider_id or "filesystem")

    def path(self, level: int, start_ms: int) -> Path:
        return self.root / str(level) / f"{start_ms}{self.suffix}"

    def exists(self, tile: PullableTile) -> bool:
        return self.path(tile.level, to_epoch_ms(tile.start)).is_file()

    def pull(self, tile: PullableTile) -> PushableTile:
        log = self.logger.bind(tile_hash=tile.hash)
        path = self.path(tile.level, to_epoch_ms(tile.start))

        try:
            content = path.read_bytes()
        except FileNotFoundError:
            log.debug("provider.filesystem.miss")
            raise TileNotFoundError(f"Tile {tile.hash} not found on disk")

        # Corrupt files raise from here and are not reported as a miss.
        data, metadata = decode_png(content)

        log.debug("provider.filesystem.pulled")

        end = tile.start
        if "endDate" in metadata:
            end = parse_time(metadata["endDate"])

        return PushableTile(
            level=tile.level,
            start=tile.start,
            end=end,
            data=data,
            source=self.internal_provider_id,
        )

    def push(self, tile: PushableTile):
        log = self.logger.bind(tile_hash=tile.hash)
        path = self.path(tile.level, to_epoch_ms(tile.start))
        path.parent.mkdir(parents=True, exist_ok=True)

        content = encode_png(
            tile.data, metadata=tile_metadata(tile.level, tile.start, tile.end)
        )

        # Readers never see half a tile.
        partial = path.with_suffix(".partial")
        partial.write_bytes(content)
        partial.replace(path)

        log.debug("provider.filesystem.pushed", path=str(path))

    def levels(self) -> list[int]:
        if not self.root.is_dir():
            return []

        return sorted(
            int(child.name)
            for child in self.root.iterdir()
            if child.is_dir() and child.name.lstrip("-").isdigit()
        )

    def scan(self, level: int) -> Iterator[int]:
        """
        Start times (epoch milliseconds) of all tiles present at a level.
        """
        directory = self.root / str(level)

        if not directory.is_dir():
            return

        for child in directory.iterdir():
            if not child.is_file() or child.suffix != self.suffix:
                continue
            if not child.stem.lstrip("-").isdigit():
                continue

            yield int(child.stem)
